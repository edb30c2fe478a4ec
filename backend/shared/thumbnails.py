"""YouTube thumbnail derivation for match cards."""

import re

# youtu.be/<id>, youtube.com/watch?v=<id>, youtube.com/embed/<id>, youtube.com/v/<id>
_VIDEO_ID_RE = re.compile(r"(?:youtu\.be/|youtube\.com/(?:watch\?v=|embed/|v/))([^&\n?#]+)")

THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/mqdefault.jpg"


def extract_video_id(url: str | None) -> str:
    """Return the video ID of a YouTube URL, or an empty string."""
    if not url:
        return ""
    match = _VIDEO_ID_RE.search(url)
    return match.group(1) if match else ""


def youtube_thumbnail(url: str | None) -> str:
    """Return the medium-quality thumbnail URL for a YouTube video URL.

    Unrecognised URLs (and empty input) yield an empty string.
    """
    video_id = extract_video_id(url)
    return THUMBNAIL_URL.format(video_id=video_id) if video_id else ""
