"""Edge server entry point: ``python -m edge``"""

import uvicorn

from shared.config import get_settings

from .app import create_app


def cli() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    cli()
