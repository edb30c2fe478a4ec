"""Scheduled live activity aggregator."""

from .scheduler import AggregationScheduler
from .service import ActivityAggregator, AggregationError, rank_hot_matches

__all__ = [
    "ActivityAggregator",
    "AggregationError",
    "AggregationScheduler",
    "rank_hot_matches",
]
