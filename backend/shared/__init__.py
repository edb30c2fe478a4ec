"""Code shared by the aggregator and edge services."""
