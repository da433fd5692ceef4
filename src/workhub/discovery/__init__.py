"""Session/repository/review-request join."""

from src.workhub.discovery.engine import (
    DiscoveryEngine,
    filter_active,
    filter_by_repository,
    filter_matched,
    group_by_request_number,
)

__all__ = [
    "DiscoveryEngine",
    "filter_active",
    "filter_by_repository",
    "filter_matched",
    "group_by_request_number",
]
