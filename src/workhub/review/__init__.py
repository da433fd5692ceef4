"""Review-system adapters.

- GitHubClient: httpx client for the GitHub pulls API
- GitHubReviewSystem: ReviewSystemPort on top of the client
- ReviewRequestStore / SimulatedWriteReviewSystem: in-memory writes over
  real reads
"""

from src.workhub.review.client import GitHubClient
from src.workhub.review.github import GitHubReviewSystem, parse_pull, split_repository
from src.workhub.review.simulated import (
    SIMULATED_NUMBER_BASE,
    ReviewRequestStore,
    SimulatedWriteReviewSystem,
)

__all__ = [
    "GitHubClient",
    "GitHubReviewSystem",
    "ReviewRequestStore",
    "SIMULATED_NUMBER_BASE",
    "SimulatedWriteReviewSystem",
    "parse_pull",
    "split_repository",
]
