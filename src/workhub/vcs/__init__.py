"""Version-control adapters."""

from src.workhub.vcs.git import GitCli, parse_ahead_behind

__all__ = ["GitCli", "parse_ahead_behind"]
