"""Tagged parse results and git remote parsing.

Parsers for subprocess and API output return either ``Parsed`` (the
payload) or ``ParseFailure`` (why the input was rejected), so callers
branch on the result type instead of catching loosely-typed exceptions.

``parse_repository_id`` is the one strict entry point: a remote URL that
does not match a recognized hosting pattern raises ``RemoteURLError``
rather than falling back to a guessed identifier.
"""

import re
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from src.workhub.errors import RemoteURLError

T = TypeVar("T")

_NAME = r"[A-Za-z0-9_.-]+"

# git@github.com:owner/repo.git
_SCP_REMOTE = re.compile(
    rf"^[A-Za-z0-9_.-]+@[A-Za-z0-9_.-]+:(?P<owner>{_NAME})/(?P<repo>{_NAME}?)(?:\.git)?/?$"
)

# https://github.com/owner/repo(.git), ssh://git@github.com:22/owner/repo.git
_URL_REMOTE = re.compile(
    rf"^(?:https?|ssh|git)://(?:[^@/\s]+@)?[A-Za-z0-9_.-]+(?::\d+)?"
    rf"/(?P<owner>{_NAME})/(?P<repo>{_NAME}?)(?:\.git)?/?$"
)


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Successful parse carrying the decoded value."""

    value: T


@dataclass(frozen=True)
class ParseFailure:
    """Failed parse.

    Attributes:
        reason: Short description of what was wrong.
        raw: The offending input, truncated for logging.
    """

    reason: str
    raw: str = ""


ParseResult = Union[Parsed[T], ParseFailure]


def try_parse_repository_id(remote: str) -> "ParseResult[str]":
    """Parse ``owner/repo`` out of a git remote URL.

    Args:
        remote: Remote URL as printed by ``git remote get-url``.

    Returns:
        Parsed with the ``owner/repo`` identifier, or ParseFailure.
    """
    candidate = remote.strip()
    for pattern in (_SCP_REMOTE, _URL_REMOTE):
        match = pattern.match(candidate)
        if match and match.group("repo") and match.group("owner"):
            return Parsed(f"{match.group('owner')}/{match.group('repo')}")
    return ParseFailure("unrecognized remote URL format", raw=candidate[:200])


def parse_repository_id(remote: str) -> str:
    """Parse ``owner/repo`` out of a git remote URL.

    Raises:
        RemoteURLError: If the URL does not match a recognized pattern.
    """
    result = try_parse_repository_id(remote)
    if isinstance(result, ParseFailure):
        raise RemoteURLError(remote)
    return result.value


def parse_int(text: str) -> "ParseResult[int]":
    """Parse a base-10 integer, tolerating surrounding whitespace."""
    try:
        return Parsed(int(text.strip()))
    except ValueError:
        return ParseFailure("not an integer", raw=text[:200])
