"""Git CLI adapter.

Reads repository snapshots for discovery and performs the clone, branch,
commit and push steps of the provisioning workflow. Every call runs git as
an asyncio subprocess so discovery of many sessions does not block the
event loop.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from src.workhub.models import RepositorySnapshot
from src.workhub.parsing import Parsed, ParseFailure, ParseResult, parse_int, parse_repository_id
from src.workhub.process import run_command

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT_SECONDS = 300


def parse_ahead_behind(output: str) -> "ParseResult[Tuple[int, int]]":
    """Decode ``git rev-list --left-right --count @{u}...HEAD`` output.

    The left count is commits only on the upstream (behind), the right
    count commits only on HEAD (ahead).

    Returns:
        Parsed ``(ahead, behind)`` tuple, or ParseFailure.
    """
    fields = output.split()
    if len(fields) != 2:
        return ParseFailure("expected two counts", raw=output[:200])
    behind = parse_int(fields[0])
    ahead = parse_int(fields[1])
    if isinstance(behind, ParseFailure) or isinstance(ahead, ParseFailure):
        return ParseFailure("counts are not integers", raw=output[:200])
    return Parsed((ahead.value, behind.value))


class GitCli:
    """VersionControlPort implementation on top of the git CLI.

    Attributes:
        git_path: git executable.
        timeout_seconds: Timeout for network operations (clone, push).
        local_timeout_seconds: Timeout for local reads.
    """

    def __init__(
        self,
        git_path: str = "git",
        timeout_seconds: float = DEFAULT_GIT_TIMEOUT_SECONDS,
        local_timeout_seconds: float = 30,
    ):
        self.git_path = git_path
        self.timeout_seconds = timeout_seconds
        self.local_timeout_seconds = local_timeout_seconds

    async def _git(self, directory: Optional[Path], *args: str, network: bool = False):
        return await run_command(
            [self.git_path, *args],
            cwd=directory,
            timeout=self.timeout_seconds if network else self.local_timeout_seconds,
        )

    async def get_remote(self, directory: Path) -> str:
        result = await self._git(directory, "remote", "get-url", "origin")
        return result.stdout.strip()

    async def get_branch(self, directory: Path) -> str:
        result = await self._git(directory, "rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()

    async def get_status(self, directory: Path) -> Tuple[bool, int, int]:
        """Return ``(is_dirty, ahead, behind)`` for the working tree.

        A branch without an upstream reports zero ahead and behind.
        """
        porcelain = await self._git(directory, "status", "--porcelain")
        is_dirty = bool(porcelain.stdout.strip())

        counts = await run_command(
            [self.git_path, "rev-list", "--left-right", "--count", "@{u}...HEAD"],
            cwd=directory,
            timeout=self.local_timeout_seconds,
            check=False,
        )
        if not counts.ok:
            return is_dirty, 0, 0

        parsed = parse_ahead_behind(counts.stdout)
        if isinstance(parsed, ParseFailure):
            logger.debug(
                "Unparseable ahead/behind output",
                extra={"directory": str(directory), "reason": parsed.reason},
            )
            return is_dirty, 0, 0

        ahead, behind = parsed.value
        return is_dirty, ahead, behind

    async def read_snapshot(self, directory: Path) -> RepositorySnapshot:
        remote = await self.get_remote(directory)
        repository = parse_repository_id(remote)
        branch = await self.get_branch(directory)
        is_dirty, ahead, behind = await self.get_status(directory)
        return RepositorySnapshot(
            remote=remote,
            repository=repository,
            branch=branch,
            is_dirty=is_dirty,
            ahead=ahead,
            behind=behind,
        )

    async def clone(
        self,
        url: str,
        target: Path,
        branch: Optional[str] = None,
        depth: Optional[int] = 1,
    ) -> None:
        args = ["clone"]
        if depth:
            args += ["--depth", str(depth)]
        if branch:
            args += ["--branch", branch]
        args += [url, str(target)]

        await self._git(None, *args, network=True)
        logger.info(
            "Cloned repository",
            extra={"url": url, "target": str(target), "branch": branch},
        )

    async def create_branch(self, directory: Path, branch: str) -> None:
        await self._git(directory, "branch", branch)

    async def checkout(self, directory: Path, branch: str) -> None:
        await self._git(directory, "checkout", branch)

    async def commit(
        self, directory: Path, message: str, allow_empty: bool = False
    ) -> None:
        args = ["commit", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        await self._git(directory, *args)

    async def push(
        self,
        directory: Path,
        branch: str,
        set_upstream: bool = True,
        force_with_lease: bool = False,
    ) -> None:
        args = ["push"]
        if force_with_lease:
            args.append("--force-with-lease")
        if set_upstream:
            args.append("--set-upstream")
        args += ["origin", branch]

        await self._git(directory, *args, network=True)
        logger.info(
            "Pushed branch",
            extra={"directory": str(directory), "branch": branch},
        )
