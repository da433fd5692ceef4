"""tmux-backed workspace sessions.

Wraps the tmux CLI with asyncio subprocesses. Session listings are
requested in a fixed pipe-separated format and decoded with
parse_session_line, which returns a tagged result so one malformed line
never hides the rest of the listing.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from src.workhub.errors import CommandError, ExternalServiceError
from src.workhub.models import WorkspaceSession
from src.workhub.parsing import Parsed, ParseFailure, ParseResult
from src.workhub.process import run_command

logger = logging.getLogger(__name__)

SESSION_FORMAT = (
    "#{session_name}|#{pane_current_path}|#{session_created}|#{session_attached}"
)

# tmux prints this on stderr when no server is running
_NO_SERVER_MARKERS = ("no server running", "error connecting to", "no sessions")


def parse_session_line(line: str) -> "ParseResult[WorkspaceSession]":
    """Decode one line of ``tmux list-sessions -F SESSION_FORMAT`` output.

    Args:
        line: A single output line.

    Returns:
        Parsed session, or ParseFailure describing the malformed field.
    """
    parts = line.rstrip("\n").split("|")
    if len(parts) != 4:
        return ParseFailure("expected 4 fields", raw=line[:200])

    name, path, created, attached = parts
    if not name:
        return ParseFailure("empty session name", raw=line[:200])

    try:
        created_at = datetime.fromtimestamp(int(created), tz=timezone.utc)
    except ValueError:
        return ParseFailure("session_created is not an epoch", raw=line[:200])

    return Parsed(
        WorkspaceSession(
            id=name,
            working_dir=Path(path) if path else Path("."),
            created=created_at,
            attached=attached.strip() not in ("", "0"),
        )
    )


class TmuxSessions:
    """SessionPort implementation on top of the tmux CLI.

    Attributes:
        tmux_path: tmux executable.
        timeout_seconds: Timeout applied to every tmux call.
        default_command: Command started in new sessions.
    """

    def __init__(
        self,
        tmux_path: str = "tmux",
        timeout_seconds: float = 10,
        default_command: Optional[str] = None,
    ):
        self.tmux_path = tmux_path
        self.timeout_seconds = timeout_seconds
        self.default_command = default_command

    async def list_sessions(self, prefix: str = "") -> List[WorkspaceSession]:
        result = await run_command(
            [self.tmux_path, "list-sessions", "-F", SESSION_FORMAT],
            timeout=self.timeout_seconds,
            check=False,
        )
        if not result.ok:
            if _is_no_server(result.stderr):
                return []
            raise CommandError(
                ["tmux", "list-sessions"],
                result.stderr.strip() or f"exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        sessions: List[WorkspaceSession] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            parsed = parse_session_line(line)
            if isinstance(parsed, ParseFailure):
                logger.warning(
                    "Skipping malformed tmux session line",
                    extra={"reason": parsed.reason, "line": parsed.raw},
                )
                continue
            if parsed.value.id.startswith(prefix):
                sessions.append(parsed.value)
        return sessions

    async def get_session(self, session_id: str) -> Optional[WorkspaceSession]:
        for session in await self.list_sessions():
            if session.id == session_id:
                return session
        return None

    async def exists(self, session_id: str) -> bool:
        result = await run_command(
            [self.tmux_path, "has-session", "-t", f"={session_id}"],
            timeout=self.timeout_seconds,
            check=False,
        )
        return result.ok

    async def create_session(
        self,
        session_id: str,
        working_dir: Path,
        command: Optional[str] = None,
    ) -> WorkspaceSession:
        """Create a detached session and return it as listed by tmux.

        Raises:
            CommandError: If tmux refuses to create the session.
            ExternalServiceError: If the session is missing right after creation.
        """
        args = [
            self.tmux_path,
            "new-session",
            "-d",
            "-s",
            session_id,
            "-c",
            str(working_dir),
        ]
        start_command = command or self.default_command
        if start_command:
            args.append(start_command)

        await run_command(args, timeout=self.timeout_seconds)

        session = await self.get_session(session_id)
        if session is None:
            raise ExternalServiceError(f"Session {session_id} vanished after creation")

        logger.info(
            "Created tmux session",
            extra={"session_id": session_id, "working_dir": str(working_dir)},
        )
        return session

    async def destroy_session(self, session_id: str) -> None:
        await run_command(
            [self.tmux_path, "kill-session", "-t", f"={session_id}"],
            timeout=self.timeout_seconds,
        )
        logger.info("Killed tmux session", extra={"session_id": session_id})

    async def send_text(self, session_id: str, text: str) -> None:
        # One send-keys call: the text as a single argument, then Enter.
        await run_command(
            [self.tmux_path, "send-keys", "-t", f"={session_id}:", text, "Enter"],
            timeout=self.timeout_seconds,
        )


def _is_no_server(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NO_SERVER_MARKERS)
