"""Assistant CLI adapter.

Runs the assistant executable in print mode with a prompt asking for a
branch name, a title and a body, one per line, and decodes the answer
with parse_assistant_response.
"""

import logging
import re
import shutil
from typing import Optional

from pydantic import ValidationError

from src.workhub.errors import AssistantError, CommandError
from src.workhub.models import AssistantMetadata
from src.workhub.parsing import Parsed, ParseFailure, ParseResult
from src.workhub.process import run_command

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 72

_BRANCH_LINE = re.compile(r"BRANCH:[ \t]*(.+)")
_TITLE_LINE = re.compile(r"TITLE:[ \t]*(.+)")
_BODY_LINE = re.compile(r"BODY:[ \t]*(.+)")


def build_metadata_prompt(task_description: str, guidelines: Optional[str] = None) -> str:
    """Build the prompt asking for branch, title and body.

    Args:
        task_description: What the user wants done.
        guidelines: Optional naming guidelines, included verbatim.

    Returns:
        Prompt text for the assistant.
    """
    guideline_block = f"Guidelines:\n{guidelines}\n" if guidelines else ""
    return f"""You are helping set up a GitHub pull request. Based on the user's request, generate a branch name, title, and body.

User's request: {task_description}

{guideline_block}
Generate:
1. A branch name following the pattern TYPE/short-description (e.g., feat/add-dark-mode, fix/null-check)
2. A PR title following the pattern TYPE: description (e.g., "feat: add dark mode toggle")
3. A brief PR body (2-4 sentences) describing what will be done

Respond ONLY in this exact format (one line each):
BRANCH: <branch-name>
TITLE: <title>
BODY: <body>"""


def parse_assistant_response(output: str) -> "ParseResult[AssistantMetadata]":
    """Decode BRANCH/TITLE/BODY lines from the assistant's answer.

    The title is truncated to 72 characters.

    Returns:
        Parsed metadata, or ParseFailure naming the missing line.
    """
    matches = {}
    for name, pattern in (
        ("BRANCH", _BRANCH_LINE),
        ("TITLE", _TITLE_LINE),
        ("BODY", _BODY_LINE),
    ):
        match = pattern.search(output)
        if match is None or not match.group(1).strip():
            return ParseFailure(f"missing {name} line", raw=output[:200])
        matches[name] = match.group(1).strip()

    try:
        return Parsed(
            AssistantMetadata(
                branch_name=matches["BRANCH"],
                title=matches["TITLE"][:TITLE_MAX_LENGTH],
                body=matches["BODY"],
            )
        )
    except ValidationError as exc:
        return ParseFailure(f"invalid metadata: {exc.errors()[0]['msg']}", raw=output[:200])


class ClaudeCliAssistant:
    """AssistantPort backed by the ``claude`` command line tool.

    Attributes:
        command: Assistant executable.
        model: Model alias passed with ``--model``.
        timeout_seconds: Timeout for one generation.
    """

    def __init__(
        self,
        command: str = "claude",
        model: str = "haiku",
        timeout_seconds: float = 30,
    ):
        self.command = command
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def generate_metadata(
        self, task_description: str, guidelines: Optional[str] = None
    ) -> AssistantMetadata:
        prompt = build_metadata_prompt(task_description, guidelines)
        try:
            result = await run_command(
                [self.command, "-p", prompt, "--model", self.model],
                timeout=self.timeout_seconds,
            )
        except CommandError as exc:
            raise AssistantError(f"Assistant command failed: {exc.message}") from exc

        parsed = parse_assistant_response(result.stdout)
        if isinstance(parsed, ParseFailure):
            logger.warning(
                "Unparseable assistant response",
                extra={"reason": parsed.reason, "response_preview": parsed.raw},
            )
            raise AssistantError(f"Could not parse assistant response: {parsed.reason}")
        return parsed.value

    async def is_available(self) -> bool:
        return shutil.which(self.command) is not None
