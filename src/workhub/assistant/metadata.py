"""Review request metadata with a deterministic fallback.

MetadataGenerator asks the configured assistant first. When no assistant
is configured, it is unavailable, or it fails, the metadata is derived
from the task text instead, so provisioning never stops at this step.
"""

import logging
import re
import time
import uuid
from typing import Optional, Tuple

from src.workhub.models import AssistantMetadata
from src.workhub.ports import AssistantPort

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 72

_CLAUSE_END = re.compile(r"[.!?\n]")


def fallback_metadata(
    task_description: str, now_ms: Optional[int] = None, token: Optional[str] = None
) -> AssistantMetadata:
    """Derive metadata from the task text alone.

    Args:
        task_description: Task text, assumed non-blank.
        now_ms: Epoch milliseconds used in the branch name (defaults to now).
        token: Suffix that keeps branches from concurrent runs apart
            (defaults to six random hex digits).

    Returns:
        Branch ``feat/task-<epoch-ms>-<token>``, title ``feat: <first clause>``
        truncated to 72 characters, body ``Working on: <task>``.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if token is None:
        token = uuid.uuid4().hex[:6]
    first_clause = _CLAUSE_END.split(task_description, maxsplit=1)[0].strip()
    if not first_clause:
        first_clause = task_description.strip()
    return AssistantMetadata(
        branch_name=f"feat/task-{now_ms}-{token}",
        title=f"feat: {first_clause}"[:TITLE_MAX_LENGTH],
        body=f"Working on: {task_description}",
    )


class MetadataGenerator:
    """Generates branch, title and body for a new review request.

    Attributes:
        assistant: Optional assistant; None always uses the fallback.
        guidelines: Naming guidelines passed to the assistant.
    """

    def __init__(
        self,
        assistant: Optional[AssistantPort] = None,
        guidelines: Optional[str] = None,
    ):
        self.assistant = assistant
        self.guidelines = guidelines

    async def generate(self, task_description: str) -> Tuple[AssistantMetadata, bool]:
        """Produce metadata for a task. Never raises for assistant failures.

        Returns:
            ``(metadata, used_fallback)``.
        """
        if self.assistant is None:
            return fallback_metadata(task_description), True

        try:
            if not await self.assistant.is_available():
                logger.info("Assistant unavailable, using fallback metadata")
                return fallback_metadata(task_description), True
            metadata = await self.assistant.generate_metadata(
                task_description, guidelines=self.guidelines or None
            )
        except Exception as e:
            logger.warning(
                "Assistant metadata generation failed, using fallback",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return fallback_metadata(task_description), True

        return metadata, False
