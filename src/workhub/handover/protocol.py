"""Handover of task context to the assistant in a new session.

The context message is passed as one single-quoted shell argument of the
assistant's launch command, so the assistant receives it as its first
prompt. Delivery is fire-and-forget: nothing confirms the assistant read
it.
"""

import logging

from src.workhub.models import HandoverContext
from src.workhub.ports import SessionPort

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_COMMAND = "claude"


def build_handover_message(context: HandoverContext) -> str:
    """Render the context message delivered to the assistant."""
    guidelines = (
        f"Project guidelines:\n{context.guidelines}\n" if context.guidelines else ""
    )
    return (
        f"I'm working on PR #{context.request_number} "
        f"({context.branch} -> {context.base_branch}).\n"
        f"\n"
        f"User's request: {context.task_description}\n"
        f"\n"
        f"{guidelines}"
        f"\n"
        f"Please help me implement this. Start by:\n"
        f"1. Updating the PR title and description if needed\n"
        f"2. Understanding the codebase context\n"
        f"3. Implementing the requested changes\n"
        f"\n"
        f"Let me know when you're ready to start!"
    )


def quote_for_shell(text: str) -> str:
    """Wrap text in single quotes for a POSIX shell.

    Every embedded ``'`` closes the quoted string, adds an escaped quote
    and reopens it (``'`` becomes ``'\\''``).
    """
    return "'" + text.replace("'", "'\\''") + "'"


class HandoverProtocol:
    """Starts the assistant inside a session with the task context.

    Attributes:
        sessions: Session port used to type the command.
        launch_command: Assistant executable started in the session.
    """

    def __init__(self, sessions: SessionPort, launch_command: str = DEFAULT_LAUNCH_COMMAND):
        self.sessions = sessions
        self.launch_command = launch_command

    def build_command(self, context: HandoverContext) -> str:
        return f"{self.launch_command} {quote_for_shell(build_handover_message(context))}"

    async def initialize(self, session_id: str, context: HandoverContext) -> None:
        """Launch the assistant in ``session_id`` with the context message.

        Raises:
            CommandError: If the text cannot be sent to the session.
        """
        await self.sessions.send_text(session_id, self.build_command(context))
        logger.info(
            "Handover sent",
            extra={"session_id": session_id, "pr_number": context.request_number},
        )
