"""Context handover into newly created sessions."""

from src.workhub.handover.protocol import (
    HandoverProtocol,
    build_handover_message,
    quote_for_shell,
)

__all__ = ["HandoverProtocol", "build_handover_message", "quote_for_shell"]
