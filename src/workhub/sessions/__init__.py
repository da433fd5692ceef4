"""Terminal multiplexer session adapters."""

from src.workhub.sessions.tmux import SESSION_FORMAT, TmuxSessions, parse_session_line

__all__ = ["SESSION_FORMAT", "TmuxSessions", "parse_session_line"]
