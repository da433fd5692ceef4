"""Assistant adapters producing review request metadata."""

from src.workhub.assistant.cli import ClaudeCliAssistant, parse_assistant_response
from src.workhub.assistant.llm import LLMAssistant
from src.workhub.assistant.metadata import MetadataGenerator, fallback_metadata

__all__ = [
    "ClaudeCliAssistant",
    "LLMAssistant",
    "MetadataGenerator",
    "fallback_metadata",
    "parse_assistant_response",
]
