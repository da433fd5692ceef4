"""Tests for assistant response parsing, fallback metadata and adapters."""

from __future__ import annotations

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from hypothesis import given, settings, strategies as st
from langchain_core.messages import AIMessage

from src.workhub.assistant.cli import (
    ClaudeCliAssistant,
    build_metadata_prompt,
    parse_assistant_response,
)
from src.workhub.assistant.llm import LLMAssistant
from src.workhub.assistant.metadata import MetadataGenerator, fallback_metadata
from src.workhub.errors import AssistantError, CommandError
from src.workhub.models import AssistantMetadata
from src.workhub.parsing import ParseFailure
from src.workhub.process import CommandResult


def run_async(coro):
    return asyncio.run(coro)


class TestParseAssistantResponse:
    def test_reads_three_lines(self):
        output = (
            "Sure!\n"
            "BRANCH: feat/dark-mode\n"
            "TITLE: feat: add dark mode toggle\n"
            "BODY: Adds a toggle to the settings page.\n"
        )

        metadata = parse_assistant_response(output).value

        assert metadata.branch_name == "feat/dark-mode"
        assert metadata.title == "feat: add dark mode toggle"
        assert metadata.body == "Adds a toggle to the settings page."

    def test_long_title_is_truncated(self):
        output = f"BRANCH: feat/x\nTITLE: feat: {'y' * 100}\nBODY: b"

        assert len(parse_assistant_response(output).value.title) == 72

    @pytest.mark.parametrize(
        "output",
        ["", "BRANCH: feat/x\nTITLE: t", "TITLE: t\nBODY: b", "BRANCH:   \nTITLE: t\nBODY: b"],
    )
    def test_missing_lines_fail(self, output):
        assert isinstance(parse_assistant_response(output), ParseFailure)

    def test_prompt_includes_guidelines(self):
        prompt = build_metadata_prompt("Add login", "Branch format: feat/<topic>")

        assert "User's request: Add login" in prompt
        assert "Branch format: feat/<topic>" in prompt


class TestFallbackMetadata:
    def test_title_from_first_clause(self):
        metadata = fallback_metadata("Add dark mode toggle", now_ms=1700000000000, token="a1b2c3")

        assert metadata.title == "feat: Add dark mode toggle"
        assert metadata.branch_name == "feat/task-1700000000000-a1b2c3"
        assert metadata.body == "Working on: Add dark mode toggle"

    def test_first_clause_stops_at_sentence_end(self):
        assert fallback_metadata("Fix crash! Then tidy up.").title == "feat: Fix crash"

    @given(task=st.text(min_size=1).filter(lambda text: text.strip()))
    @settings(max_examples=100)
    def test_always_valid(self, task):
        metadata = fallback_metadata(task)

        assert metadata.title.startswith("feat:")
        assert len(metadata.title) <= 72
        assert re.fullmatch(r"feat/task-\d+-[0-9a-f]{6}", metadata.branch_name)


class TestMetadataGenerator:
    def test_uses_assistant_answer(self, fakes):
        expected = AssistantMetadata(branch_name="fix/x", title="fix: x", body="")
        assistant = fakes.Assistant(expected)

        metadata, used_fallback = run_async(
            MetadataGenerator(assistant, guidelines="G").generate("Fix x")
        )

        assert metadata == expected
        assert used_fallback is False
        assert assistant.calls == [("Fix x", "G")]

    def test_no_assistant_uses_fallback(self):
        metadata, used_fallback = run_async(MetadataGenerator().generate("Add x"))

        assert used_fallback is True
        assert metadata.title == "feat: Add x"

    def test_failing_assistant_uses_fallback(self, fakes):
        _, used_fallback = run_async(MetadataGenerator(fakes.Assistant(None)).generate("Add x"))

        assert used_fallback is True

    def test_availability_check_errors_use_fallback(self):
        assistant = MagicMock()
        assistant.is_available = AsyncMock(side_effect=RuntimeError("availability check crashed"))

        _, used_fallback = run_async(MetadataGenerator(assistant).generate("Add x"))

        assert used_fallback is True


class TestClaudeCliAssistant:
    def test_runs_print_mode_and_parses(self):
        mock_run = AsyncMock(
            return_value=CommandResult(
                exit_code=0,
                stdout="BRANCH: feat/a\nTITLE: feat: a\nBODY: does a\n",
                stderr="",
            )
        )

        with patch("src.workhub.assistant.cli.run_command", mock_run):
            metadata = run_async(ClaudeCliAssistant(model="haiku").generate_metadata("Do a"))

        args = mock_run.call_args.args[0]
        assert args[:2] == ["claude", "-p"]
        assert args[-2:] == ["--model", "haiku"]
        assert metadata.branch_name == "feat/a"

    def test_command_failure_becomes_assistant_error(self):
        mock_run = AsyncMock(side_effect=CommandError(["claude"], "timed out after 30s"))

        with patch("src.workhub.assistant.cli.run_command", mock_run):
            with pytest.raises(AssistantError):
                run_async(ClaudeCliAssistant().generate_metadata("Do a"))

    def test_unparseable_answer_becomes_assistant_error(self):
        mock_run = AsyncMock(
            return_value=CommandResult(exit_code=0, stdout="I cannot help", stderr="")
        )

        with patch("src.workhub.assistant.cli.run_command", mock_run):
            with pytest.raises(AssistantError):
                run_async(ClaudeCliAssistant().generate_metadata("Do a"))

    def test_availability_follows_path_lookup(self):
        with patch("src.workhub.assistant.cli.shutil.which", return_value=None):
            assert run_async(ClaudeCliAssistant().is_available()) is False


class TestLLMAssistant:
    def _assistant(self, content):
        assistant = LLMAssistant(llm_url="http://vllm:8000/v1", model_name="test-model")
        assistant._llm = MagicMock()
        assistant._llm.ainvoke = AsyncMock(return_value=AIMessage(content=content))
        return assistant

    def test_parses_fenced_json(self):
        assistant = self._assistant(
            '```json\n{"branch_name": "feat/a", "title": "feat: a", "body": "b"}\n```'
        )

        metadata = run_async(assistant.generate_metadata("Do a", guidelines="G"))

        assert metadata == AssistantMetadata(branch_name="feat/a", title="feat: a", body="b")
        messages = assistant._llm.ainvoke.call_args.args[0]
        assert "Project guidelines:\nG" in messages[1].content

    def test_invalid_json_raises(self):
        with pytest.raises(AssistantError):
            run_async(self._assistant("not json").generate_metadata("Do a"))

    def test_missing_fields_raise(self):
        with pytest.raises(AssistantError):
            run_async(self._assistant('{"title": "feat: a"}').generate_metadata("Do a"))

    def test_non_object_answer_raises(self):
        with pytest.raises(AssistantError):
            run_async(self._assistant('["feat/a"]').generate_metadata("Do a"))
