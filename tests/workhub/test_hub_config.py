"""Tests for HubSettings loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.workhub.config import HubSettings, get_settings


@pytest.fixture
def repo_env(monkeypatch):
    monkeypatch.setenv("WORKHUB_REPO_URL", "git@github.com:acme/widgets.git")
    return monkeypatch


class TestHubSettings:
    def test_defaults(self, repo_env):
        settings = get_settings()

        assert settings.repo_name == "acme/widgets"
        assert settings.base_branch == "main"
        assert settings.session_prefix == "wh-"
        assert settings.workspace_cache_ttl_seconds == 30.0
        assert settings.review_cache_ttl_seconds == 3600.0
        assert settings.simulate_writes is False
        assert settings.assistant_backend == "cli"
        assert settings.clones_path.is_absolute()

    def test_reads_prefixed_environment(self, repo_env):
        repo_env.setenv("WORKHUB_SIMULATE_WRITES", "true")
        repo_env.setenv("WORKHUB_CLONES_DIR", "/srv/clones")
        repo_env.setenv("WORKHUB_REPO_NAME", "acme/fork")
        repo_env.setenv("workhub_port", "9090")

        settings = HubSettings()

        assert settings.simulate_writes is True
        assert settings.clones_path == Path("/srv/clones")
        assert settings.repo_name == "acme/fork"
        assert settings.port == 9090

    def test_repo_url_is_required(self, monkeypatch):
        monkeypatch.delenv("WORKHUB_REPO_URL", raising=False)

        with pytest.raises(ValidationError):
            HubSettings()

    @pytest.mark.parametrize(
        "field,value",
        [
            ("repo_url", "/srv/git/widgets.git"),
            ("clones_dir", "relative/clones"),
            ("assistant_backend", "telepathy"),
            ("workspace_cache_ttl_seconds", 0),
            ("port", 70000),
            ("session_prefix", "  "),
        ],
    )
    def test_invalid_values(self, repo_env, field, value):
        with pytest.raises(ValidationError):
            HubSettings(**{field: value})

    def test_llm_backend_requires_url(self, repo_env):
        with pytest.raises(ValidationError):
            HubSettings(assistant_backend="llm")

        settings = HubSettings(assistant_backend="LLM", llm_url="http://vllm:8000/v1")
        assert settings.assistant_backend == "llm"

    def test_guidelines_text(self, repo_env):
        settings = HubSettings(branch_format="feat/<topic>", commit_format="feat: <summary>")

        assert settings.guidelines_text() == (
            "Branch format: feat/<topic>\nCommit format: feat: <summary>"
        )
        assert HubSettings().guidelines_text() == ""
