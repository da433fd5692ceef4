"""Hub configuration using pydantic-settings.

This module defines the HubSettings class that reads configuration from
environment variables with the WORKHUB_ prefix. Only the repository to
work on is required; everything else has a working default.
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.workhub.parsing import ParseFailure, try_parse_repository_id


class HubSettings(BaseSettings):
    """Workspace hub configuration from environment variables.

    All environment variables are prefixed with WORKHUB_ (e.g.,
    WORKHUB_REPO_URL).

    Required fields (must be set via environment variables):
    - repo_url: git URL of the repository workspaces are cloned from
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKHUB_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Repository Configuration
    # -------------------------------------------------------------------------
    # Full git URL that workspaces are cloned from
    repo_url: str

    # "owner/repo" on the review system; derived from repo_url when unset
    repo_name: Optional[str] = None

    # Branch new review requests target
    base_branch: str = "main"

    # -------------------------------------------------------------------------
    # Workspace Configuration
    # -------------------------------------------------------------------------
    # Directory holding the pr-<number> clones
    clones_dir: str = str(Path.home() / ".workhub" / "clones")

    # Prefix for sessions created by the hub
    session_prefix: str = "wh-"

    # Optional guideline lines passed to the assistant and the handover
    branch_format: Optional[str] = None
    commit_format: Optional[str] = None

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str = ""
    github_base_url: str = "https://api.github.com"

    # Record mutating review-system calls in memory instead of sending them
    simulate_writes: bool = False

    # Login used for "my review requests" when the caller does not say
    current_user: Optional[str] = None

    # -------------------------------------------------------------------------
    # Assistant Configuration
    # -------------------------------------------------------------------------
    # "cli" runs the assistant executable, "llm" calls an OpenAI-compatible URL
    assistant_backend: str = "cli"
    assistant_command: str = "claude"
    assistant_model: str = "haiku"
    assistant_timeout_seconds: int = 30
    llm_url: Optional[str] = None
    llm_model: str = "Qwen/Qwen2.5-Coder-14B-Instruct-GPTQ-Int4"

    # -------------------------------------------------------------------------
    # Cache Configuration
    # -------------------------------------------------------------------------
    workspace_cache_ttl_seconds: float = 30.0
    review_cache_ttl_seconds: float = 3600.0

    # -------------------------------------------------------------------------
    # External command timeouts
    # -------------------------------------------------------------------------
    git_timeout_seconds: int = 300
    tmux_timeout_seconds: int = 10

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("repo_url")
    @classmethod
    def validate_repo_url(cls, v: str) -> str:
        """Validate that the repository URL is a recognized git remote."""
        if not v or not v.strip():
            raise ValueError("repo_url cannot be empty")
        if isinstance(try_parse_repository_id(v), ParseFailure):
            raise ValueError(f"repo_url is not a recognized git remote: {v}")
        return v.strip()

    @field_validator("clones_dir")
    @classmethod
    def validate_clones_dir(cls, v: str) -> str:
        """Validate that the clones directory is an absolute path."""
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError("clones_dir must be an absolute path")
        return str(path)

    @field_validator("session_prefix", "base_branch")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @field_validator("assistant_backend")
    @classmethod
    def validate_assistant_backend(cls, v: str) -> str:
        """Validate that the assistant backend is known."""
        v = v.lower()
        if v not in ("cli", "llm"):
            raise ValueError("assistant_backend must be 'cli' or 'llm'")
        return v

    @field_validator("llm_url")
    @classmethod
    def validate_llm_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the LLM URL is a valid URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("llm_url must start with http:// or https://")
        return v

    @field_validator(
        "workspace_cache_ttl_seconds",
        "review_cache_ttl_seconds",
        "assistant_timeout_seconds",
        "git_timeout_seconds",
        "tmux_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def derive_repo_name(self) -> "HubSettings":
        if not self.repo_name:
            result = try_parse_repository_id(self.repo_url)
            if not isinstance(result, ParseFailure):
                self.repo_name = result.value
        if self.assistant_backend == "llm" and not self.llm_url:
            raise ValueError("llm_url is required when assistant_backend is 'llm'")
        return self

    @property
    def clones_path(self) -> Path:
        return Path(self.clones_dir)

    def guidelines_text(self) -> str:
        """Render the configured guidelines as one line per format."""
        parts = []
        if self.branch_format:
            parts.append(f"Branch format: {self.branch_format}")
        if self.commit_format:
            parts.append(f"Commit format: {self.commit_format}")
        return "\n".join(parts)


def get_settings() -> HubSettings:
    """Create and return a HubSettings instance.

    Returns:
        HubSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return HubSettings()
