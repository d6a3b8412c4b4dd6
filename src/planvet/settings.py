"""Runtime settings and environment diagnostics.

Settings come from environment variables (the CLI loads ``.env`` first);
defaults live in ``planvet.config.defaults``.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from planvet.config.defaults import (
    CODEX_BINARY_DEFAULT,
    CONTEXT7_BASE_URL_DEFAULT,
    INVOKE_DEFAULT_TIMEOUT_MS,
    OPENAI_BASE_URL_DEFAULT,
    OPENAI_MODEL_DEFAULT,
)
from planvet.errors import ConfigurationError


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


@dataclass
class Settings:
    """Configuration for backends, best-practice lookups and auditing."""

    openai_api_key: Optional[str] = None
    openai_model: str = OPENAI_MODEL_DEFAULT
    openai_base_url: str = OPENAI_BASE_URL_DEFAULT
    codex_binary: str = CODEX_BINARY_DEFAULT
    timeout_ms: int = INVOKE_DEFAULT_TIMEOUT_MS
    context7_api_key: Optional[str] = None
    context7_url: str = CONTEXT7_BASE_URL_DEFAULT
    audit_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Raises:
            ConfigurationError: PLANVET_TIMEOUT_SECONDS is not a positive number.
        """
        timeout_ms = INVOKE_DEFAULT_TIMEOUT_MS
        raw_timeout = _env("PLANVET_TIMEOUT_SECONDS")
        if raw_timeout is not None:
            try:
                seconds = float(raw_timeout)
            except ValueError:
                raise ConfigurationError(
                    f"PLANVET_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}"
                ) from None
            if seconds <= 0:
                raise ConfigurationError("PLANVET_TIMEOUT_SECONDS must be positive")
            timeout_ms = int(seconds * 1000)

        audit_path = _env("PLANVET_AUDIT_PATH")
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_model=_env("PLANVET_OPENAI_MODEL") or OPENAI_MODEL_DEFAULT,
            openai_base_url=_env("PLANVET_OPENAI_BASE_URL") or OPENAI_BASE_URL_DEFAULT,
            codex_binary=_env("PLANVET_CODEX_BINARY") or CODEX_BINARY_DEFAULT,
            timeout_ms=timeout_ms,
            context7_api_key=_env("CONTEXT7_API_KEY"),
            context7_url=_env("PLANVET_CONTEXT7_URL") or CONTEXT7_BASE_URL_DEFAULT,
            audit_path=Path(audit_path) if audit_path else None,
        )


@dataclass
class EnvValidationResult:
    """Result of environment validation."""

    codex_cli_found: bool
    openai_key_set: bool
    context7_key_set: bool
    is_valid: bool
    missing_required: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "codex_cli_found": self.codex_cli_found,
            "openai_configured": self.openai_key_set,
            "context7_configured": self.context7_key_set,
            "is_valid": self.is_valid,
            "missing_required": self.missing_required,
            "warnings": self.warnings,
        }


def validate_environment(settings: Optional[Settings] = None) -> EnvValidationResult:
    """
    Check that at least one execution path is usable.

    Only looks for the Codex executable on PATH; whether it is logged in is
    discovered on first use.

    Returns:
        EnvValidationResult with configuration status and any warnings
    """
    settings = settings or Settings.from_env()
    codex_found = shutil.which(settings.codex_binary) is not None
    openai_set = bool(settings.openai_api_key)

    missing_required = []
    warnings = []

    if not codex_found and not openai_set:
        missing_required.append(
            "Codex CLI on PATH (npm install -g @openai/codex) or OPENAI_API_KEY"
        )
    elif not codex_found:
        warnings.append("Codex CLI not found; every validation will use the metered OpenAI API")
    elif not openai_set:
        warnings.append("OPENAI_API_KEY not set; no fallback when Codex CLI quota runs out")

    if not settings.context7_api_key:
        warnings.append("CONTEXT7_API_KEY not set; best-practice lookups may be rate limited")

    return EnvValidationResult(
        codex_cli_found=codex_found,
        openai_key_set=openai_set,
        context7_key_set=bool(settings.context7_api_key),
        is_valid=not missing_required,
        missing_required=missing_required,
        warnings=warnings,
    )
