"""Default configuration values for planvet.

This module centralizes the hard-coded numbers (timeouts, scoring defaults,
extraction limits, status thresholds) into a single location. Other modules
import these constants instead of hard-coding values.

Usage:
    from planvet.config.defaults import (
        EXTRACTION_DEFAULT_SCORE,
        INVOKE_TERMINATE_GRACE_SECONDS,
    )
"""

from __future__ import annotations

# =============================================================================
# Invocation Defaults
# =============================================================================

INVOKE_DEFAULT_TIMEOUT_MS = 5 * 60 * 1000  # 5 minutes
INVOKE_TERMINATE_GRACE_SECONDS = 5.0  # SIGTERM -> SIGKILL window

# Primary backend (Codex CLI)
CODEX_BINARY_DEFAULT = "codex"
CODEX_PROBE_TIMEOUT_SECONDS = 15.0
CODEX_INSTALL_HINT = "Install it with: npm install -g @openai/codex, then run: codex login"

# Secondary backend (OpenAI chat completions)
OPENAI_BASE_URL_DEFAULT = "https://api.openai.com/v1"
OPENAI_MODEL_DEFAULT = "gpt-4o"
OPENAI_MAX_TOKENS = 4000
OPENAI_TEMPERATURE = 0.3
OPENAI_CONNECT_TIMEOUT_SECONDS = 10.0


# =============================================================================
# Extraction Defaults
# =============================================================================

EXTRACTION_DEFAULT_SCORE = 50  # neutral midpoint = "unknown"
EXTRACTION_DEFAULT_COMPLEXITY = "medium"
EXTRACTION_INCOMPLETE_MARKER = "Analysis incomplete"
EXTRACTION_SCORE_MIN = 0
EXTRACTION_SCORE_MAX = 100


# =============================================================================
# Change Proposal Defaults
# =============================================================================

CHANGE_TARGET_MAX_LENGTH = 200
CHANGE_NO_CHANGES_MESSAGE = "No changes detected."


# =============================================================================
# Validation Status Thresholds
# =============================================================================

STATUS_FAIL_BELOW_SCORE = 40
STATUS_WARN_BELOW_SCORE = 70


# =============================================================================
# Best Practices (Context7) Defaults
# =============================================================================

CONTEXT7_BASE_URL_DEFAULT = "https://mcp.context7.com/mcp"
CONTEXT7_MAX_TOKENS = 5000
CONTEXT7_MAX_CALLS = 3  # per validation
CONTEXT7_TIMEOUT_SECONDS = 30.0
CONTEXT7_MIN_KEYWORD_MATCHES = 2


# =============================================================================
# Technology Detection Defaults
# =============================================================================

TECH_IMPORT_WEIGHT = 0.4
TECH_KEYWORD_WEIGHT = 0.2
TECH_FILE_PATTERN_WEIGHT = 0.15
TECH_MIN_CONFIDENCE = 0.2


# =============================================================================
# File Names
# =============================================================================

STATE_DIR_NAME = ".planvet"
AUDIT_LOG_FILENAME = "audit.jsonl"
REPORT_FILENAME_DEFAULT = "validation-report.md"
