"""Analysis backends.

Primary is the Codex CLI (child process), Secondary is the OpenAI chat
completions API (HTTP). Both return tagged ``InvocationOutcome`` objects.
"""

from .classify import QUOTA_PATTERNS, classify_output, is_quota_error, quota_signature
from .codex_cli import CodexCliBackend
from .invoker import BackendInvoker
from .openai_api import OpenAIChatBackend

__all__ = [
    "QUOTA_PATTERNS",
    "classify_output",
    "is_quota_error",
    "quota_signature",
    "CodexCliBackend",
    "OpenAIChatBackend",
    "BackendInvoker",
]
