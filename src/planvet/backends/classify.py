"""Failure classification for backend output.

Quota and rate-limit detection is plain phrase matching over the combined
stdout and stderr text, case-insensitive. A match wins over the exit code:
a backend can print partial analysis and still be out of quota.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from planvet.models import FailureKind

logger = logging.getLogger(__name__)

# =============================================================================
# Quota / rate-limit signatures
# =============================================================================

QUOTA_PATTERNS = {
    "rate_limit": [
        "rate limit",
        "rate_limit",
        "rate limit reached",
        "too many requests",
    ],
    "quota_exceeded": [
        "quota exceeded",
        "quota_exceeded",
        "insufficient_quota",
        "exceeded your current quota",
        "usage limit",
    ],
    # The bare word "billing" is not a signature; plan text echoed back by the
    # backend talks about billing features often enough to cause false failover.
    "billing_limit": [
        "billing hard limit",
        "billing_hard_limit",
    ],
}

# HTTP 429 as a standalone number, not part of a longer token like "14290".
_STATUS_429 = re.compile(r"(?<![\w.])429(?![\w.])")


def quota_signature(text: str) -> Optional[str]:
    """Return the matched quota phrase category, or None."""
    if not text:
        return None
    text_lower = text.lower()
    for category, patterns in QUOTA_PATTERNS.items():
        for pattern in patterns:
            if pattern in text_lower:
                return category
    if _STATUS_429.search(text_lower):
        return "status_429"
    return None


def is_quota_error(text: str) -> bool:
    """Check if text indicates quota exhaustion or rate limiting."""
    return quota_signature(text) is not None


def classify_output(
    stdout: str,
    stderr: str,
    exit_code: Optional[int],
) -> FailureKind:
    """Classify a finished backend run.

    Args:
        stdout: Captured standard output (may be partial).
        stderr: Captured standard error.
        exit_code: Process exit code, or HTTP-equivalent; None if unknown.

    Returns:
        QUOTA_EXHAUSTED on any quota phrase, PROCESS_ERROR on a non-zero exit,
        NONE otherwise.
    """
    category = quota_signature(f"{stdout}\n{stderr}")
    if category:
        logger.warning(f"Quota signature detected: {category}")
        return FailureKind.QUOTA_EXHAUSTED
    if exit_code is not None and exit_code != 0:
        return FailureKind.PROCESS_ERROR
    return FailureKind.NONE
