"""Exception types shared across planvet."""

from __future__ import annotations


class PlanvetError(Exception):
    """Base class for planvet errors."""
    pass


class ConfigurationError(PlanvetError):
    """Raised when no execution path can ever succeed (fatal, never retried)."""
    pass


class PlanInputError(PlanvetError):
    """Raised when the plan to validate is missing, unreadable or empty."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class DeadlineExceeded(PlanvetError):
    """Raised by the cancellation primitive when work outlives its deadline."""

    def __init__(self, timeout: float, escalated: bool = False):
        super().__init__(f"Deadline of {timeout:.3f}s exceeded")
        self.timeout = timeout
        self.escalated = escalated
