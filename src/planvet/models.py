"""Data model for plan validation.

Backends, invocation requests/outcomes, the structured analysis record and
derived change proposals. Everything here is plain data with ``to_dict()``
for JSON output; no I/O happens in this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class BackendKind(Enum):
    """Analysis backends. Exactly one is active per invocation."""
    PRIMARY = "codex_cli"
    SECONDARY = "openai_api"


class FailureKind(Enum):
    """Classification of a backend invocation result.

    This is the only signal the orchestrator uses for failover decisions.
    """
    NONE = "none"
    NOT_INSTALLED = "not_installed"
    TIMEOUT = "timeout"
    QUOTA_EXHAUSTED = "quota_exhausted"
    PROCESS_ERROR = "process_error"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Complexity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChangeKind(Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    DEPENDENCY_ADD = "dependency_add"
    CONFIG_CHANGE = "config_change"


class Impact(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


# =============================================================================
# Invocation
# =============================================================================


@dataclass(frozen=True)
class InvocationRequest:
    """One logical validation request. Immutable once constructed."""
    plan_text: str
    working_directory: Path
    destructive: bool = False
    timeout_ms: int = 5 * 60 * 1000
    extra_context: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.plan_text, str) or not self.plan_text.strip():
            raise ValueError("plan_text must be a non-empty string")
        if not isinstance(self.timeout_ms, int) or self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be a positive integer, got {self.timeout_ms!r}")
        if not isinstance(self.working_directory, Path):
            object.__setattr__(self, "working_directory", Path(self.working_directory))

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def mode(self) -> str:
        return "apply" if self.destructive else "suggest"


@dataclass
class InvocationOutcome:
    """Raw result of running one backend once.

    ``raw_stdout``/``raw_stderr`` are kept verbatim. A quota error may coexist
    with partial output, so callers must look at ``failure_kind`` rather than
    ``succeeded`` when deciding what to do next.
    """
    backend: BackendKind
    succeeded: bool
    raw_stdout: str = ""
    raw_stderr: str = ""
    failure_kind: FailureKind = FailureKind.NONE
    exit_info: Optional[int] = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    # Agent prose unwrapped from an event stream, when the backend emits one
    analysis_text: Optional[str] = None

    @property
    def raw_text(self) -> str:
        """Text handed to the extraction engines."""
        return self.analysis_text or self.raw_stdout or self.raw_stderr

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend.value,
            "succeeded": self.succeeded,
            "failure_kind": self.failure_kind.value,
            "exit_info": self.exit_info,
            "error": self.error,
            "raw_stdout": self.raw_stdout,
            "raw_stderr": self.raw_stderr,
            "duration_ms": round(self.duration_ms, 1),
        }


# =============================================================================
# Analysis record
# =============================================================================


@dataclass
class FeasibilityAnalysis:
    score: int
    blockers: List[str] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    missing_dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "blockers": list(self.blockers),
            "risks": list(self.risks),
            "missing_dependencies": list(self.missing_dependencies),
        }


@dataclass
class Suggestion:
    kind: str
    description: str
    recommendation: str
    severity: Severity = Severity.INFO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "description": self.description,
            "recommendation": self.recommendation,
            "severity": self.severity.value,
        }


@dataclass
class ReviewAnalysis:
    suggestions: List[Suggestion] = field(default_factory=list)
    violations: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestions": [s.to_dict() for s in self.suggestions],
            "violations": list(self.violations),
            "improvements": list(self.improvements),
        }


@dataclass
class CompletenessAnalysis:
    completeness: int
    gaps: List[str] = field(default_factory=list)
    complexity: Complexity = Complexity.MEDIUM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completeness": self.completeness,
            "gaps": list(self.gaps),
            "complexity": self.complexity.value,
        }


@dataclass
class ValidationRecord:
    """Structured verdict for one backend outcome. Never null."""
    feasibility: FeasibilityAnalysis
    review: ReviewAnalysis
    completeness: CompletenessAnalysis
    changes_applied: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feasibility": self.feasibility.to_dict(),
            "review": self.review.to_dict(),
            "completeness": self.completeness.to_dict(),
            "changes_applied": list(self.changes_applied),
        }


# =============================================================================
# Change proposals
# =============================================================================


@dataclass(frozen=True)
class ChangeProposal:
    """Best-effort reading of backend prose; not a filesystem diff."""
    kind: ChangeKind
    target_path: str
    description: str
    impact: Impact
    diff: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target_path": self.target_path,
            "description": self.description,
            "impact": self.impact.value,
            "diff": self.diff,
        }


@dataclass
class ConfirmationRequest:
    message: str
    requires_approval: bool
    high_impact_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "requires_approval": self.requires_approval,
            "high_impact_count": self.high_impact_count,
        }


@dataclass
class ApplicationAudit:
    succeeded: bool
    applied: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "applied": list(self.applied),
            "failed": list(self.failed),
            "partial": self.partial,
        }


# =============================================================================
# Orchestration
# =============================================================================


@dataclass(frozen=True)
class OrchestratorState:
    """Snapshot of a session's availability and sticky fallback state."""
    primary_available: bool
    secondary_configured: bool
    fallback_ever_triggered: bool = False
    fallback_reason: Optional[str] = None

    @property
    def current_backend(self) -> Optional[BackendKind]:
        if self.primary_available:
            return BackendKind.PRIMARY
        if self.secondary_configured:
            return BackendKind.SECONDARY
        return None

    def to_dict(self) -> Dict[str, Any]:
        current = self.current_backend
        return {
            "primary_available": self.primary_available,
            "secondary_configured": self.secondary_configured,
            "current_backend": current.value if current else None,
            "fallback_ever_triggered": self.fallback_ever_triggered,
            "fallback_reason": self.fallback_reason,
        }


@dataclass
class Provenance:
    """Which backend produced the outcome and how it got there."""
    backend: BackendKind
    attempted: List[BackendKind] = field(default_factory=list)
    fallback_occurred: bool = False
    fallback_reason: Optional[str] = None
    session_fallback_triggered: bool = False
    session_fallback_reason: Optional[str] = None
    phases: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend.value,
            "attempted": [b.value for b in self.attempted],
            "fallback_occurred": self.fallback_occurred,
            "fallback_reason": self.fallback_reason,
            "session_fallback_triggered": self.session_fallback_triggered,
            "session_fallback_reason": self.session_fallback_reason,
            "phases": list(self.phases),
        }
