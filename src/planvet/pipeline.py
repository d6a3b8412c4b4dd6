"""Plan validation pipeline.

One call per plan:

1. read the plan (inline content, or a file relative to the project)
2. detect technologies and pass them to the backend as prompt context
3. run the orchestrated backend call (Codex CLI, failing over to OpenAI)
4. extract the structured record from the final outcome
5. cross-reference best practices through Context7 (optional, advisory)
6. derive change proposals and the confirmation prompt when asked
7. audit applied changes in apply mode
8. decide pass / warn / fail
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from planvet.audit import ValidationAuditor
from planvet.best_practices import BestPracticeResult, Context7Client
from planvet.changes import audit_applied, propose_changes, request_confirmation
from planvet.config.defaults import (
    INVOKE_DEFAULT_TIMEOUT_MS,
    STATUS_FAIL_BELOW_SCORE,
    STATUS_WARN_BELOW_SCORE,
)
from planvet.errors import PlanInputError
from planvet.extraction import extract_outcome
from planvet.models import (
    ApplicationAudit,
    ChangeProposal,
    ConfirmationRequest,
    InvocationOutcome,
    InvocationRequest,
    Provenance,
    Severity,
    ValidationRecord,
)
from planvet.orchestrator import ExecutionSession
from planvet.tech_detector import (
    DetectedTechnology,
    detect_technologies,
    technology_context,
    technology_names,
)

logger = logging.getLogger(__name__)

# Backends often answer "Blockers: - none" rather than omitting the list
NO_BLOCKER_PLACEHOLDERS = {"none", "n/a", "na", "no blockers", "nothing"}


class ValidationStatus(Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class PlanValidationRequest:
    """Transport-level request. One of ``plan_path``/``plan_content`` is required."""
    plan_path: Optional[str] = None
    plan_content: Optional[str] = None
    project_path: Optional[Path] = None
    destructive: bool = False
    require_confirmation: bool = True
    timeout_ms: int = INVOKE_DEFAULT_TIMEOUT_MS
    include_proposals: bool = False

    def __post_init__(self):
        if not self.plan_path and not self.plan_content:
            raise PlanInputError("Either plan_path or plan_content must be provided")
        project = Path(self.project_path) if self.project_path else Path.cwd()
        object.__setattr__(self, "project_path", project)

    @property
    def wants_proposals(self) -> bool:
        return (self.destructive and self.require_confirmation) or self.include_proposals


@dataclass
class PlanValidationResponse:
    status: ValidationStatus
    record: ValidationRecord
    outcome: InvocationOutcome
    provenance: Provenance
    best_practices: BestPracticeResult
    technologies: List[DetectedTechnology] = field(default_factory=list)
    proposals: Optional[List[ChangeProposal]] = None
    confirmation: Optional[ConfirmationRequest] = None
    application_audit: Optional[ApplicationAudit] = None
    destructive: bool = False

    @property
    def mode(self) -> str:
        return "apply" if self.destructive else "suggest"

    @property
    def error(self) -> Optional[str]:
        return self.outcome.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validation_status": self.status.value,
            "mode": self.mode,
            "provenance": self.provenance.to_dict(),
            "record": self.record.to_dict(),
            "best_practices": self.best_practices.to_dict(),
            "technologies": [t.to_dict() for t in self.technologies],
            "proposed_changes": (
                [p.to_dict() for p in self.proposals] if self.proposals is not None else None
            ),
            "confirmation": self.confirmation.to_dict() if self.confirmation else None,
            "application_audit": (
                self.application_audit.to_dict() if self.application_audit else None
            ),
            "error": self.error,
            "raw_error": self.outcome.raw_stderr if not self.outcome.succeeded else None,
        }


async def read_plan(request: PlanValidationRequest) -> str:
    """Plan text from inline content or from a file under the project.

    Raises:
        PlanInputError: file missing/unreadable, or the plan is blank.
    """
    if request.plan_content:
        text = request.plan_content
    else:
        path = Path(request.plan_path)
        if not path.is_absolute():
            path = request.project_path / path
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                text = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PlanInputError(f"Failed to read plan file: {path}. {e}", path=str(path)) from e

    if not text.strip():
        raise PlanInputError("Plan is empty", path=request.plan_path)
    return text


def real_blockers(blockers: List[str]) -> List[str]:
    return [b for b in blockers if b.strip().rstrip(".").lower() not in NO_BLOCKER_PLACEHOLDERS]


def determine_status(
    outcome: InvocationOutcome,
    record: ValidationRecord,
    best_practices: BestPracticeResult,
) -> ValidationStatus:
    score = record.feasibility.score
    if (
        not outcome.succeeded
        or real_blockers(record.feasibility.blockers)
        or score < STATUS_FAIL_BELOW_SCORE
        or best_practices.has_severity(Severity.ERROR)
    ):
        return ValidationStatus.FAIL
    if score < STATUS_WARN_BELOW_SCORE or best_practices.has_severity(Severity.WARNING):
        return ValidationStatus.WARN
    return ValidationStatus.PASS


async def validate_plan(
    request: PlanValidationRequest,
    session: ExecutionSession,
    context7: Optional[Context7Client] = None,
    auditor: Optional[ValidationAuditor] = None,
) -> PlanValidationResponse:
    """Run one plan through the whole pipeline.

    Raises:
        PlanInputError: the plan could not be read.
        ConfigurationError: no backend is usable.
    """
    plan_text = await read_plan(request)
    project = request.project_path

    detected = detect_technologies(plan_text)
    names = technology_names(detected)
    logger.info(f"Detected {len(names)} technologies: {', '.join(names)}")

    invocation = InvocationRequest(
        plan_text=plan_text,
        working_directory=project,
        destructive=request.destructive,
        timeout_ms=request.timeout_ms,
        extra_context=technology_context(detected) or None,
    )
    result = await session.execute(invocation)
    outcome = result.outcome
    record = extract_outcome(outcome)

    if context7 is not None and names:
        observations = record.review.violations + record.review.improvements
        best_practices = await context7.validate(names, plan_text, observations)
    else:
        best_practices = BestPracticeResult(technologies_detected=names)

    proposals: Optional[List[ChangeProposal]] = None
    confirmation: Optional[ConfirmationRequest] = None
    if request.wants_proposals:
        proposals = propose_changes(outcome.raw_text) if outcome.succeeded else []
        confirmation = request_confirmation(proposals)
        if auditor is not None and confirmation.requires_approval:
            await auditor.log_confirmation(confirmation, len(proposals), project_root=project)

    application: Optional[ApplicationAudit] = None
    if request.destructive and record.changes_applied:
        if proposals is None:
            proposals = propose_changes(outcome.raw_text)
        application = audit_applied(proposals, record.changes_applied)
        if application.partial:
            logger.warning(f"Only some proposed changes were applied; missing: {application.failed}")
        if auditor is not None:
            await auditor.log_application(application, project_root=project)

    status = determine_status(outcome, record, best_practices)
    logger.info(f"Validation {status.value} via {result.provenance.backend.value}")

    return PlanValidationResponse(
        status=status,
        record=record,
        outcome=outcome,
        provenance=result.provenance,
        best_practices=best_practices,
        technologies=detected,
        proposals=proposals,
        confirmation=confirmation,
        application_audit=application,
        destructive=request.destructive,
    )
