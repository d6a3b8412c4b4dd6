"""Execution Path Orchestrator.

Owns which backend handles a request:

1. Primary: Codex CLI (browser login, no API key needed)
2. Secondary: OpenAI API (OPENAI_API_KEY, metered) when Primary is missing or
   reports quota exhaustion

At most one failover hop happens per call; Secondary failures are terminal.
The session remembers that it ever degraded to Secondary (the sticky fallback
flag) until ``reset_fallback()`` is called.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from planvet.audit import ValidationAuditor
from planvet.backends import BackendInvoker, CodexCliBackend, OpenAIChatBackend
from planvet.errors import ConfigurationError
from planvet.models import (
    BackendKind,
    FailureKind,
    InvocationOutcome,
    InvocationRequest,
    OrchestratorState,
    Provenance,
)
from planvet.settings import Settings

logger = logging.getLogger(__name__)

REASON_QUOTA = "primary quota exhausted"
REASON_NOT_INSTALLED = "primary not installed"

NO_PATH_MESSAGE = (
    "No execution path available. Either install Codex CLI "
    "(npm install -g @openai/codex) or set OPENAI_API_KEY environment variable."
)


class Phase(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    INVOKING_PRIMARY = "invoking_primary"
    SUCCEEDED = "succeeded"
    FAILED_OVER = "failed_over"
    INVOKING_SECONDARY = "invoking_secondary"
    FAILED = "failed"


@dataclass
class ExecutionResult:
    """Final outcome of one ``execute`` call and how it was reached."""
    outcome: InvocationOutcome
    provenance: Provenance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.to_dict(),
            "provenance": self.provenance.to_dict(),
        }


class ExecutionSession:
    """Explicitly constructed orchestration session.

    Independent sessions share nothing, so tests can run several side by
    side. Within a session, concurrent ``execute`` calls share the probe
    result and the sticky fallback flag.
    """

    def __init__(
        self,
        invoker: BackendInvoker,
        auditor: Optional[ValidationAuditor] = None,
    ):
        self.invoker = invoker
        self.auditor = auditor
        self._primary_available: Optional[bool] = None
        self._secondary_configured: Optional[bool] = None
        self._probe: Optional[asyncio.Future] = None
        self._lock = threading.Lock()
        self._fallback_triggered = False
        self._fallback_reason: Optional[str] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        auditor: Optional[ValidationAuditor] = None,
    ) -> "ExecutionSession":
        invoker = BackendInvoker(
            primary=CodexCliBackend(binary=settings.codex_binary),
            secondary=OpenAIChatBackend(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url,
            ),
        )
        return cls(invoker, auditor=auditor)

    @property
    def phase(self) -> Phase:
        return Phase.UNINITIALIZED if self._primary_available is None else Phase.READY

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    async def _probe_backends(self) -> Tuple[bool, bool]:
        primary = await self.invoker.probe_primary()
        secondary = self.invoker.secondary_configured()

        if primary:
            logger.info("Codex CLI is installed and available")
        else:
            logger.warning("Codex CLI not found - will use OpenAI API if available")
        if secondary:
            logger.info("OpenAI API fallback is available")
        else:
            logger.warning("OPENAI_API_KEY not set - fallback unavailable")
        return primary, secondary

    async def initialize(self) -> OrchestratorState:
        """Probe both backends once; repeat and concurrent callers share the probe.

        Raises:
            ConfigurationError: neither backend is usable.
        """
        if self._probe is None:
            self._probe = asyncio.ensure_future(self._probe_backends())
        # shield: one cancelled caller must not cancel the probe for the others
        primary, secondary = await asyncio.shield(self._probe)
        self._primary_available = primary
        self._secondary_configured = secondary

        if not primary and not secondary:
            raise ConfigurationError(NO_PATH_MESSAGE)
        return self.status()

    # -------------------------------------------------------------------------
    # Sticky fallback
    # -------------------------------------------------------------------------

    def _mark_fallback(self, reason: str) -> bool:
        """Compare-and-set the sticky flag. True if this call set it."""
        with self._lock:
            if self._fallback_triggered:
                return False
            self._fallback_triggered = True
            self._fallback_reason = reason
            return True

    def reset_fallback(self) -> None:
        with self._lock:
            self._fallback_triggered = False
            self._fallback_reason = None

    def has_fallback_available(self) -> bool:
        return self.invoker.secondary_configured()

    def status(self) -> OrchestratorState:
        with self._lock:
            triggered, reason = self._fallback_triggered, self._fallback_reason
        return OrchestratorState(
            primary_available=bool(self._primary_available),
            secondary_configured=(
                self._secondary_configured if self._secondary_configured is not None
                else self.invoker.secondary_configured()
            ),
            fallback_ever_triggered=triggered,
            fallback_reason=reason,
        )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _provenance(
        self,
        outcome: InvocationOutcome,
        attempted: List[BackendKind],
        phases: List[Phase],
        fallback_reason: Optional[str],
    ) -> Provenance:
        state = self.status()
        return Provenance(
            backend=outcome.backend,
            attempted=list(attempted),
            fallback_occurred=fallback_reason is not None,
            fallback_reason=fallback_reason,
            session_fallback_triggered=state.fallback_ever_triggered,
            session_fallback_reason=state.fallback_reason,
            phases=[p.value for p in phases],
        )

    async def _invoke_secondary(
        self,
        request: InvocationRequest,
        attempted: List[BackendKind],
        phases: List[Phase],
        reason: str,
    ) -> ExecutionResult:
        phases.append(Phase.INVOKING_SECONDARY)
        attempted.append(BackendKind.SECONDARY)
        outcome = await self.invoker.invoke(request, BackendKind.SECONDARY)
        phases.append(Phase.SUCCEEDED if outcome.succeeded else Phase.FAILED)

        if not outcome.succeeded:
            logger.error(f"OpenAI API failed: {outcome.error}")

        provenance = self._provenance(outcome, attempted, phases, reason)
        if self.auditor is not None:
            await self.auditor.log_fallback(
                reason, provenance, project_root=request.working_directory
            )
        return ExecutionResult(outcome=outcome, provenance=provenance)

    async def execute(self, request: InvocationRequest) -> ExecutionResult:
        """Run one request, failing over to Secondary at most once."""
        await self.initialize()
        phases = [Phase.READY]
        attempted: List[BackendKind] = []

        if self._primary_available:
            logger.info("Attempting execution via Codex CLI")
            phases.append(Phase.INVOKING_PRIMARY)
            attempted.append(BackendKind.PRIMARY)
            outcome = await self.invoker.invoke(request, BackendKind.PRIMARY)

            if outcome.failure_kind is FailureKind.QUOTA_EXHAUSTED and self._secondary_configured:
                logger.warning("Codex CLI quota exhausted, falling back to OpenAI API")
                logger.warning("NOTE: OpenAI API usage may incur costs")
                self._mark_fallback(REASON_QUOTA)
                phases.append(Phase.FAILED_OVER)
                return await self._invoke_secondary(request, attempted, phases, REASON_QUOTA)

            # Any other primary result is final, quota included when no key is set
            phases.append(Phase.SUCCEEDED if outcome.succeeded else Phase.FAILED)
            return ExecutionResult(
                outcome=outcome,
                provenance=self._provenance(outcome, attempted, phases, None),
            )

        if not self._secondary_configured:
            raise ConfigurationError(NO_PATH_MESSAGE)

        logger.info("Codex CLI not available, using OpenAI API")
        logger.warning("NOTE: OpenAI API usage may incur costs")
        self._mark_fallback(REASON_NOT_INSTALLED)
        return await self._invoke_secondary(request, attempted, phases, REASON_NOT_INSTALLED)


# =============================================================================
# Process-wide convenience accessor (CLI only)
# =============================================================================

_session: Optional[ExecutionSession] = None


def get_session(
    settings: Optional[Settings] = None,
    auditor: Optional[ValidationAuditor] = None,
) -> ExecutionSession:
    """Return the process-wide session, creating it on first use."""
    global _session
    if _session is None:
        _session = ExecutionSession.from_settings(settings or Settings.from_env(), auditor)
    return _session


def reset_session() -> None:
    global _session
    _session = None
