"""Shared fixtures for planvet tests."""

from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from planvet.models import BackendKind, FailureKind, InvocationOutcome, InvocationRequest


SAMPLE_ANALYSIS = """## Technical Feasibility Analysis
Feasibility Score: 82

Blockers:
- none

Risks:
- Token refresh races under load
- Migration needs downtime

Missing Dependencies:
1. redis client

## Code Review
Suggestions:
- Split the auth service into smaller modules

Best Practice Violations:
- Avoid storing session tokens in localStorage

Improvements:
- Add integration tests for the refresh flow

## Implementation Analysis
Completeness Score: 74
Complexity: high

Gaps:
- No rollback plan
"""


def make_outcome(
    backend: BackendKind,
    failure: FailureKind = FailureKind.NONE,
    stdout: str = "",
    stderr: str = "",
    error: Optional[str] = None,
) -> InvocationOutcome:
    return InvocationOutcome(
        backend=backend,
        succeeded=failure is FailureKind.NONE,
        raw_stdout=stdout,
        raw_stderr=stderr,
        failure_kind=failure,
        exit_info=0 if failure is FailureKind.NONE else 1,
        error=error,
    )


class ScriptedInvoker:
    """Stands in for BackendInvoker; replays queued outcomes per backend."""

    def __init__(
        self,
        primary_installed: bool = True,
        secondary_configured: bool = True,
        outcomes: Optional[Dict[BackendKind, List[InvocationOutcome]]] = None,
    ):
        self.primary_installed = primary_installed
        self._secondary_configured = secondary_configured
        self.outcomes = outcomes or {}
        self.calls: List[BackendKind] = []
        self.requests: List[InvocationRequest] = []
        self.probe_count = 0

    async def probe_primary(self) -> bool:
        self.probe_count += 1
        return self.primary_installed

    def secondary_configured(self) -> bool:
        return self._secondary_configured

    async def invoke(self, request: InvocationRequest, backend: BackendKind) -> InvocationOutcome:
        self.calls.append(backend)
        self.requests.append(request)
        queue = self.outcomes.get(backend) or []
        if queue:
            return queue.pop(0)
        return make_outcome(backend, stdout=SAMPLE_ANALYSIS)


@pytest.fixture
def plan_request(tmp_path):
    return InvocationRequest(
        plan_text="Add Redis caching to the session service",
        working_directory=tmp_path,
        timeout_ms=5000,
    )


@pytest.fixture
def sample_analysis():
    return SAMPLE_ANALYSIS


@pytest.fixture
def outcome_factory():
    return make_outcome


@pytest.fixture
def invoker_factory():
    return ScriptedInvoker
