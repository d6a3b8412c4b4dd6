"""Backend Invoker - run one backend once.

Dispatches an ``InvocationRequest`` to the process or HTTP backend and hands
back a tagged ``InvocationOutcome``. No retries and no failover here; that
policy lives in the orchestrator.
"""

from __future__ import annotations

import logging
from typing import Optional

from planvet.backends.codex_cli import CodexCliBackend
from planvet.backends.openai_api import OpenAIChatBackend
from planvet.models import BackendKind, InvocationOutcome, InvocationRequest

logger = logging.getLogger(__name__)


class BackendInvoker:
    """Holds both backends and runs whichever one is asked for."""

    def __init__(
        self,
        primary: Optional[CodexCliBackend] = None,
        secondary: Optional[OpenAIChatBackend] = None,
    ):
        self.primary = primary or CodexCliBackend()
        self.secondary = secondary or OpenAIChatBackend()

    async def probe_primary(self) -> bool:
        return await self.primary.is_installed()

    def secondary_configured(self) -> bool:
        return self.secondary.configured

    async def invoke(self, request: InvocationRequest, backend: BackendKind) -> InvocationOutcome:
        if backend is BackendKind.PRIMARY:
            result = await self.primary.invoke(request)
        elif backend is BackendKind.SECONDARY:
            result = await self.secondary.invoke(request)
        else:
            raise ValueError(f"Unknown backend: {backend!r}")

        logger.debug(
            f"{backend.value}: succeeded={result.succeeded} "
            f"failure={result.failure_kind.value} in {result.duration_ms:.0f}ms"
        )
        return result
