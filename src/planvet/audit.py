"""ValidationAuditor - append-only JSONL audit of decisions that cost money
or change files.

Records fallback events (the metered Secondary backend got used),
confirmation requests and post-hoc application audits. Writes never fail a
validation: errors are logged and the event is dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from planvet.config.defaults import AUDIT_LOG_FILENAME, STATE_DIR_NAME
from planvet.models import ApplicationAudit, ConfirmationRequest, Provenance

logger = logging.getLogger(__name__)


class AuditLevel(IntEnum):
    """Audit event levels with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40


def default_audit_path(project_root: Path) -> Path:
    return Path(project_root) / STATE_DIR_NAME / AUDIT_LOG_FILENAME


class ValidationAuditor:
    """Audit validation events with level control and async file writes."""

    def __init__(
        self,
        audit_path: Optional[Path] = None,
        level: AuditLevel = AuditLevel.INFO,
    ):
        self.audit_path = Path(audit_path) if audit_path else None
        self.level = level
        self._lock = asyncio.Lock()

    def _resolve_path(self, project_root: Optional[Path]) -> Optional[Path]:
        if self.audit_path:
            return self.audit_path
        if project_root:
            return default_audit_path(project_root)
        return None

    async def log(
        self,
        event: str,
        level: AuditLevel = AuditLevel.INFO,
        project_root: Optional[Path] = None,
        **kwargs: Any,
    ) -> Optional[Dict[str, Any]]:
        """Append one event. Returns the written record, or None if skipped."""
        if level < self.level:
            return None

        audit_path = self._resolve_path(project_root)
        if not audit_path:
            logger.warning("No audit path configured, skipping audit log")
            return None

        record = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            "level": level.name.lower(),
            **kwargs,
        }

        async with self._lock:
            try:
                audit_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(audit_path, "a") as f:
                    await f.write(json.dumps(record) + "\n")
            except OSError as e:
                logger.error(f"Failed to write audit log: {e}")
                return None
        return record

    async def log_fallback(
        self,
        reason: str,
        provenance: Provenance,
        project_root: Optional[Path] = None,
    ) -> None:
        """The Secondary backend was used; API costs may apply."""
        await self.log(
            "fallback",
            AuditLevel.WARN,
            project_root=project_root,
            reason=reason,
            backend=provenance.backend.value,
            attempted=[b.value for b in provenance.attempted],
        )

    async def log_confirmation(
        self,
        confirmation: ConfirmationRequest,
        proposal_count: int,
        project_root: Optional[Path] = None,
    ) -> None:
        await self.log(
            "confirmation_requested",
            AuditLevel.INFO,
            project_root=project_root,
            proposals=proposal_count,
            high_impact=confirmation.high_impact_count,
            requires_approval=confirmation.requires_approval,
        )

    async def log_application(
        self,
        audit: ApplicationAudit,
        project_root: Optional[Path] = None,
    ) -> None:
        await self.log(
            "changes_applied",
            AuditLevel.INFO if audit.succeeded else AuditLevel.WARN,
            project_root=project_root,
            **audit.to_dict(),
        )
