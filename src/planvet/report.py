"""Markdown report rendering for validation responses."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import aiofiles

from planvet.config.defaults import REPORT_FILENAME_DEFAULT
from planvet.pipeline import PlanValidationResponse, ValidationStatus, real_blockers

logger = logging.getLogger(__name__)

STATUS_BADGES = {
    ValidationStatus.PASS: "**PASS** - Plan is ready for implementation",
    ValidationStatus.WARN: "**WARNING** - Plan has issues that should be addressed",
    ValidationStatus.FAIL: "**FAIL** - Plan has critical issues blocking implementation",
}


def _bullets(lines: List[str], heading: str, items: Sequence[str], prefix: str = "") -> None:
    if not items:
        return
    lines.append(heading)
    lines.extend(f"- {prefix}{item}" for item in items)
    lines.append("")


def render_markdown(response: PlanValidationResponse) -> str:
    """Render a response as a standalone Markdown document."""
    record = response.record
    provenance = response.provenance
    feasibility = record.feasibility
    review = record.review
    completeness = record.completeness

    lines = [
        "# Plan Validation Report",
        "",
        f"**Status**: {STATUS_BADGES[response.status]}",
        f"**Execution Path**: {provenance.backend.value}",
    ]
    if provenance.fallback_occurred:
        lines.append(f"**Fallback**: {provenance.fallback_reason}")
    elif provenance.session_fallback_triggered:
        lines.append(f"**Session fallback**: {provenance.session_fallback_reason}")
    lines.extend([f"**Mode**: {response.mode}", ""])

    if response.error:
        attempted = ", ".join(b.value for b in provenance.attempted)
        lines.extend([
            "## Execution Error",
            "",
            f"**Attempted**: {attempted}",
            f"**Error**: {response.error}",
            "",
        ])
        if response.outcome.raw_stderr:
            lines.extend(["```", response.outcome.raw_stderr.strip(), "```", ""])

    lines.extend(["## Technical Feasibility", "", f"**Score**: {feasibility.score}/100", ""])
    _bullets(lines, "### Blockers", real_blockers(feasibility.blockers), prefix="**BLOCKER**: ")
    _bullets(lines, "### Risks", feasibility.risks)
    _bullets(lines, "### Missing Dependencies", feasibility.missing_dependencies)

    lines.extend(["## Code Review", ""])
    _bullets(lines, "### Best Practice Violations", review.violations)
    _bullets(lines, "### Suggested Improvements", review.improvements)
    _bullets(
        lines,
        "### Additional Suggestions",
        [f"[{s.severity.value}] {s.description}" for s in review.suggestions],
    )

    lines.extend([
        "## Implementation Analysis",
        "",
        f"**Completeness**: {completeness.completeness}/100",
        f"**Estimated Complexity**: {completeness.complexity.value}",
        "",
    ])
    _bullets(lines, "### Gaps", completeness.gaps)

    best_practices = response.best_practices
    if best_practices.technologies_detected:
        lines.extend([
            "## Context7 Best Practices Validation",
            "",
            f"**Technologies Detected**: {', '.join(best_practices.technologies_detected)}",
            "",
        ])
        _bullets(
            lines,
            "### Best Practices Checked",
            [f"**{p.technology}**: {p.topic} ({p.library_id})"
             for p in best_practices.best_practices_checked],
        )
        if best_practices.violations:
            lines.append("### Violations Found")
            for v in best_practices.violations:
                lines.append(f"- [{v.severity.value}] **{v.technology}**: {v.violation}")
                lines.append(f"  - Best practice: {v.best_practice}")
            lines.append("")

    if record.changes_applied:
        lines.extend(["## Changes Applied", ""])
        lines.extend(f"- {change}" for change in record.changes_applied)
        lines.append("")
        audit = response.application_audit
        if audit is not None and audit.failed:
            _bullets(lines, "### Not Confirmed As Applied", audit.failed)

    confirmation = response.confirmation
    if confirmation is not None and confirmation.requires_approval:
        lines.extend(["---", "", confirmation.message, ""])

    lines.extend(["---", "", "*Generated by planvet*", f"*Execution path: {provenance.backend.value}*"])
    return "\n".join(lines)


async def save_report(markdown: str, output_path: Optional[Path] = None) -> Path:
    """Write the report; relative paths resolve against the working directory."""
    path = Path(output_path) if output_path else Path(REPORT_FILENAME_DEFAULT)
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(markdown)
    logger.info(f"Report written to {path}")
    return path
