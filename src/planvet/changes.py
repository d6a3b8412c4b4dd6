"""Change Proposal and Confirmation Workflow.

Reads change intents out of backend prose, grades their impact, and builds the
confirmation message shown before anything is applied. Nothing here touches
the filesystem; proposals are a best-effort reading of text, and the workflow
is advisory (the backend applies changes itself in apply mode).
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from planvet.config.defaults import CHANGE_NO_CHANGES_MESSAGE, CHANGE_TARGET_MAX_LENGTH
from planvet.models import (
    ApplicationAudit,
    ChangeKind,
    ChangeProposal,
    ConfirmationRequest,
    Impact,
)

logger = logging.getLogger(__name__)


# Phrase families; each captures the rest of its line as the target
CHANGE_PATTERNS: List[Tuple[ChangeKind, re.Pattern]] = [
    (ChangeKind.CREATE, re.compile(
        r"\b(?:create|creating|new file)\b[:\t ]+([^\n]+)", re.IGNORECASE)),
    (ChangeKind.MODIFY, re.compile(
        r"\b(?:modify|modifying|update|updating|edit|editing)\b[:\t ]+([^\n]+)", re.IGNORECASE)),
    (ChangeKind.DELETE, re.compile(
        r"\b(?:delete|deleting|remove|removing)\b[:\t ]+([^\n]+)", re.IGNORECASE)),
    (ChangeKind.DEPENDENCY_ADD, re.compile(
        r"\b(?:install|add dependency|npm install|yarn add|pip install)\b[:\t ]+([^\n]+)",
        re.IGNORECASE)),
    (ChangeKind.CONFIG_CHANGE, re.compile(
        r"\b(?:config|configuration|setting)\b[:\t ]+([^\n]+)", re.IGNORECASE)),
]

FENCED_BLOCK = re.compile(r"```(?:diff)?[ \t]*\n(.*?)```", re.DOTALL)
DIFF_HEADER = re.compile(r"^(?:---|\+\+\+)[ \t]+(\S+)", re.MULTILINE)

# Dependency manifests, build/compiler config, secrets, entry points
HIGH_IMPACT_MARKERS = [
    re.compile(p) for p in (
        r"package(?:-lock)?\.json",
        r"yarn\.lock",
        r"requirements[\w.-]*\.txt",
        r"pyproject\.toml",
        r"setup\.(?:py|cfg)",
        r"pipfile",
        r"cargo\.toml",
        r"go\.mod",
        r"gemfile",
        r"tsconfig",
        r"(?:webpack|vite|rollup)\.config",
        r"(?:^|[/\s])\.env",
        r"(?<![a-z])(?:config|main|index)(?![a-z])",
    )
]

SOURCE_EXTENSION = re.compile(
    r"\.(?:ts|tsx|js|jsx|mjs|cjs|py|go|rs|java|kt|rb|php|cs|c|cc|cpp|h|hpp|swift|scala)(?![\w])"
)

_WRAPPING = "`'\""


# =============================================================================
# Proposals
# =============================================================================


def _clean_target(raw: str) -> Optional[str]:
    target = raw.strip().strip(_WRAPPING).strip()
    if not target or target.startswith("//") or target.startswith("#"):
        return None
    if len(target) > CHANGE_TARGET_MAX_LENGTH:
        return None
    return target


def describe(kind: ChangeKind, target: str) -> str:
    name = target.rstrip("/").split("/")[-1] or target
    if kind is ChangeKind.CREATE:
        return f"Create new file: {name}"
    if kind is ChangeKind.MODIFY:
        return f"Modify existing file: {name}"
    if kind is ChangeKind.DELETE:
        return f"Delete file: {name}"
    if kind is ChangeKind.DEPENDENCY_ADD:
        return f"Add dependency: {target}"
    return f"Update configuration: {target}"


def assess_impact(kind: ChangeKind, target: str) -> Impact:
    """Grade a change; the first matching rule wins."""
    path = target.lower()
    if kind is ChangeKind.DELETE or any(marker.search(path) for marker in HIGH_IMPACT_MARKERS):
        return Impact.HIGH
    if kind is ChangeKind.DEPENDENCY_ADD or SOURCE_EXTENSION.search(path):
        return Impact.MEDIUM
    return Impact.LOW


def _diff_path(diff: str) -> Optional[str]:
    for match in DIFF_HEADER.finditer(diff):
        path = match.group(1)
        if path == "/dev/null":
            continue
        if path.startswith(("a/", "b/")):
            path = path[2:]
        return path
    return None


def _attach_diffs(raw_text: str, proposals: List[ChangeProposal]) -> List[ChangeProposal]:
    for block in FENCED_BLOCK.finditer(raw_text):
        diff = block.group(1).strip()
        path = _diff_path(diff)
        if not path:
            continue
        for index, proposal in enumerate(proposals):
            if proposal.diff is None and path in proposal.target_path:
                proposals[index] = replace(proposal, diff=diff)
                break
        else:
            logger.debug(f"Dropping diff for {path}: no matching proposal")
    return proposals


def propose_changes(raw_text: str) -> List[ChangeProposal]:
    """Parse change intents from backend prose, in text order."""
    if not raw_text:
        return []

    found: List[Tuple[int, ChangeKind, str]] = []
    for kind, pattern in CHANGE_PATTERNS:
        for match in pattern.finditer(raw_text):
            target = _clean_target(match.group(1))
            if target is not None:
                found.append((match.start(), kind, target))
    found.sort(key=lambda item: item[0])

    seen = set()
    proposals: List[ChangeProposal] = []
    for _, kind, target in found:
        if (kind, target) in seen:
            continue
        seen.add((kind, target))
        proposals.append(ChangeProposal(
            kind=kind,
            target_path=target,
            description=describe(kind, target),
            impact=assess_impact(kind, target),
        ))

    proposals = _attach_diffs(raw_text, proposals)
    logger.debug(f"Parsed {len(proposals)} proposed change(s)")
    return proposals


# =============================================================================
# Confirmation
# =============================================================================


_IMPACT_HEADINGS = {
    Impact.HIGH: "### High Impact (requires careful review)",
    Impact.MEDIUM: "### Medium Impact",
    Impact.LOW: "### Low Impact",
}


def summarize(proposals: Sequence[ChangeProposal]) -> str:
    """Markdown summary grouped by impact, followed by any attached diffs."""
    if not proposals:
        return CHANGE_NO_CHANGES_MESSAGE

    lines = ["## Proposed Changes", "", f"Total: {len(proposals)} change(s)", ""]
    for impact in sorted(Impact, key=lambda i: i.rank, reverse=True):
        members = [p for p in proposals if p.impact is impact]
        if not members:
            continue
        lines.append(_IMPACT_HEADINGS[impact])
        for p in members:
            label = f"**{p.kind.value}**" if impact is Impact.HIGH else p.kind.value
            lines.append(f"- {label}: {p.description}")
        lines.append("")

    with_diffs = [p for p in proposals if p.diff]
    if with_diffs:
        lines.append("### Diffs")
        for p in with_diffs:
            lines.extend(["", f"**{p.target_path}**:", "```diff", p.diff, "```"])

    return "\n".join(lines)


def request_confirmation(proposals: Sequence[ChangeProposal]) -> ConfirmationRequest:
    """Build the approval prompt for a set of proposals."""
    if not proposals:
        return ConfirmationRequest(
            message=CHANGE_NO_CHANGES_MESSAGE,
            requires_approval=False,
            high_impact_count=0,
        )

    high_impact = sum(1 for p in proposals if p.impact is Impact.HIGH)
    if high_impact:
        verdict = (
            f"WARNING: This includes {high_impact} high-impact change(s) "
            "that may significantly affect the project."
        )
    else:
        verdict = "These changes appear to be relatively safe."

    message = (
        f"{summarize(proposals)}\n\n---\n\n**Confirmation Required**\n\n{verdict}\n\n"
        "To apply these changes, re-run the validation with apply mode enabled "
        "and confirm you have reviewed the changes above."
    )
    return ConfirmationRequest(
        message=message,
        requires_approval=True,
        high_impact_count=high_impact,
    )


def audit_applied(
    proposals: Sequence[ChangeProposal],
    applied_descriptions: Iterable[str],
) -> ApplicationAudit:
    """Compare proposals against what the backend reports it applied."""
    descriptions = [d.lower() for d in applied_descriptions]
    applied: List[str] = []
    failed: List[str] = []
    for p in proposals:
        target = p.target_path.lower()
        if any(target in d for d in descriptions):
            applied.append(p.target_path)
        else:
            failed.append(p.target_path)

    return ApplicationAudit(
        succeeded=not failed,
        applied=applied,
        failed=failed,
        partial=bool(applied) and bool(failed),
    )
