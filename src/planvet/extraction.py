"""Structured Extraction Engine.

Turns free-form backend prose into a ``ValidationRecord``. The grammar is a
declarative table of section rules; each rule says how its header is spotted
and what the section defaults to when it is missing. Extraction never raises
and is referentially transparent: the same text always yields the same record.

Matching rules:
- numeric sections: header token, optional "score", separators, integer on
  the same line (clamped to 0..100)
- categorical sections: header token, separators, one of the allowed words
- list sections: a line ending in the header token (colons and markdown
  emphasis allowed), followed by a block of ``-``/``*``/``N.`` lines. Blank
  lines inside the block are skipped; the block ends at the first non-list
  line or at end of text. A list line is never read as a header.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from planvet.config.defaults import (
    EXTRACTION_DEFAULT_COMPLEXITY,
    EXTRACTION_DEFAULT_SCORE,
    EXTRACTION_INCOMPLETE_MARKER,
    EXTRACTION_SCORE_MAX,
    EXTRACTION_SCORE_MIN,
)
from planvet.models import (
    CompletenessAnalysis,
    Complexity,
    FeasibilityAnalysis,
    InvocationOutcome,
    ReviewAnalysis,
    Severity,
    Suggestion,
    ValidationRecord,
)

logger = logging.getLogger(__name__)


class SectionKind(Enum):
    NUMERIC = "numeric"
    CATEGORY = "category"
    LIST = "list"


@dataclass(frozen=True)
class SectionRule:
    """One named section of the extraction grammar."""
    name: str
    kind: SectionKind
    header: str  # regex fragment for the header token
    default: Any = None
    choices: Sequence[str] = ()

    def compile(self) -> re.Pattern:
        if self.kind is SectionKind.NUMERIC:
            return re.compile(
                rf"\b{self.header}(?:[ \t]+score)?(?:[ \t]*\([^)\n]*\))?[ \t:*=\-]*(\d{{1,3}})(?!\d)",
                re.IGNORECASE,
            )
        if self.kind is SectionKind.CATEGORY:
            alternatives = "|".join(re.escape(c) for c in self.choices)
            return re.compile(
                rf"\b{self.header}[\s:*=\-]*({alternatives})\b",
                re.IGNORECASE,
            )
        return re.compile(rf"\b{self.header}\b[\s:*]*$", re.IGNORECASE)


SECTION_RULES: List[SectionRule] = [
    SectionRule("feasibility_score", SectionKind.NUMERIC, r"feasibility",
                default=EXTRACTION_DEFAULT_SCORE),
    SectionRule("completeness_score", SectionKind.NUMERIC, r"completeness",
                default=EXTRACTION_DEFAULT_SCORE),
    SectionRule("complexity", SectionKind.CATEGORY, r"complexity",
                default=EXTRACTION_DEFAULT_COMPLEXITY,
                choices=("low", "medium", "high")),
    SectionRule("blockers", SectionKind.LIST, r"blockers?"),
    SectionRule("risks", SectionKind.LIST, r"risks?"),
    SectionRule("missing_dependencies", SectionKind.LIST, r"(?:missing\s+)?dependenc(?:y|ies)"),
    SectionRule("gaps", SectionKind.LIST, r"gaps?"),
    SectionRule("improvements", SectionKind.LIST, r"improvements?"),
    SectionRule("violations", SectionKind.LIST, r"(?:best[\s-]+practices?\s+)?violations?"),
    SectionRule("suggestions", SectionKind.LIST, r"suggestions?"),
    SectionRule("changes_applied", SectionKind.LIST,
                r"(?:changes?\s+applied|applied\s+changes?)"),
]

_COMPILED = [(rule, rule.compile()) for rule in SECTION_RULES]

LIST_ITEM = re.compile(r"^\s*(?:[-*]|\d+\.)\s+(.*)$")


# =============================================================================
# Grammar evaluation
# =============================================================================


def _clamp(value: int) -> int:
    return max(EXTRACTION_SCORE_MIN, min(EXTRACTION_SCORE_MAX, value))


def _is_header_line(pattern: re.Pattern, line: str) -> bool:
    # A list item is never a header, whatever word it ends in.
    return not LIST_ITEM.match(line) and bool(pattern.search(line))


def _collect_block(lines: List[str], start: int) -> List[str]:
    """List items following the header at ``lines[start]``."""
    items: List[str] = []
    for line in lines[start + 1:]:
        if not line.strip():
            continue
        match = LIST_ITEM.match(line)
        if not match:
            break
        item = match.group(1).strip()
        if item:
            items.append(item)
    return items


def _match_list(pattern: re.Pattern, lines: List[str]) -> List[str]:
    # First header occurrence that actually carries a list wins.
    for index, line in enumerate(lines):
        if _is_header_line(pattern, line):
            items = _collect_block(lines, index)
            if items:
                return items
    return []


def _match_rule(rule: SectionRule, pattern: re.Pattern, text: str, lines: List[str]) -> Any:
    if rule.kind is SectionKind.LIST:
        return _match_list(pattern, lines)

    match = pattern.search(text)
    if not match:
        return rule.default
    if rule.kind is SectionKind.NUMERIC:
        return _clamp(int(match.group(1)))
    return match.group(1).lower()


def extract_sections(raw_text: str) -> Dict[str, Any]:
    """Evaluate every section rule against ``raw_text``.

    Returns a mapping of section name to value, with defaults filled in.
    """
    text = raw_text or ""
    lines = text.splitlines()
    return {
        rule.name: _match_rule(rule, pattern, text, lines)
        for rule, pattern in _COMPILED
    }


# =============================================================================
# Records
# =============================================================================


def extract(raw_text: str) -> ValidationRecord:
    """Convert backend prose into a ``ValidationRecord``."""
    sections = extract_sections(raw_text)
    suggestions = [
        Suggestion(
            kind="other",
            description=item,
            recommendation=item,
            severity=Severity.INFO,
        )
        for item in sections["suggestions"]
    ]
    return ValidationRecord(
        feasibility=FeasibilityAnalysis(
            score=sections["feasibility_score"],
            blockers=sections["blockers"],
            risks=sections["risks"],
            missing_dependencies=sections["missing_dependencies"],
        ),
        review=ReviewAnalysis(
            suggestions=suggestions,
            violations=sections["violations"],
            improvements=sections["improvements"],
        ),
        completeness=CompletenessAnalysis(
            completeness=sections["completeness_score"],
            gaps=sections["gaps"],
            complexity=Complexity(sections["complexity"]),
        ),
        changes_applied=sections["changes_applied"],
    )


def degraded_record() -> ValidationRecord:
    """Record substituted when the backend produced no usable analysis."""
    return ValidationRecord(
        feasibility=FeasibilityAnalysis(
            score=EXTRACTION_DEFAULT_SCORE,
            risks=[EXTRACTION_INCOMPLETE_MARKER],
        ),
        review=ReviewAnalysis(),
        completeness=CompletenessAnalysis(
            completeness=EXTRACTION_DEFAULT_SCORE,
            gaps=[EXTRACTION_INCOMPLETE_MARKER],
            complexity=Complexity(EXTRACTION_DEFAULT_COMPLEXITY),
        ),
    )


def extract_outcome(outcome: Optional[InvocationOutcome]) -> ValidationRecord:
    """Record for an outcome; degraded whenever the outcome did not succeed."""
    if outcome is None or not outcome.succeeded:
        if outcome is not None:
            logger.info(
                f"Skipping extraction for failed {outcome.backend.value} outcome "
                f"({outcome.failure_kind.value})"
            )
        return degraded_record()
    return extract(outcome.raw_text)
