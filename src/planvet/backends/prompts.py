"""Prompt templates for plan analysis.

The section names used here line up with the headers the extraction grammar
looks for (feasibility score, blockers, risks, missing dependencies,
suggestions, violations, improvements, completeness score, complexity, gaps,
changes applied).
"""

from __future__ import annotations

from typing import Optional

from planvet.models import InvocationRequest

# =============================================================================
# Primary (Codex CLI) prompt
# =============================================================================

ANALYSIS_PROMPT = """You are analyzing an implementation plan. Please provide a comprehensive validation including:

1. **Technical Feasibility Analysis**:
   - Identify any blockers that would prevent implementation
   - List missing dependencies or prerequisites
   - Highlight architectural issues or concerns
   - Rate overall feasibility from 0-100

2. **Code Review Suggestions**:
   - Review proposed code patterns
   - Identify potential improvements
   - Flag any anti-patterns or bad practices
   - Note security considerations

3. **Implementation Completeness**:
   - Identify gaps in the plan
   - List missing steps or considerations
   - Estimate implementation complexity (low/medium/high)
   - Rate completeness from 0-100

Please structure your response clearly with sections for each area above.
{context_block}
**PLAN TO ANALYZE:**

{plan}

---

Provide your analysis in a structured format with clear sections.{apply_block}"""

APPLY_INSTRUCTIONS = """
If you modify files, finish with a "Changes Applied:" section listing every file you changed, one per line."""


# =============================================================================
# Secondary (chat completions) prompts
# =============================================================================

SYSTEM_PROMPT = """You are an expert code reviewer and implementation planner. Your task is to analyze implementation plans and provide structured feedback.

You must respond in a specific format with clear sections:

1. **Technical Feasibility Analysis**
   - Feasibility Score: [0-100]
   - Blockers:
     - [List any blockers]
   - Risks:
     - [List any risks]
   - Missing Dependencies:
     - [List missing dependencies]

2. **Code Review**
   - Suggestions:
     - [List suggestions]
   - Best Practice Violations:
     - [List violations]
   - Improvements:
     - [List improvements]

3. **Implementation Analysis**
   - Completeness Score: [0-100]
   - Complexity: [low/medium/high]
   - Gaps:
     - [List gaps in the plan]

Provide thorough, actionable feedback."""

USER_PROMPT = """Please analyze the following implementation plan:
{context_block}
Project path: {project_path}
Mode: {mode} ({mode_description})

---

PLAN TO ANALYZE:

{plan}

---

Provide your structured analysis."""


def _context_block(extra_context: Optional[str]) -> str:
    if not extra_context:
        return ""
    return f"\nAdditional context: {extra_context}\n"


def build_analysis_prompt(request: InvocationRequest) -> str:
    """Single prompt for the process backend."""
    return ANALYSIS_PROMPT.format(
        context_block=_context_block(request.extra_context),
        plan=request.plan_text,
        apply_block=APPLY_INSTRUCTIONS if request.destructive else "",
    )


def build_chat_messages(request: InvocationRequest) -> list[dict]:
    """System/user message pair for the chat backend.

    The chat backend has no sandbox, so destructiveness is expressed only as
    framing in the user prompt.
    """
    if request.destructive:
        mode_description = "changes may be applied"
    else:
        mode_description = "suggest only, no changes"
    user = USER_PROMPT.format(
        context_block=_context_block(request.extra_context),
        project_path=request.working_directory,
        mode=request.mode,
        mode_description=mode_description,
        plan=request.plan_text,
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
