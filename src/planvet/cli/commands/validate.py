#!/usr/bin/env python
"""
Validate command - run one plan through the validation pipeline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from planvet.audit import ValidationAuditor
from planvet.best_practices import Context7Client
from planvet.cli.formatting.output import ConsoleOutput
from planvet.errors import ConfigurationError, PlanInputError
from planvet.orchestrator import ExecutionSession, get_session
from planvet.pipeline import PlanValidationRequest, ValidationStatus, validate_plan
from planvet.report import render_markdown, save_report
from planvet.settings import Settings


EXIT_OK = 0
EXIT_FAIL = 1
EXIT_USAGE = 2


async def run(
    plan_path: Optional[str] = None,
    content: Optional[str] = None,
    project: Optional[str] = None,
    apply: bool = False,
    require_confirmation: bool = True,
    json_output: bool = False,
    report_path: Optional[str] = None,
    timeout: Optional[float] = None,
    settings: Optional[Settings] = None,
    session: Optional[ExecutionSession] = None,
    console: Optional[ConsoleOutput] = None,
) -> int:
    """Run the validate command. Returns the process exit code."""
    console = console or ConsoleOutput()
    settings = settings or Settings.from_env()

    if timeout is not None and timeout <= 0:
        console.print_error("--timeout must be a positive number of seconds")
        return EXIT_USAGE

    auditor = ValidationAuditor(settings.audit_path)
    session = session or get_session(settings, auditor)
    context7 = Context7Client(api_key=settings.context7_api_key, base_url=settings.context7_url)

    try:
        request = PlanValidationRequest(
            plan_path=plan_path,
            plan_content=content,
            project_path=Path(project).resolve() if project else None,
            destructive=apply,
            require_confirmation=require_confirmation,
            timeout_ms=max(1, int(timeout * 1000)) if timeout else settings.timeout_ms,
        )
        response = await validate_plan(request, session, context7=context7, auditor=auditor)
    except (PlanInputError, ConfigurationError) as e:
        console.print_error(str(e))
        return EXIT_USAGE

    markdown = render_markdown(response)
    if json_output:
        console.print_json(response.to_dict())
    else:
        console.print_summary(response)
        console.print()
        console.print_markdown(markdown)

    if report_path:
        written = await save_report(markdown, Path(report_path))
        if not json_output:
            console.print_dim(f"Report saved to {written}")

    return EXIT_FAIL if response.status is ValidationStatus.FAIL else EXIT_OK
