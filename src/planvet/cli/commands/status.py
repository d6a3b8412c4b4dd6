#!/usr/bin/env python
"""
Status command - Show execution path diagnostics.
"""

from __future__ import annotations

from typing import Optional

from planvet.cli.formatting.output import ConsoleOutput
from planvet.settings import Settings, validate_environment


def _mark(ok: bool) -> str:
    return "[green]yes[/green]" if ok else "[red]no[/red]"


def run(
    json_output: bool = False,
    settings: Optional[Settings] = None,
    console: Optional[ConsoleOutput] = None,
) -> int:
    """Run the status command."""
    console = console or ConsoleOutput()
    settings = settings or Settings.from_env()
    result = validate_environment(settings)

    if json_output:
        console.print_json(result.to_dict())
        return 0 if result.is_valid else 1

    console.print(f"""
[bold]planvet Status[/bold]

Codex CLI found: {_mark(result.codex_cli_found)} ({settings.codex_binary})
OpenAI API key:  {_mark(result.openai_key_set)} (model {settings.openai_model})
Context7 key:    {_mark(result.context7_key_set)}
Execution path:  {_mark(result.is_valid)}
""")

    for missing in result.missing_required:
        console.print_error(f"Missing: {missing}")
    for warning in result.warnings:
        console.print_warning(warning)

    return 0 if result.is_valid else 1
