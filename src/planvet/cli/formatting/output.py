#!/usr/bin/env python
"""
Output formatting with Rich console.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.theme import Theme

from planvet.pipeline import PlanValidationResponse, ValidationStatus


# Custom theme for the planvet CLI
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})

STATUS_STYLES = {
    ValidationStatus.PASS: "success",
    ValidationStatus.WARN: "warning",
    ValidationStatus.FAIL: "error",
}


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(theme=custom_theme)

    def print(self, text: str = "", **kwargs):
        """Print text to console."""
        self.console.print(text, **kwargs)

    def print_markdown(self, text: str):
        """Print markdown-formatted text."""
        self.console.print(Markdown(text))

    def print_json(self, data: Dict[str, Any]):
        self.console.print_json(json.dumps(data))

    def print_error(self, text: str):
        self.console.print(f"[red]Error:[/red] {text}")

    def print_success(self, text: str):
        self.console.print(f"[green]Success:[/green] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[yellow]Warning:[/yellow] {text}")

    def print_info(self, text: str):
        self.console.print(f"[cyan]Info:[/cyan] {text}")

    def print_dim(self, text: str):
        self.console.print(f"[dim]{text}[/dim]")

    def print_summary(self, response: PlanValidationResponse):
        """One-table overview shown above the full report."""
        style = STATUS_STYLES[response.status]
        record = response.record
        provenance = response.provenance

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Status", f"[{style}]{response.status.value.upper()}[/{style}]")
        table.add_row("Backend", provenance.backend.value)
        if provenance.fallback_occurred:
            table.add_row("Fallback", f"[warning]{provenance.fallback_reason}[/warning]")
        table.add_row("Mode", response.mode)
        table.add_row("Feasibility", f"{record.feasibility.score}/100")
        table.add_row("Completeness", f"{record.completeness.completeness}/100")
        table.add_row("Complexity", record.completeness.complexity.value)
        if response.technologies:
            table.add_row("Technologies", ", ".join(t.name for t in response.technologies))
        self.console.print(table)
