#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler


def _repo_root() -> Path:
    return Path.cwd().resolve()


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
    logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[handler])
    # Keep planvet at INFO for execution-path notices, quiet the HTTP client
    logging.getLogger("planvet").setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planvet",
        description="planvet - validate implementation plans with Codex CLI (OpenAI API fallback)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    validate_p = subparsers.add_parser("validate", help="Validate an implementation plan")
    validate_p.add_argument("plan_path", nargs="?", help="Path to plan file (e.g. ./PLAN.md)")
    validate_p.add_argument("--content", help="Plan content as a string")
    validate_p.add_argument("--project", help="Project root for context (default: cwd)")
    validate_p.add_argument("--apply", action="store_true", help="Let the backend apply changes")
    validate_p.add_argument(
        "--no-confirm",
        dest="require_confirmation",
        action="store_false",
        help="Skip the proposed-changes confirmation summary in apply mode",
    )
    validate_p.add_argument("--json", action="store_true", help="Output JSON")
    validate_p.add_argument("--report", metavar="PATH", help="Also write a Markdown report")
    validate_p.add_argument("--timeout", type=float, metavar="SECONDS", help="Backend timeout")

    status_p = subparsers.add_parser("status", help="Show execution path diagnostics")
    status_p.add_argument("--json", action="store_true", help="Output JSON")

    subparsers.add_parser("version", help="Show version")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_dotenv(_repo_root() / ".env")
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 2

    from planvet.cli.commands import status, validate
    from planvet.cli.formatting.output import ConsoleOutput
    from planvet.errors import ConfigurationError

    try:
        if args.command == "validate":
            if not args.plan_path and not args.content:
                parser.error("validate needs PLAN_PATH or --content")
            return asyncio.run(validate.run(
                plan_path=args.plan_path,
                content=args.content,
                project=args.project,
                apply=args.apply,
                require_confirmation=args.require_confirmation,
                json_output=args.json,
                report_path=args.report,
                timeout=args.timeout,
            ))
        elif args.command == "status":
            return status.run(json_output=args.json)
        elif args.command == "version":
            from planvet import __version__
            print(f"planvet {__version__}")
            return 0
    except ConfigurationError as e:
        ConsoleOutput().print_error(str(e))
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
