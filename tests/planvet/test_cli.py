"""Tests for the planvet CLI."""

import io
import json

import pytest
from unittest.mock import AsyncMock, patch

from rich.console import Console

from planvet.cli import main as cli_main
from planvet.cli.commands import status, validate
from planvet.cli.formatting.output import ConsoleOutput, custom_theme
from planvet.models import BackendKind, FailureKind
from planvet.orchestrator import ExecutionSession
from planvet.settings import Settings


def _console():
    buffer = io.StringIO()
    return ConsoleOutput(Console(file=buffer, theme=custom_theme, width=400)), buffer


class TestValidateCommand:
    """Tests for validate.run."""

    @pytest.mark.asyncio
    async def test_json_output(self, tmp_path, invoker_factory):
        console, buffer = _console()

        code = await validate.run(
            content="Ship the thing",
            project=str(tmp_path),
            json_output=True,
            settings=Settings(),
            session=ExecutionSession(invoker_factory()),
            console=console,
        )

        assert code == validate.EXIT_OK
        data = json.loads(buffer.getvalue())
        assert data["validation_status"] == "pass"
        assert data["provenance"]["backend"] == "codex_cli"

    @pytest.mark.asyncio
    async def test_failed_validation_exit_code(self, tmp_path, invoker_factory, outcome_factory):
        invoker = invoker_factory(secondary_configured=False, outcomes={
            BackendKind.PRIMARY: [outcome_factory(BackendKind.PRIMARY, FailureKind.TIMEOUT)],
        })
        console, buffer = _console()

        code = await validate.run(
            content="Ship the thing",
            project=str(tmp_path),
            settings=Settings(),
            session=ExecutionSession(invoker),
            console=console,
        )

        assert code == validate.EXIT_FAIL
        assert "FAIL" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_report_written(self, tmp_path, invoker_factory):
        console, buffer = _console()
        report = tmp_path / "out" / "report.md"

        code = await validate.run(
            content="Ship the thing",
            project=str(tmp_path),
            report_path=str(report),
            settings=Settings(),
            session=ExecutionSession(invoker_factory()),
            console=console,
        )

        assert code == validate.EXIT_OK
        assert report.read_text(encoding="utf-8").startswith("# Plan Validation Report")
        assert "Report saved to" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_missing_plan_file(self, tmp_path, invoker_factory):
        console, buffer = _console()

        code = await validate.run(
            plan_path="missing.md",
            project=str(tmp_path),
            settings=Settings(),
            session=ExecutionSession(invoker_factory()),
            console=console,
        )

        assert code == validate.EXIT_USAGE
        assert "Failed to read plan file" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_no_backend(self, tmp_path, invoker_factory):
        console, buffer = _console()
        session = ExecutionSession(invoker_factory(primary_installed=False, secondary_configured=False))

        code = await validate.run(
            content="Ship the thing",
            project=str(tmp_path),
            settings=Settings(),
            session=session,
            console=console,
        )

        assert code == validate.EXIT_USAGE
        assert "No execution path available" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_rejects_bad_timeout(self, invoker_factory):
        console, _ = _console()
        code = await validate.run(
            content="Ship the thing",
            timeout=0,
            settings=Settings(),
            session=ExecutionSession(invoker_factory()),
            console=console,
        )
        assert code == validate.EXIT_USAGE

    @pytest.mark.asyncio
    async def test_timeout_is_forwarded(self, tmp_path, invoker_factory):
        invoker = invoker_factory()
        console, _ = _console()

        await validate.run(
            content="Ship the thing",
            project=str(tmp_path),
            timeout=2.5,
            settings=Settings(),
            session=ExecutionSession(invoker),
            console=console,
        )

        assert invoker.requests[0].timeout_ms == 2500


class TestStatusCommand:
    """Tests for status.run."""

    def test_json(self):
        console, buffer = _console()
        with patch("planvet.settings.shutil.which", return_value="/usr/bin/codex"):
            code = status.run(json_output=True, settings=Settings(openai_api_key="sk"), console=console)

        assert code == 0
        data = json.loads(buffer.getvalue())
        assert data["codex_cli_found"] is True
        assert data["openai_configured"] is True

    def test_no_path(self):
        console, buffer = _console()
        with patch("planvet.settings.shutil.which", return_value=None):
            code = status.run(settings=Settings(), console=console)

        assert code == 1
        assert "Missing:" in buffer.getvalue()


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_no_command(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert cli_main.main([]) == 2

    def test_version(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert cli_main.main(["version"]) == 0
        assert "planvet 0.1.0" in capsys.readouterr().out

    def test_validate_requires_plan(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            cli_main.main(["validate"])
        assert exc_info.value.code == 2

    def test_validate_dispatch(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        fake_run = AsyncMock(return_value=1)
        monkeypatch.setattr(validate, "run", fake_run)

        code = cli_main.main(["validate", "PLAN.md", "--apply", "--no-confirm", "--timeout", "30"])

        assert code == 1
        kwargs = fake_run.await_args.kwargs
        assert kwargs["plan_path"] == "PLAN.md"
        assert kwargs["apply"] is True
        assert kwargs["require_confirmation"] is False
        assert kwargs["timeout"] == 30.0

    def test_bad_environment(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PLANVET_TIMEOUT_SECONDS", "never")

        assert cli_main.main(["status"]) == 2
