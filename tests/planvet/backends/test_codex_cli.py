"""Tests for the Codex CLI process backend."""

import asyncio
import json

import pytest

from planvet.backends.codex_cli import CodexCliBackend, agent_messages
from planvet.models import BackendKind, FailureKind, InvocationRequest


class FakeProcess:
    """Minimal asyncio.subprocess.Process stand-in."""

    def __init__(self, stdout=b"", stderr=b"", returncode=0, hang=False, ignore_term=False):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.signals = []
        self.ignore_term = ignore_term
        self._exited = asyncio.Event()
        self.stdout.feed_data(stdout)
        self.stderr.feed_data(stderr)
        if not hang:
            self._finish(returncode)

    def _finish(self, code):
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()
            self.stderr.feed_eof()
            self._exited.set()

    async def wait(self):
        await self._exited.wait()
        return self.returncode

    async def communicate(self):
        await self.wait()
        return b"", b""

    def terminate(self):
        self.signals.append("TERM")
        if not self.ignore_term:
            self._finish(-15)

    def kill(self):
        self.signals.append("KILL")
        self._finish(-9)


@pytest.fixture
def spawn(monkeypatch):
    """Patch create_subprocess_exec; returns a recorder with .process and .args."""

    class Recorder:
        process = None
        args = None
        kwargs = None
        factory = None
        error = None

    recorder = Recorder()

    async def fake_exec(*args, **kwargs):
        recorder.args = args
        recorder.kwargs = kwargs
        if recorder.error is not None:
            raise recorder.error
        recorder.process = recorder.factory()
        return recorder.process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    return recorder


def _request(tmp_path, **kwargs):
    return InvocationRequest(plan_text="Build the thing", working_directory=tmp_path, **kwargs)


class TestBuildArgs:
    """Tests for the argument vector."""

    def test_suggest_mode_is_read_only(self, tmp_path):
        backend = CodexCliBackend()
        args = backend.build_args(_request(tmp_path), "PROMPT")

        assert args[:4] == ["exec", "--json", "-C", str(tmp_path)]
        assert "--sandbox" in args and args[args.index("--sandbox") + 1] == "read-only"
        assert args[args.index("--ask-for-approval") + 1] == "never"
        assert "--full-auto" not in args
        assert args[-1] == "PROMPT"

    def test_apply_mode_uses_full_auto(self, tmp_path):
        backend = CodexCliBackend()
        args = backend.build_args(_request(tmp_path, destructive=True), "PROMPT")

        assert "--full-auto" in args
        assert "--sandbox" not in args
        assert args[-1] == "PROMPT"


class TestInvoke:
    """Tests for CodexCliBackend.invoke."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path, spawn):
        spawn.factory = lambda: FakeProcess(stdout=b"Feasibility Score: 90\n")
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.backend is BackendKind.PRIMARY
        assert outcome.succeeded is True
        assert outcome.failure_kind is FailureKind.NONE
        assert outcome.raw_stdout == "Feasibility Score: 90\n"
        assert outcome.exit_info == 0
        assert spawn.args[0] == "codex"
        assert spawn.kwargs["stdin"] == asyncio.subprocess.DEVNULL
        assert spawn.kwargs["cwd"] == str(tmp_path)

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path, spawn):
        """FileNotFoundError is NOT_INSTALLED, not a generic process error."""
        spawn.error = FileNotFoundError(2, "No such file", "codex")
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.succeeded is False
        assert outcome.failure_kind is FailureKind.NOT_INSTALLED
        assert "npm install -g @openai/codex" in outcome.raw_stderr

    @pytest.mark.asyncio
    async def test_other_spawn_error(self, tmp_path, spawn):
        spawn.error = PermissionError(13, "Permission denied")
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.failure_kind is FailureKind.PROCESS_ERROR

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, tmp_path, spawn):
        spawn.factory = lambda: FakeProcess(stderr=b"Error: 429 Too Many Requests", returncode=1)
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.failure_kind is FailureKind.QUOTA_EXHAUSTED
        assert outcome.succeeded is False
        assert outcome.error == "Codex CLI quota exhausted"

    @pytest.mark.asyncio
    async def test_unknown_flag_is_process_error(self, tmp_path, spawn):
        spawn.factory = lambda: FakeProcess(stderr=b"error: unknown flag --foo", returncode=2)
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.failure_kind is FailureKind.PROCESS_ERROR
        assert outcome.exit_info == 2
        assert outcome.raw_stderr == "error: unknown flag --foo"

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, tmp_path, spawn):
        request = InvocationRequest(plan_text="x", working_directory=tmp_path / "nope")
        outcome = await CodexCliBackend().invoke(request)

        assert outcome.failure_kind is FailureKind.PROCESS_ERROR
        assert spawn.args is None

    @pytest.mark.asyncio
    async def test_timeout_terminates_process(self, tmp_path, spawn):
        spawn.factory = lambda: FakeProcess(stdout=b"partial", hang=True)
        backend = CodexCliBackend(grace=0.5)
        outcome = await backend.invoke(_request(tmp_path, timeout_ms=50))

        assert outcome.failure_kind is FailureKind.TIMEOUT
        assert outcome.raw_stdout == "partial"
        assert spawn.process.signals == ["TERM"]

    @pytest.mark.asyncio
    async def test_timeout_escalates_to_kill(self, tmp_path, spawn):
        """A process ignoring SIGTERM is killed after the grace window."""
        spawn.factory = lambda: FakeProcess(hang=True, ignore_term=True)
        backend = CodexCliBackend(grace=0.05)
        outcome = await backend.invoke(_request(tmp_path, timeout_ms=50))

        assert outcome.failure_kind is FailureKind.TIMEOUT
        assert spawn.process.signals == ["TERM", "KILL"]
        assert spawn.process.returncode == -9

    @pytest.mark.asyncio
    async def test_json_events_unwrapped_for_extraction(self, tmp_path, spawn):
        events = [
            {"type": "thread.started"},
            {"type": "item.completed", "item": {"type": "agent_message", "text": "Feasibility: 77"}},
        ]
        stdout = "\n".join(json.dumps(e) for e in events).encode()
        spawn.factory = lambda: FakeProcess(stdout=stdout)
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.analysis_text == "Feasibility: 77"
        assert outcome.raw_text == "Feasibility: 77"
        assert outcome.raw_stdout == stdout.decode()

    @pytest.mark.asyncio
    async def test_analysis_about_rate_limits_is_not_quota(self, tmp_path, spawn):
        """Quota phrases inside the agent's own analysis do not trigger failover."""
        event = {"type": "item.completed", "item": {
            "type": "agent_message", "text": "Risks:\n- The API rate limit of 429 responses is unhandled",
        }}
        spawn.factory = lambda: FakeProcess(stdout=json.dumps(event).encode())
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.failure_kind is FailureKind.NONE
        assert outcome.succeeded is True

    @pytest.mark.asyncio
    async def test_quota_error_event_is_detected(self, tmp_path, spawn):
        events = [
            {"type": "item.completed", "item": {"type": "agent_message", "text": "Feasibility: 70"}},
            {"type": "error", "message": "You exceeded your current quota"},
        ]
        stdout = "\n".join(json.dumps(e) for e in events).encode()
        spawn.factory = lambda: FakeProcess(stdout=stdout, returncode=0)
        outcome = await CodexCliBackend().invoke(_request(tmp_path))

        assert outcome.failure_kind is FailureKind.QUOTA_EXHAUSTED


class TestIsInstalled:
    """Tests for the installation probe."""

    @pytest.mark.asyncio
    async def test_installed(self, spawn):
        spawn.factory = lambda: FakeProcess(returncode=0)
        assert await CodexCliBackend().is_installed() is True
        assert spawn.args == ("codex", "--version")

    @pytest.mark.asyncio
    async def test_not_found(self, spawn):
        spawn.error = FileNotFoundError(2, "No such file", "codex")
        assert await CodexCliBackend().is_installed() is False

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, spawn):
        spawn.factory = lambda: FakeProcess(returncode=1)
        assert await CodexCliBackend().is_installed() is False


class TestAgentMessages:
    """Tests for JSON event unwrapping."""

    def test_legacy_event_shape(self):
        line = json.dumps({"id": "0", "msg": {"type": "agent_message", "message": "Risks:\n- a"}})
        assert agent_messages(line) == "Risks:\n- a"

    def test_multiple_messages_joined(self):
        lines = "\n".join([
            json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": "one"}}),
            json.dumps({"type": "item.completed", "item": {"type": "reasoning", "text": "skip"}}),
            json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": "two"}}),
        ])
        assert agent_messages(lines) == "one\n\ntwo"

    def test_plain_text_returns_none(self):
        assert agent_messages("Feasibility Score: 80\n- {not json") is None
