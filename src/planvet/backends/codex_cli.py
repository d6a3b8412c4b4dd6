"""Primary backend: the Codex CLI as a child process.

The CLI authenticates through its own browser login (``codex login``), so no
API key is involved here. One non-interactive ``codex exec`` process is spawned
per request:

- ``--sandbox read-only --ask-for-approval never`` for suggest mode
- ``--full-auto`` (workspace-write sandbox) for apply mode
- ``--json`` and ``-C <project>`` in both modes, prompt last
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from typing import Callable, List, Optional, Tuple

from planvet.backends.classify import classify_output
from planvet.backends.prompts import build_analysis_prompt
from planvet.cancellation import run_with_deadline
from planvet.config.defaults import (
    CODEX_BINARY_DEFAULT,
    CODEX_INSTALL_HINT,
    CODEX_PROBE_TIMEOUT_SECONDS,
    INVOKE_TERMINATE_GRACE_SECONDS,
)
from planvet.errors import DeadlineExceeded
from planvet.models import BackendKind, FailureKind, InvocationOutcome, InvocationRequest

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


def _send(signal_fn: Callable[[], None]) -> None:
    """Deliver a signal, tolerating a process that already exited."""
    try:
        signal_fn()
    except ProcessLookupError:
        logger.debug("Process already exited before signal")


async def _drain(stream: Optional[asyncio.StreamReader], sink: List[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        sink.append(chunk)


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


def _agent_text(line: str) -> Optional[str]:
    """Agent message text carried by one ``--json`` event line, if any.

    Handles both event shapes the CLI has shipped:
    ``{"msg": {"type": "agent_message", "message": ...}}`` and
    ``{"type": "item.completed", "item": {"type": "agent_message", "text": ...}}``.
    """
    line = line.strip()
    if not line.startswith("{"):
        return None
    try:
        event = json.loads(line)
    except ValueError:
        return None
    if not isinstance(event, dict):
        return None
    msg = event.get("msg")
    if isinstance(msg, dict) and msg.get("type") == "agent_message":
        text = msg.get("message")
    else:
        item = event.get("item")
        if not (isinstance(item, dict) and item.get("type") == "agent_message"):
            return None
        text = item.get("text")
    return text if isinstance(text, str) else None


def split_agent_messages(stdout: str) -> Tuple[List[str], str]:
    """Separate agent prose from the rest of ``codex exec --json`` output.

    The residual (status, error and any non-JSON lines) is what gets checked
    for quota signatures, so an analysis that merely discusses rate limits
    does not look like an exhausted quota.
    """
    messages: List[str] = []
    residual: List[str] = []
    for line in stdout.splitlines():
        text = _agent_text(line)
        if text is None:
            residual.append(line)
        elif text.strip():
            messages.append(text)
    return messages, "\n".join(residual)


def agent_messages(stdout: str) -> Optional[str]:
    """Joined agent messages, or None when stdout carries no such events."""
    messages, _ = split_agent_messages(stdout)
    return "\n\n".join(messages) if messages else None


class CodexCliBackend:
    """Runs plan analysis through the ``codex`` executable."""

    kind = BackendKind.PRIMARY

    def __init__(
        self,
        binary: str = CODEX_BINARY_DEFAULT,
        grace: float = INVOKE_TERMINATE_GRACE_SECONDS,
        probe_timeout: float = CODEX_PROBE_TIMEOUT_SECONDS,
    ):
        self.binary = binary
        self.grace = grace
        self.probe_timeout = probe_timeout

    def build_args(self, request: InvocationRequest, prompt: str) -> List[str]:
        """Argument vector after the executable name."""
        args = ["exec", "--json", "-C", str(request.working_directory)]
        if request.destructive:
            args.append("--full-auto")
        else:
            args.extend(["--sandbox", "read-only", "--ask-for-approval", "never"])
        args.append(prompt)
        return args

    async def is_installed(self) -> bool:
        """Check whether ``codex --version`` runs and exits cleanly."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug(f"Codex CLI probe failed to spawn: {e}")
            return False

        try:
            await run_with_deadline(
                proc.communicate(),
                self.probe_timeout,
                graceful=lambda: _send(proc.terminate),
                forceful=lambda: _send(proc.kill),
                wait_closed=proc.wait,
                grace=self.grace,
            )
        except DeadlineExceeded:
            logger.warning(f"Codex CLI probe timed out after {self.probe_timeout}s")
            return False
        return proc.returncode == 0

    async def invoke(self, request: InvocationRequest) -> InvocationOutcome:
        """Run one analysis. Never raises for classifiable failures."""
        prompt = build_analysis_prompt(request)
        args = self.build_args(request, prompt)
        started = time.monotonic()

        def outcome(**kwargs) -> InvocationOutcome:
            return InvocationOutcome(
                backend=self.kind,
                duration_ms=(time.monotonic() - started) * 1000,
                **kwargs,
            )

        if not request.working_directory.is_dir():
            message = f"Working directory does not exist: {request.working_directory}"
            return outcome(
                succeeded=False,
                raw_stderr=message,
                failure_kind=FailureKind.PROCESS_ERROR,
                error=message,
            )

        logger.info(f"Executing Codex CLI in {request.mode} mode")
        logger.debug(f"Spawning: {self.binary} {' '.join(args[:4])} ... [prompt]")

        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                cwd=str(request.working_directory),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except FileNotFoundError:
            logger.error("Codex CLI not found")
            return outcome(
                succeeded=False,
                raw_stderr=f"Codex CLI not found. {CODEX_INSTALL_HINT}",
                failure_kind=FailureKind.NOT_INSTALLED,
                error="Codex CLI not installed",
            )
        except OSError as e:
            logger.error(f"Failed to spawn Codex CLI: {e}")
            return outcome(
                succeeded=False,
                raw_stderr=str(e),
                failure_kind=FailureKind.PROCESS_ERROR,
                error=str(e),
            )

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []

        async def _run() -> int:
            await asyncio.gather(
                _drain(proc.stdout, stdout_chunks),
                _drain(proc.stderr, stderr_chunks),
            )
            return await proc.wait()

        try:
            exit_code = await run_with_deadline(
                _run(),
                request.timeout_seconds,
                graceful=lambda: _send(proc.terminate),
                forceful=lambda: _send(proc.kill),
                wait_closed=proc.wait,
                grace=self.grace,
            )
        except DeadlineExceeded as e:
            logger.warning(
                f"Codex CLI timed out after {request.timeout_ms}ms"
                + (" (killed)" if e.escalated else "")
            )
            return outcome(
                succeeded=False,
                raw_stdout=_decode(stdout_chunks),
                raw_stderr=_decode(stderr_chunks),
                failure_kind=FailureKind.TIMEOUT,
                exit_info=proc.returncode,
                error=f"Codex CLI timed out after {request.timeout_ms}ms",
            )

        stdout = _decode(stdout_chunks)
        stderr = _decode(stderr_chunks)
        messages, residual = split_agent_messages(stdout)
        failure = classify_output(residual, stderr, exit_code)

        if failure is FailureKind.QUOTA_EXHAUSTED:
            logger.warning("Codex CLI quota exhausted")
            error = "Codex CLI quota exhausted"
        elif failure is FailureKind.PROCESS_ERROR:
            error = f"Codex CLI exited with code {exit_code}"
        else:
            error = None

        return outcome(
            succeeded=failure is FailureKind.NONE,
            raw_stdout=stdout,
            raw_stderr=stderr,
            failure_kind=failure,
            exit_info=exit_code,
            error=error,
            analysis_text="\n\n".join(messages) or None,
        )
