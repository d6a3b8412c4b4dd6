"""Secondary backend: OpenAI chat completions over HTTP.

Metered fallback used when the Codex CLI is missing or out of quota. One
completion call per request; the timeout is enforced by cancelling the
request task.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from planvet.backends.classify import is_quota_error
from planvet.backends.prompts import build_chat_messages
from planvet.cancellation import run_with_deadline
from planvet.config.defaults import (
    OPENAI_BASE_URL_DEFAULT,
    OPENAI_CONNECT_TIMEOUT_SECONDS,
    OPENAI_MAX_TOKENS,
    OPENAI_MODEL_DEFAULT,
    OPENAI_TEMPERATURE,
)
from planvet.errors import DeadlineExceeded
from planvet.models import BackendKind, FailureKind, InvocationOutcome, InvocationRequest

logger = logging.getLogger(__name__)


class OpenAIChatBackend:
    """Runs plan analysis through the chat completions endpoint."""

    kind = BackendKind.SECONDARY

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = OPENAI_MODEL_DEFAULT,
        base_url: str = OPENAI_BASE_URL_DEFAULT,
        connect_timeout: float = OPENAI_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.connect_timeout = connect_timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, request: InvocationRequest) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": build_chat_messages(request),
            "max_tokens": OPENAI_MAX_TOKENS,
            "temperature": OPENAI_TEMPERATURE,
        }

    async def _post(self, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=self.connect_timeout),
            transport=self._transport,
        ) as client:
            return await client.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            )

    async def invoke(self, request: InvocationRequest) -> InvocationOutcome:
        """Run one analysis. Never raises for classifiable failures."""
        started = time.monotonic()

        def outcome(**kwargs) -> InvocationOutcome:
            return InvocationOutcome(
                backend=self.kind,
                duration_ms=(time.monotonic() - started) * 1000,
                **kwargs,
            )

        if not self.configured:
            return outcome(
                succeeded=False,
                raw_stderr="OpenAI API not configured",
                failure_kind=FailureKind.NOT_INSTALLED,
                error="OpenAI API not configured - set OPENAI_API_KEY environment variable",
            )

        logger.info(f"Executing OpenAI API ({self.model}) in {request.mode} mode")
        timed_out = f"OpenAI API request timed out after {request.timeout_ms}ms"

        try:
            response = await run_with_deadline(
                self._post(self.build_payload(request), request.timeout_seconds),
                request.timeout_seconds,
            )
        except (DeadlineExceeded, httpx.TimeoutException):
            logger.warning(timed_out)
            return outcome(
                succeeded=False,
                raw_stderr="Request timed out",
                failure_kind=FailureKind.TIMEOUT,
                error=timed_out,
            )
        except httpx.HTTPError as e:
            message = str(e) or type(e).__name__
            logger.error(f"OpenAI API transport error: {message}")
            return outcome(
                succeeded=False,
                raw_stderr=message,
                failure_kind=(
                    FailureKind.QUOTA_EXHAUSTED if is_quota_error(message)
                    else FailureKind.PROCESS_ERROR
                ),
                error=message,
            )

        body = response.text
        if response.status_code == 429 or (response.status_code >= 400 and is_quota_error(body)):
            logger.warning(f"OpenAI API quota/rate limit (HTTP {response.status_code})")
            return outcome(
                succeeded=False,
                raw_stderr=body,
                failure_kind=FailureKind.QUOTA_EXHAUSTED,
                exit_info=response.status_code,
                error=f"OpenAI API rate limit or quota exceeded (HTTP {response.status_code})",
            )
        if response.status_code != 200:
            return outcome(
                succeeded=False,
                raw_stderr=body,
                failure_kind=FailureKind.PROCESS_ERROR,
                exit_info=response.status_code,
                error=f"OpenAI API error {response.status_code}",
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return outcome(
                succeeded=False,
                raw_stderr=body,
                failure_kind=FailureKind.PROCESS_ERROR,
                exit_info=response.status_code,
                error=f"Malformed OpenAI API response: {e}",
            )

        if not content.strip():
            return outcome(
                succeeded=False,
                raw_stderr=body,
                failure_kind=FailureKind.PROCESS_ERROR,
                exit_info=response.status_code,
                error="Empty response from OpenAI API",
            )

        logger.info("OpenAI API execution completed successfully")
        return outcome(
            succeeded=True,
            raw_stdout=content,
            exit_info=response.status_code,
        )
