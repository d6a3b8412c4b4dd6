"""Tests for Context7 best-practice lookups."""

import json

import httpx
import pytest

from planvet.best_practices import (
    BestPractice,
    Context7Client,
    LibraryInfo,
    extract_code_examples,
    find_relevant_practice,
    find_violations,
    prioritize_technologies,
)
from planvet.models import Severity


DOCS = (
    "Never keep session tokens in localStorage. Prefer httpOnly cookies.\n"
    "```js\ndocument.cookie = 'a=b'\n```\n"
)


def _text_result(payload):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"jsonrpc": "2.0", "id": 1, "result": {"content": [{"type": "text", "text": text}]}}


class FakeContext7:
    """Scripted MCP endpoint; records every tool call."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.headers = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        name = body["params"]["name"]
        self.calls.append((name, body["params"]["arguments"]))
        self.headers.append(request.headers)
        response = self.responses.get(name)
        if callable(response):
            response = response(body["params"]["arguments"])
        if response is None:
            return httpx.Response(500, text="no handler")
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)


def _client(fake, **kwargs):
    return Context7Client(transport=httpx.MockTransport(fake), **kwargs)


class TestHelpers:
    """Tests for the pure helpers."""

    def test_prioritize(self):
        ordered = prioritize_technologies(["Redis", "TypeScript", "React", "Docker"])
        assert ordered == ["React", "TypeScript", "Redis", "Docker"]

    def test_code_examples(self):
        assert extract_code_examples(DOCS) == ["document.cookie = 'a=b'"]

    def test_relevant_practice(self):
        matched = find_relevant_practice("Avoid storing session tokens in localStorage", DOCS)
        assert matched == "Never keep session tokens in localStorage"

    def test_short_words_ignored(self):
        assert find_relevant_practice("do it now", DOCS) is None

    def test_violation_needs_anti_pattern(self):
        practice = BestPractice("React", "/facebook/react", "best-practices", DOCS)

        assert find_violations("Session tokens live in localStorage", practice) == []
        violations = find_violations("Avoid storing session tokens in localStorage", practice)
        assert len(violations) == 1
        assert violations[0].severity is Severity.WARNING
        assert violations[0].technology == "React"

    def test_library_info(self):
        info = LibraryInfo("/vercel/next.js/v14.3.0", "Next.js")
        assert info.organization == "vercel"
        assert info.version == "v14.3.0"
        assert LibraryInfo("/facebook/react", "React").version is None


class TestContext7Client:
    """Tests for Context7Client against a mock transport."""

    @pytest.mark.asyncio
    async def test_resolve_library_id_shapes(self):
        fake = FakeContext7({"resolve-library-id": _text_result({"libraryId": "/facebook/react"})})
        info = await _client(fake, api_key="ctx").resolve_library_id("React", "hooks")

        assert info.library_id == "/facebook/react"
        assert fake.calls[0][1] == {"libraryName": "React", "query": "hooks"}
        assert fake.headers[0]["Authorization"] == "Bearer ctx"

    @pytest.mark.asyncio
    async def test_resolve_from_libraries_list(self):
        fake = FakeContext7({"resolve-library-id": _text_result({"libraries": [{"id": "/vuejs/core"}]})})
        info = await _client(fake).resolve_library_id("Vue.js", "q")
        assert info.library_id == "/vuejs/core"

    @pytest.mark.asyncio
    async def test_resolve_from_plain_text(self):
        fake = FakeContext7({"resolve-library-id": _text_result("Best match: /tiangolo/fastapi (trust 9)")})
        info = await _client(fake).resolve_library_id("FastAPI", "q")
        assert info.library_id == "/tiangolo/fastapi"

    @pytest.mark.asyncio
    async def test_event_stream_body(self):
        payload = json.dumps(_text_result({"libraryId": "/facebook/react"}))
        fake = FakeContext7({"resolve-library-id": httpx.Response(
            200,
            text=f"event: message\ndata: {payload}\n\n",
            headers={"content-type": "text/event-stream"},
        )})
        info = await _client(fake).resolve_library_id("React", "q")
        assert info.library_id == "/facebook/react"

    @pytest.mark.asyncio
    async def test_error_payload_is_none(self):
        fake = FakeContext7({"resolve-library-id": {"jsonrpc": "2.0", "id": 1, "error": {"message": "nope"}}})
        assert await _client(fake).resolve_library_id("React", "q") is None

    @pytest.mark.asyncio
    async def test_query_docs_falls_back(self):
        fake = FakeContext7({"get-library-docs": _text_result(DOCS)})
        docs = await _client(fake).query_docs("/facebook/react", "q", "best-practices")

        assert docs == DOCS
        assert [name for name, _ in fake.calls] == ["query-docs", "get-library-docs"]
        assert fake.calls[0][1]["tokens"] == 5000
        assert fake.calls[0][1]["topic"] == "best-practices"

    @pytest.mark.asyncio
    async def test_call_budget(self):
        fake = FakeContext7({
            "resolve-library-id": lambda args: _text_result({"libraryId": f"/org/{args['libraryName'].lower()}"}),
            "query-docs": _text_result(DOCS),
        })
        practices = await _client(fake).get_best_practices(["React", "TypeScript", "Redis"], "x" * 1000)

        assert len(fake.calls) == 3
        assert [p.technology for p in practices] == ["React"]
        assert practices[0].code_examples == ["document.cookie = 'a=b'"]
        assert len(fake.calls[0][1]["query"]) == 300

    @pytest.mark.asyncio
    async def test_validate(self):
        fake = FakeContext7({
            "resolve-library-id": _text_result({"libraryId": "/facebook/react"}),
            "query-docs": _text_result(DOCS),
        })
        result = await _client(fake).validate(
            ["React"], "plan", ["Avoid storing session tokens in localStorage", "Looks fine"]
        )

        assert result.technologies_detected == ["React"]
        assert len(result.best_practices_checked) == 1
        assert len(result.violations) == 1
        assert result.has_severity(Severity.WARNING)
        assert result.to_dict()["best_practices_checked"][0]["code_examples"] == 1

    @pytest.mark.asyncio
    async def test_validate_unreachable_is_empty(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        client = Context7Client(transport=httpx.MockTransport(handler))
        result = await client.validate(["React"], "plan", ["Avoid something important here"])

        assert result.best_practices_checked == []
        assert result.violations == []

    @pytest.mark.asyncio
    async def test_validate_without_technologies(self):
        fake = FakeContext7({})
        result = await _client(fake).validate([], "plan", ["Avoid it"])

        assert fake.calls == []
        assert result.violations == []
