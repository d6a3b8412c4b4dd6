"""Best-practice cross-referencing through Context7.

Context7 is an MCP server reached over HTTP with JSON-RPC ``tools/call``:

- ``resolve-library-id`` turns a technology name into a library ID such as
  ``/facebook/react``
- ``query-docs`` (older servers: ``get-library-docs``) returns documentation

Observations from the analysis record that read like anti-pattern warnings
are matched against sentences of the fetched documentation. The lookup is
advisory: every failure is logged and produces an empty result, and the
findings stay outside the ``ValidationRecord``.
"""

from __future__ import annotations

import itertools
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from planvet.config.defaults import (
    CONTEXT7_BASE_URL_DEFAULT,
    CONTEXT7_MAX_CALLS,
    CONTEXT7_MAX_TOKENS,
    CONTEXT7_MIN_KEYWORD_MATCHES,
    CONTEXT7_TIMEOUT_SECONDS,
)
from planvet.models import Severity

logger = logging.getLogger(__name__)

BEST_PRACTICES_TOPIC = "best-practices"
QUERY_CONTEXT_CHARS = 300

# Frameworks first, then languages, databases, libraries
TECH_PRIORITIES: Dict[str, int] = {
    "react": 10,
    "vue.js": 10,
    "angular": 10,
    "next.js": 10,
    "fastapi": 10,
    "django": 10,
    "flask": 10,
    "express.js": 10,
    "nestjs": 10,
    "typescript": 8,
    "python": 8,
    "postgresql": 7,
    "mongodb": 7,
    "tanstack query": 5,
    "tailwind css": 5,
    "prisma": 5,
}

ANTI_PATTERNS = [
    (re.compile(r"don'?t use", re.IGNORECASE), Severity.WARNING),
    (re.compile(r"\bavoid", re.IGNORECASE), Severity.WARNING),
    (re.compile(r"\bdeprecated\b", re.IGNORECASE), Severity.ERROR),
    (re.compile(r"\banti-?pattern", re.IGNORECASE), Severity.ERROR),
    (re.compile(r"\bnot recommended\b", re.IGNORECASE), Severity.WARNING),
    (re.compile(r"\binstead of\b", re.IGNORECASE), Severity.INFO),
]

_LIBRARY_ID = re.compile(r"(/[\w.-]+/[\w.-]+(?:/[\w.-]+)?)")
_CODE_BLOCK = re.compile(r"```\w*\n(.*?)```", re.DOTALL)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")

_request_ids = itertools.count(1)


@dataclass
class LibraryInfo:
    library_id: str
    name: str

    @property
    def organization(self) -> Optional[str]:
        parts = [p for p in self.library_id.split("/") if p]
        return parts[0] if parts else None

    @property
    def version(self) -> Optional[str]:
        parts = [p for p in self.library_id.split("/") if p]
        if len(parts) >= 3 and parts[2].startswith("v"):
            return parts[2]
        return None


@dataclass
class BestPractice:
    technology: str
    library_id: str
    topic: str
    content: str
    code_examples: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technology": self.technology,
            "library_id": self.library_id,
            "topic": self.topic,
            "code_examples": len(self.code_examples),
        }


@dataclass
class BestPracticeViolation:
    technology: str
    violation: str
    best_practice: str
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technology": self.technology,
            "violation": self.violation,
            "best_practice": self.best_practice,
            "severity": self.severity.value,
        }


@dataclass
class BestPracticeResult:
    technologies_detected: List[str] = field(default_factory=list)
    best_practices_checked: List[BestPractice] = field(default_factory=list)
    violations: List[BestPracticeViolation] = field(default_factory=list)

    def has_severity(self, severity: Severity) -> bool:
        return any(v.severity is severity for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "technologies_detected": list(self.technologies_detected),
            "best_practices_checked": [p.to_dict() for p in self.best_practices_checked],
            "violations": [v.to_dict() for v in self.violations],
        }


# =============================================================================
# Pure helpers
# =============================================================================


def prioritize_technologies(technologies: Sequence[str]) -> List[str]:
    """Order technologies for lookup; ties keep their detected order."""
    return sorted(technologies, key=lambda t: -TECH_PRIORITIES.get(t.lower(), 0))


def extract_code_examples(docs: str) -> List[str]:
    return [m.group(1).strip() for m in _CODE_BLOCK.finditer(docs)]


def find_relevant_practice(observation: str, practice_content: str) -> Optional[str]:
    """First documentation sentence sharing enough keywords with the observation."""
    keywords = [w.lower() for w in observation.split() if len(w) > 4][:5]
    if not keywords:
        return None
    for sentence in _SENTENCE_SPLIT.split(practice_content):
        lowered = sentence.lower()
        matches = sum(1 for kw in keywords if kw in lowered)
        if matches >= CONTEXT7_MIN_KEYWORD_MATCHES:
            return sentence.strip()
    return None


def find_violations(observation: str, practice: BestPractice) -> List[BestPracticeViolation]:
    violations = []
    for pattern, severity in ANTI_PATTERNS:
        if not pattern.search(observation):
            continue
        matched = find_relevant_practice(observation, practice.content)
        if matched:
            violations.append(BestPracticeViolation(
                technology=practice.technology,
                violation=observation,
                best_practice=matched,
                severity=severity,
            ))
    return violations


# =============================================================================
# Context7 client
# =============================================================================


class Context7Client:
    """Minimal MCP-over-HTTP client for Context7 documentation lookups."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = CONTEXT7_BASE_URL_DEFAULT,
        max_tokens: int = CONTEXT7_MAX_TOKENS,
        timeout: float = CONTEXT7_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        # Streamable HTTP servers may answer with a single SSE event
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            payloads = [
                line[len("data:"):].strip()
                for line in response.text.splitlines()
                if line.startswith("data:")
            ]
            if not payloads:
                raise ValueError("empty event stream")
            return json.loads(payloads[-1])
        return response.json()

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Optional[Any]:
        """Call one MCP tool. Returns parsed content or None on any failure."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        request = {
            "jsonrpc": "2.0",
            "id": next(_request_ids),
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.base_url, json=request, headers=headers)
                response.raise_for_status()
                data = self._parse_body(response)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Context7 {name} call failed: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Context7 {name} returned unexpected payload")
            return None
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning(f"Context7 {name} error: {message or 'Unknown MCP error'}")
            return None

        result = data.get("result")
        if isinstance(result, dict) and isinstance(result.get("content"), list):
            for item in result["content"]:
                if isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                    try:
                        return json.loads(item["text"])
                    except ValueError:
                        return {"content": item["text"]}
        return result

    async def resolve_library_id(self, library_name: str, query: str) -> Optional[LibraryInfo]:
        logger.debug(f"Resolving library ID for: {library_name}")
        response = await self.call_tool(
            "resolve-library-id", {"libraryName": library_name, "query": query}
        )
        if not isinstance(response, dict):
            return None

        library_id = response.get("libraryId")
        if not library_id and isinstance(response.get("libraries"), list) and response["libraries"]:
            first = response["libraries"][0]
            library_id = (first.get("libraryId") or first.get("id")) if isinstance(first, dict) else first
        if not library_id and isinstance(response.get("content"), str):
            # Plain-text listing; take the first ID-shaped token
            match = _LIBRARY_ID.search(response["content"])
            library_id = match.group(1) if match else None

        if not library_id:
            logger.debug(f"Could not resolve library ID for: {library_name}")
            return None
        info = LibraryInfo(library_id=str(library_id), name=library_name)
        logger.info(f"Resolved {library_name} to {info.library_id}")
        return info

    async def query_docs(self, library_id: str, query: str, topic: Optional[str] = None) -> Optional[str]:
        logger.debug(f"Querying docs for {library_id}, topic: {topic or 'general'}")
        arguments: Dict[str, Any] = {"libraryId": library_id, "query": query, "tokens": self.max_tokens}
        if topic:
            arguments["topic"] = topic

        response = await self.call_tool("query-docs", arguments)
        if response is None:
            response = await self.call_tool("get-library-docs", arguments)
        if response is None:
            return None

        if isinstance(response, str):
            return response
        if isinstance(response, dict):
            for key in ("content", "docs", "documentation"):
                if response.get(key):
                    return str(response[key])
        return json.dumps(response)

    async def get_best_practices(self, technologies: Sequence[str], plan_context: str) -> List[BestPractice]:
        """Fetch docs for the most important technologies, within the call budget."""
        practices: List[BestPractice] = []
        query = plan_context[:QUERY_CONTEXT_CHARS]
        calls = 0

        for tech in prioritize_technologies(technologies):
            if calls >= CONTEXT7_MAX_CALLS:
                logger.info(f"Reached max Context7 calls ({CONTEXT7_MAX_CALLS})")
                break

            info = await self.resolve_library_id(tech, query)
            calls += 1
            if info is None or calls >= CONTEXT7_MAX_CALLS:
                continue

            docs = await self.query_docs(
                info.library_id, f"best practices patterns {query}", BEST_PRACTICES_TOPIC
            )
            calls += 1
            if docs:
                practices.append(BestPractice(
                    technology=tech,
                    library_id=info.library_id,
                    topic=BEST_PRACTICES_TOPIC,
                    content=docs,
                    code_examples=extract_code_examples(docs),
                ))
        return practices

    async def validate(
        self,
        technologies: Sequence[str],
        plan_text: str,
        observations: Iterable[str],
    ) -> BestPracticeResult:
        """Cross-reference analysis observations against fetched best practices."""
        result = BestPracticeResult(technologies_detected=list(technologies))
        if not technologies:
            return result

        result.best_practices_checked = await self.get_best_practices(technologies, plan_text)
        for observation in observations:
            for practice in result.best_practices_checked:
                result.violations.extend(find_violations(observation, practice))

        if result.violations:
            logger.info(f"Found {len(result.violations)} best-practice violation(s)")
        return result
