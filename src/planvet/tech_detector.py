"""Technology detection for plan text.

Scores each known technology by evidence found in the plan:
- import/require statements (+0.4 each)
- keywords, matched as whole words (+0.2 each)
- file names or extensions mentioned (+0.15 each)

Confidence is capped at 1.0; anything under 0.2 is dropped. The detected
names are handed to the backend prompt as extra context and drive the
best-practice lookups.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

from planvet.config.defaults import (
    TECH_FILE_PATTERN_WEIGHT,
    TECH_IMPORT_WEIGHT,
    TECH_KEYWORD_WEIGHT,
    TECH_MIN_CONFIDENCE,
)


class TechCategory(Enum):
    FRONTEND_FRAMEWORK = "frontend-framework"
    BACKEND_FRAMEWORK = "backend-framework"
    DATABASE = "database"
    LANGUAGE = "language"
    BUILD_TOOL = "build-tool"
    TESTING = "testing"
    CLOUD = "cloud"
    DEVOPS = "devops"
    LIBRARY = "library"


@dataclass(frozen=True)
class TechPattern:
    name: str
    category: TechCategory
    imports: Sequence[str] = ()
    keywords: Sequence[str] = ()
    files: Sequence[str] = ()


@dataclass
class DetectedTechnology:
    name: str
    category: TechCategory
    confidence: float
    evidence: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "category": self.category.value,
            "confidence": round(self.confidence, 2),
            "evidence": list(self.evidence),
        }


_JS_IMPORT = r"""(?:import\s+.*\s+from\s+|require\s*\(\s*)['"]{}['"/]"""


def _js(module: str) -> str:
    return _JS_IMPORT.format(re.escape(module))


TECHNOLOGY_PATTERNS: List[TechPattern] = [
    # Frontend frameworks
    TechPattern("React", TechCategory.FRONTEND_FRAMEWORK,
                imports=[_js("react")],
                keywords=["react", "jsx", "usestate", "useeffect", "react hooks"],
                files=[".jsx", ".tsx"]),
    TechPattern("Vue.js", TechCategory.FRONTEND_FRAMEWORK,
                imports=[_js("vue")],
                keywords=["vue", "vuex", "pinia", "composition api", "v-model"],
                files=[".vue"]),
    TechPattern("Angular", TechCategory.FRONTEND_FRAMEWORK,
                imports=[_js("@angular")],
                keywords=["angular", "ngmodule", "@angular"]),
    TechPattern("Next.js", TechCategory.FRONTEND_FRAMEWORK,
                imports=[_js("next")],
                keywords=["next.js", "nextjs", "getserversideprops", "getstaticprops", "app router"]),
    TechPattern("Svelte", TechCategory.FRONTEND_FRAMEWORK,
                imports=[_js("svelte")],
                keywords=["svelte", "sveltekit"],
                files=[".svelte"]),

    # Backend frameworks
    TechPattern("FastAPI", TechCategory.BACKEND_FRAMEWORK,
                imports=[r"from\s+fastapi\s+import", r"import\s+fastapi"],
                keywords=["fastapi", "pydantic", "uvicorn", "@app.get", "@app.post"]),
    TechPattern("Express.js", TechCategory.BACKEND_FRAMEWORK,
                imports=[_js("express")],
                keywords=["express", "express.js", "app.use"]),
    TechPattern("Django", TechCategory.BACKEND_FRAMEWORK,
                imports=[r"from\s+django[\w.]*\s+import", r"import\s+django"],
                keywords=["django", "django rest framework", "drf", "urlconf"],
                files=["models.py", "views.py"]),
    TechPattern("Flask", TechCategory.BACKEND_FRAMEWORK,
                imports=[r"from\s+flask\s+import", r"import\s+flask"],
                keywords=["flask", "@app.route", "blueprint"]),
    TechPattern("NestJS", TechCategory.BACKEND_FRAMEWORK,
                imports=[_js("@nestjs")],
                keywords=["nestjs", "@controller", "@injectable"]),

    # Databases
    TechPattern("PostgreSQL", TechCategory.DATABASE,
                imports=[_js("pg"), r"import\s+psycopg2?", r"import\s+asyncpg"],
                keywords=["postgresql", "postgres", "psql"]),
    TechPattern("MongoDB", TechCategory.DATABASE,
                imports=[_js("mongodb"), _js("mongoose"), r"import\s+pymongo"],
                keywords=["mongodb", "mongoose", "nosql"]),
    TechPattern("Redis", TechCategory.DATABASE,
                imports=[_js("redis"), _js("ioredis"), r"import\s+redis"],
                keywords=["redis", "ioredis"]),
    TechPattern("SQLite", TechCategory.DATABASE,
                imports=[r"import\s+sqlite3", _js("better-sqlite3")],
                keywords=["sqlite", "sqlite3"]),

    # Languages
    TechPattern("TypeScript", TechCategory.LANGUAGE,
                keywords=["typescript"],
                files=[".ts", ".tsx", "tsconfig.json"]),
    TechPattern("Python", TechCategory.LANGUAGE,
                imports=[r"^import\s+[\w.]+(?:\s+as\s+\w+)?\s*$", r"^from\s+[\w.]+\s+import\s"],
                keywords=["python", "pip", "requirements.txt", "pyproject.toml", "venv"],
                files=[".py"]),
    TechPattern("Go", TechCategory.LANGUAGE,
                imports=[r"^package\s+\w+", r"^import\s+\("],
                keywords=["golang", "go mod", "goroutine", "go.mod"],
                files=[".go"]),
    TechPattern("Rust", TechCategory.LANGUAGE,
                imports=[r"^use\s+\w+::", r"^mod\s+\w+;"],
                keywords=["rust", "cargo", "crate", "cargo.toml"],
                files=[".rs"]),

    # Build tools
    TechPattern("Vite", TechCategory.BUILD_TOOL,
                imports=[_js("vite")],
                keywords=["vite"],
                files=["vite.config"]),
    TechPattern("Webpack", TechCategory.BUILD_TOOL,
                imports=[_js("webpack")],
                keywords=["webpack"],
                files=["webpack.config"]),

    # Testing
    TechPattern("Jest", TechCategory.TESTING,
                imports=[_js("@jest")],
                keywords=["jest", "beforeeach", "aftereach"],
                files=[".test.ts", ".test.js", ".spec.ts", ".spec.js"]),
    TechPattern("Pytest", TechCategory.TESTING,
                imports=[r"import\s+pytest"],
                keywords=["pytest", "fixture", "parametrize", "conftest"],
                files=["conftest.py"]),
    TechPattern("Playwright", TechCategory.TESTING,
                imports=[_js("@playwright")],
                keywords=["playwright", "e2e", "page.goto"]),

    # Cloud & DevOps
    TechPattern("Docker", TechCategory.DEVOPS,
                keywords=["docker", "dockerfile", "docker-compose"],
                files=["dockerfile", "docker-compose.yml", "docker-compose.yaml"]),
    TechPattern("Kubernetes", TechCategory.CLOUD,
                keywords=["kubernetes", "k8s", "kubectl", "helm"]),
    TechPattern("AWS", TechCategory.CLOUD,
                imports=[_js("@aws-sdk"), r"import\s+boto3"],
                keywords=["aws", "lambda", "s3", "ec2", "dynamodb", "cloudformation"]),

    # Libraries
    TechPattern("TanStack Query", TechCategory.LIBRARY,
                imports=[_js("@tanstack/react-query")],
                keywords=["tanstack query", "react query", "usequery", "usemutation"]),
    TechPattern("Tailwind CSS", TechCategory.LIBRARY,
                keywords=["tailwind", "tailwindcss"],
                files=["tailwind.config"]),
    TechPattern("Prisma", TechCategory.LIBRARY,
                imports=[_js("@prisma/client")],
                keywords=["prisma"],
                files=["schema.prisma"]),
    TechPattern("Zod", TechCategory.LIBRARY,
                imports=[_js("zod")],
                keywords=["zod", "z.object", "z.string"]),
]

_COMPILED_IMPORTS: Dict[str, List[re.Pattern]] = {
    tech.name: [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in tech.imports]
    for tech in TECHNOLOGY_PATTERNS
}
_COMPILED_KEYWORDS: Dict[str, List[re.Pattern]] = {
    tech.name: [re.compile(rf"(?<![\w]){re.escape(k)}(?![\w])") for k in tech.keywords]
    for tech in TECHNOLOGY_PATTERNS
}


def _score(tech: TechPattern, content: str, lowered: str) -> DetectedTechnology:
    evidence: List[str] = []
    confidence = 0.0

    for pattern in _COMPILED_IMPORTS[tech.name]:
        match = pattern.search(content)
        if match:
            evidence.append(f"Import found: {match.group(0)[:50]}")
            confidence += TECH_IMPORT_WEIGHT

    for keyword, pattern in zip(tech.keywords, _COMPILED_KEYWORDS[tech.name]):
        if pattern.search(lowered):
            evidence.append(f'Keyword found: "{keyword}"')
            confidence += TECH_KEYWORD_WEIGHT

    for file_pattern in tech.files:
        if file_pattern in lowered:
            evidence.append(f"File pattern found: {file_pattern}")
            confidence += TECH_FILE_PATTERN_WEIGHT

    return DetectedTechnology(
        name=tech.name,
        category=tech.category,
        confidence=min(1.0, round(confidence, 4)),
        evidence=evidence,
    )


def detect_technologies(content: str) -> List[DetectedTechnology]:
    """Technologies mentioned in ``content``, most confident first."""
    if not content:
        return []
    lowered = content.lower()
    detected = [
        tech for tech in (_score(t, content, lowered) for t in TECHNOLOGY_PATTERNS)
        if tech.evidence and tech.confidence >= TECH_MIN_CONFIDENCE
    ]
    detected.sort(key=lambda t: (-t.confidence, t.name))
    return detected


def technology_names(detected: Sequence[DetectedTechnology]) -> List[str]:
    return [t.name for t in detected]


def primary_technologies(detected: Sequence[DetectedTechnology]) -> List[DetectedTechnology]:
    """Highest-confidence technology per category."""
    best: Dict[TechCategory, DetectedTechnology] = {}
    for tech in detected:
        current = best.get(tech.category)
        if current is None or tech.confidence > current.confidence:
            best[tech.category] = tech
    return list(best.values())


def tech_summary(detected: Sequence[DetectedTechnology]) -> str:
    if not detected:
        return "No specific technologies detected."

    by_category: Dict[TechCategory, List[DetectedTechnology]] = {}
    for tech in detected:
        by_category.setdefault(tech.category, []).append(tech)

    lines = ["Detected Technologies:"]
    for category, techs in by_category.items():
        names = ", ".join(f"{t.name} ({round(t.confidence * 100)}%)" for t in techs)
        lines.append(f"  {category.value}: {names}")
    return "\n".join(lines)


def technology_context(detected: Sequence[DetectedTechnology]) -> str:
    """Extra prompt context naming the detected technologies."""
    if not detected:
        return ""
    return f"Technologies detected in this plan: {', '.join(technology_names(detected))}"
