"""Project type detection: framework, language, build system and test framework.

Detection reads manifest files at the project root only:
- package.json (dependencies decide the JS framework and test runner)
- tsconfig.json (TypeScript)
- pyproject.toml / requirements.txt / setup.py (Python)
- Cargo.toml (Rust), go.mod (Go)
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path

from guidepilot.models import ArchitecturalPattern, CompliancePattern, ProjectType

logger = logging.getLogger(__name__)

# Checked in order; the first dependency present names the framework
JS_FRAMEWORKS = (
    ("next", "next"),
    ("react", "react"),
    ("vue", "vue"),
    ("@angular/core", "angular"),
    ("svelte", "svelte"),
    ("express", "express"),
)

JS_TEST_FRAMEWORKS = ("vitest", "jest", "mocha", "ava")

PY_FRAMEWORKS = (
    ("django", "django"),
    ("fastapi", "fastapi"),
    ("flask", "flask"),
)

ARCHITECTURE_INDICATORS = {
    "component-based": ("components", "src/components"),
    "layered": ("services", "models", "controllers"),
    "monorepo": ("packages", "apps"),
    "feature-sliced": ("features",),
}

COMPLIANCE_PATTERNS: dict[str, list[CompliancePattern]] = {
    "react": [
        CompliancePattern(
            id="react-hooks-rules",
            pattern=re.compile(r"React Hook \w+ (?:is called conditionally|has missing dependencies)"),
            severity="warning",
            message="Follow the rules of hooks and keep dependency arrays complete",
            category="maintainability",
        ),
    ],
    "typescript": [
        CompliancePattern(
            id="typescript-any",
            pattern=re.compile(r":\s*any\b"),
            severity="info",
            message="Prefer precise types over any",
            category="maintainability",
        ),
    ],
    "python": [
        CompliancePattern(
            id="python-bare-except",
            pattern=re.compile(r"except\s*:"),
            severity="warning",
            message="Catch specific exceptions instead of a bare except",
            category="reliability",
        ),
    ],
}


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


_REQUIREMENT_SPLIT = re.compile(r"[<>=~!\[;\s]")
_QUOTED_REQUIREMENT = re.compile(r"[\"']([a-z0-9_.\-]+)\s*(?:[<>=~!\[;][^\"']*)?[\"']")


def python_requirement_names(project: Path) -> list[str]:
    """Dependency names from requirements.txt, pyproject.toml or setup.py."""
    names: list[str] = []
    requirements = project / "requirements.txt"
    if requirements.is_file():
        try:
            for line in requirements.read_text().lower().splitlines():
                line = line.strip()
                if line and not line.startswith(("#", "-")):
                    names.append(_REQUIREMENT_SPLIT.split(line, 1)[0])
        except OSError:
            pass
    for manifest in ("pyproject.toml", "setup.py"):
        path = project / manifest
        if not path.is_file():
            continue
        try:
            names.extend(_QUOTED_REQUIREMENT.findall(path.read_text().lower()))
        except OSError:
            continue
    return list(dict.fromkeys(n for n in names if n))


def detect_project_type_sync(project_path: str) -> ProjectType:
    """Synchronous detection. Raises OSError if the project is unreadable."""
    project = Path(project_path)
    if not project.is_dir():
        raise NotADirectoryError(project_path)

    result = ProjectType()
    package_json = project / "package.json"

    if package_json.is_file():
        manifest = _read_json(package_json)
        deps = {**manifest.get("dependencies", {}), **manifest.get("devDependencies", {})}
        result.language = "typescript" if (
            (project / "tsconfig.json").is_file() or "typescript" in deps
        ) else "javascript"
        result.framework = next((fw for dep, fw in JS_FRAMEWORKS if dep in deps), "node")
        if (project / "yarn.lock").is_file():
            result.build_system = "yarn"
        elif (project / "pnpm-lock.yaml").is_file():
            result.build_system = "pnpm"
        else:
            result.build_system = "npm"
        result.test_framework = next((t for t in JS_TEST_FRAMEWORKS if t in deps), None)
    elif any((project / m).is_file() for m in ("pyproject.toml", "requirements.txt", "setup.py")):
        requirements = python_requirement_names(project)
        result.language = "python"
        result.framework = next((fw for dep, fw in PY_FRAMEWORKS if dep in requirements), "python")
        if (project / "poetry.lock").is_file():
            result.build_system = "poetry"
        elif (project / "uv.lock").is_file():
            result.build_system = "uv"
        else:
            result.build_system = "pip"
        if "pytest" in requirements or (project / "pytest.ini").is_file() or (project / "conftest.py").is_file():
            result.test_framework = "pytest"
    elif (project / "Cargo.toml").is_file():
        result.framework = result.language = "rust"
        result.build_system = "cargo"
        result.test_framework = "cargo-test"
    elif (project / "go.mod").is_file():
        result.framework = result.language = "go"
        result.build_system = "go"
        result.test_framework = "go-test"

    result.patterns = detect_architectural_patterns(project)
    return result


def detect_architectural_patterns(project: Path) -> list[ArchitecturalPattern]:
    patterns: list[ArchitecturalPattern] = []
    for name, indicators in ARCHITECTURE_INDICATORS.items():
        present = [f"{i}/" for i in indicators if (project / i).is_dir()]
        if present:
            patterns.append(
                ArchitecturalPattern(
                    type=name,
                    confidence=round(min(0.5 + 0.15 * len(present), 0.95), 2),
                    indicators=present,
                )
            )
    return patterns


class ProjectTypeDetector:
    """Async facade over manifest detection. Caching is left to the context builder."""

    async def detect_project_type(self, project_path: str) -> ProjectType:
        key = str(Path(project_path).resolve())
        project_type = await asyncio.to_thread(detect_project_type_sync, key)
        logger.debug(f"Detected {project_type.framework}/{project_type.language} at {key}")
        return project_type

    async def get_compliance_patterns(self, project_type: ProjectType) -> list[CompliancePattern]:
        return [
            *COMPLIANCE_PATTERNS.get(project_type.framework, []),
            *(
                COMPLIANCE_PATTERNS.get(project_type.language, [])
                if project_type.language != project_type.framework
                else []
            ),
        ]
