"""Framework-aware guidance patterns derived from a project context.

``ContextPatterns`` is stateless: the same (context, output) pair always
yields the same ranked list. Patterns cover:
- Confirmation-safe actions (answer "1")
- Framework idioms (React hooks, TypeScript types, Python/Node imports)
- Git workflow nudges
- Test, dependency and security signals
"""

import logging
import re

from guidepilot.confirmation import is_known_safe_package
from guidepilot.models import GuidancePattern, ProjectContext

logger = logging.getLogger(__name__)

_I = re.IGNORECASE
_PROMPT = r"(?:do you want|would you like|should i|proceed with|continue with)"
_INSTALL_TARGET = re.compile(r"install\s+(?:the\s+)?([\w\-@/.]+)", _I)

CONFIRMATION = "confirmation-dialog"


def _confirmation_patterns(context: ProjectContext, output: str) -> list[GuidancePattern]:
    patterns = [
        GuidancePattern(
            id="confirm-test-execution",
            pattern=re.compile(_PROMPT + r".*\b(?:run|execute)\b.*\btests?\b", _I),
            priority=10,
            guidance="1",
            category=CONFIRMATION,
        ),
        GuidancePattern(
            id="confirm-utility-file-creation",
            pattern=re.compile(
                _PROMPT + r".*\bcreate\b.*(?:service|util|helper|config|debug|logger|hook|types?)\w*\.\w+",
                _I,
            ),
            priority=9,
            guidance="1",
            category=CONFIRMATION,
        ),
        GuidancePattern(
            id="confirm-build-execution",
            pattern=re.compile(_PROMPT + r".*\b(?:run|execute)\b.*\b(?:build|compile|bundle)\b", _I),
            priority=9,
            guidance="1",
            category=CONFIRMATION,
        ),
        GuidancePattern(
            id="confirm-git-staging",
            pattern=re.compile(_PROMPT + r".*\bgit add\b", _I),
            priority=8,
            guidance="1",
            category=CONFIRMATION,
        ),
    ]

    # Only offered when the prompt names a package we already trust
    match = _INSTALL_TARGET.search(output)
    if match:
        package = match.group(1).rstrip("?.!,")
        if package in context.all_dependencies or is_known_safe_package(package, context.project_type):
            patterns.append(
                GuidancePattern(
                    id="confirm-safe-package-install",
                    pattern=re.compile(_PROMPT + r".*\binstall\s+" + re.escape(package), _I),
                    priority=8,
                    guidance="1",
                    category=CONFIRMATION,
                )
            )
    return patterns


def _framework_patterns(context: ProjectContext) -> list[GuidancePattern]:
    project_type = context.project_type
    stack = {project_type.framework, project_type.language}
    patterns: list[GuidancePattern] = []

    if stack & {"react", "next"}:
        patterns.append(
            GuidancePattern(
                id="react-hook-deps",
                pattern=re.compile(r"React Hook \w+ has (?:a )?missing dependenc", _I),
                priority=9,
                guidance="Add the missing values to the hook's dependency array or memoize them",
                category="react-hooks",
            )
        )
    if "typescript" in stack:
        patterns.append(
            GuidancePattern(
                id="typescript-type-error",
                pattern=re.compile(
                    r"Type error|error TS\d{4}|is not assignable to type|Property '?\w*'? does not exist",
                    _I,
                ),
                priority=9,
                guidance="Fix the type at its source instead of casting to any.",
                category="typescript-types",
            )
        )
    if "python" in stack or project_type.framework in ("django", "fastapi", "flask"):
        patterns.append(
            GuidancePattern(
                id="python-import-error",
                pattern=re.compile(r"ModuleNotFoundError: No module named|ImportError: cannot import name"),
                priority=8,
                guidance="Check the virtualenv is active and the module is declared in the project manifest",
                category="python-imports",
            )
        )
    if stack & {"javascript", "typescript", "node", "express"}:
        patterns.append(
            GuidancePattern(
                id="node-module-missing",
                pattern=re.compile(r"Cannot find module '[^']+'|ERR_MODULE_NOT_FOUND"),
                priority=8,
                guidance="Verify the import path and that the package is listed in package.json",
                category="node-modules",
            )
        )
    return patterns


def _git_patterns(context: ProjectContext) -> list[GuidancePattern]:
    git_status = context.git_status
    if git_status is None:
        return []

    patterns: list[GuidancePattern] = []
    if git_status.total_changes > 0:
        patterns.append(
            GuidancePattern(
                id="git-uncommitted-changes",
                pattern=re.compile(r"commit (?:your |the )?changes|uncommitted|unstaged changes", _I),
                priority=7,
                guidance=(
                    f"You have {git_status.total_changes} uncommitted changes; "
                    "commit them in a focused checkpoint before continuing."
                ),
                category="git-workflow",
            )
        )
    if git_status.ahead_count > 0:
        patterns.append(
            GuidancePattern(
                id="git-unpushed-commits",
                pattern=re.compile(r"push (?:your |the )?commits|unpushed|ahead of", _I),
                priority=6,
                guidance=(
                    f"There are {git_status.ahead_count} unpushed commits; "
                    "push once tests pass."
                ),
                category="git-workflow",
            )
        )
    return patterns


def _testing_patterns(context: ProjectContext) -> list[GuidancePattern]:
    patterns: list[GuidancePattern] = []
    if context.has_tests:
        patterns.append(
            GuidancePattern(
                id="test-failure",
                pattern=re.compile(r"tests? failed|failing tests?|\bFAIL\b|AssertionError", _I),
                priority=7,
                guidance="Read the first failing assertion and fix that before rerunning the whole suite.",
                category="testing",
            )
        )

    test_framework = context.project_type.test_framework
    if test_framework in ("jest", "vitest"):
        patterns.append(
            GuidancePattern(
                id=f"{test_framework}-test-guidance",
                pattern=re.compile(rf"\b{test_framework}\b", _I),
                priority=6,
                guidance=f"Run a single file with `npx {test_framework} <path>` to iterate faster.",
                category="testing",
            )
        )
    elif test_framework == "pytest":
        patterns.append(
            GuidancePattern(
                id="pytest-test-guidance",
                pattern=re.compile(r"\bpytest\b|=+ \d+ failed", _I),
                priority=6,
                guidance="Rerun only the failing test with `pytest -x <nodeid>`.",
                category="testing",
            )
        )
    return patterns


def _dependency_patterns() -> list[GuidancePattern]:
    return [
        GuidancePattern(
            id="dependency-installation",
            pattern=re.compile(r"\bnpm (?:install|i)\b|\byarn add\b|\bpnpm add\b|\bpip install\b", _I),
            priority=6,
            guidance="Check whether an existing dependency already covers this before adding a new one.",
            category="dependencies",
        ),
        GuidancePattern(
            id="security-vulnerability",
            pattern=re.compile(r"\d+ (?:\w+ )?(?:severity )?vulnerabilit|npm audit|security advisory", _I),
            priority=9,
            guidance="Review the audit report; upgrade affected packages instead of ignoring the warnings.",
            category="security",
        ),
    ]


class ContextPatterns:
    """Builds the ranked pattern list for a project context."""

    def get_guidance_patterns(self, context: ProjectContext, output: str) -> list[GuidancePattern]:
        """All patterns applicable to ``context``, highest priority first.

        ``output`` only gates output-dependent patterns (safe package installs);
        callers still have to test each pattern against the output.
        """
        patterns = [
            *_confirmation_patterns(context, output),
            *_framework_patterns(context),
            *_git_patterns(context),
            *_testing_patterns(context),
            *_dependency_patterns(),
        ]
        patterns.sort(key=lambda p: p.priority, reverse=True)
        return patterns

    def get_context_summary(self, context: ProjectContext) -> str:
        project_type = context.project_type
        parts = [f"{project_type.framework}/{project_type.language} project ({project_type.build_system})"]
        parts.append("with tests" if context.has_tests else "without tests")
        if context.has_documentation:
            parts.append("documented")

        git_status = context.git_status
        if git_status is None:
            parts.append("non-git")
        else:
            parts.append(
                f"git-managed: {git_status.total_changes} changed files, "
                f"{git_status.ahead_count} ahead, {git_status.behind_count} behind"
            )

        if context.dependencies:
            parts.append("dependencies: " + ", ".join(context.dependencies[:8]))
        return "; ".join(parts)
