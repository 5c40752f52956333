"""Heuristic classifier for yes/no confirmation prompts.

Families are checked in order, first match wins:
1. Test execution
2. File creation
3. Package installation
4. Build/dev scripts
5. Git operations

A git push anywhere in the prompt is checked before all of them and is
never confirmed. Anything else is ``unknown`` with confidence 0: manual
confirmation.
"""

import logging
import re

from guidepilot.models import ConfirmationDecision, ProjectContext, ProjectType

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7
YES_RESPONSE = "1"  # Option 1 is "Yes" in the assistant's numbered menus

_TEST_DIALOG = re.compile(r"run.*test|npm test|yarn test|pytest|test.*script")
_FILE_DIALOG = re.compile(r"create.*file|create.*\.(ts|js|tsx|jsx|py|go|rs)\b|want.*create")
_PACKAGE_DIALOG = re.compile(
    r"install.*package|npm install|yarn add|pip install|add.*dependency|install\s+[\w\-@/.]+"
)
_BUILD_DIALOG = re.compile(
    r"run.*build|npm run|yarn run|build.*script|start.*script|start.*dev|start.*server"
)
_GIT_DIALOG = re.compile(r"git.*commit|git.*add|git.*push|commit.*changes")
_PUSH = re.compile(r"\bgit\b.*\bpush\b|\bpush\b.*\b(?:origin|remote|upstream)\b|force[- ]push")

_FILE_EXTENSION = re.compile(r"\.(\w+)")
_PACKAGE_NAME = re.compile(r"(?:install|add)\s+(?:the\s+)?([\w\-@/.]+)")
_USEFUL_FILE_NAME = re.compile(
    r"service|util|helper|config|constant|type|interface|component|hook|debug|logger",
    re.IGNORECASE,
)

COMPATIBLE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "typescript": ("ts", "tsx", "js", "jsx"),
    "javascript": ("js", "jsx", "ts", "tsx"),
    "react": ("tsx", "jsx", "ts", "js"),
    "next": ("tsx", "jsx", "ts", "js"),
    "vue": ("vue", "ts", "js"),
    "python": ("py", "pyi"),
    "django": ("py", "pyi", "html"),
    "fastapi": ("py", "pyi"),
    "go": ("go",),
    "rust": ("rs",),
}

SAFE_PACKAGES: dict[str, tuple[str, ...]] = {
    "react": ("react-router", "react-dom", "styled-components", "axios", "lodash"),
    "typescript": ("@types/", "ts-node", "typescript", "eslint", "prettier"),
    "next": ("next", "react", "react-dom", "@next/", "styled-components"),
    "express": ("express", "cors", "helmet", "morgan", "body-parser"),
    "node": ("axios", "lodash", "moment", "uuid", "dotenv", "cors", "express"),
    "python": ("requests", "httpx", "pydantic", "python-dotenv", "types-"),
    "django": ("django", "djangorestframework", "django-environ"),
    "fastapi": ("fastapi", "uvicorn", "pydantic", "httpx"),
}

# Lint/test tooling is safe everywhere
CROSS_CUTTING_SAFE_PACKAGES = ("eslint", "prettier", "jest", "vitest", "pytest", "ruff", "mypy")


def is_file_type_compatible(file_type: str | None, project_type: ProjectType) -> bool:
    if not file_type:
        return False
    compatible = (
        *COMPATIBLE_EXTENSIONS.get(project_type.framework, ()),
        *COMPATIBLE_EXTENSIONS.get(project_type.language, ()),
    )
    return file_type.lower() in compatible


def mentions_push(text: str) -> bool:
    return bool(_PUSH.search(text.lower()))


def is_known_safe_package(package_name: str, project_type: ProjectType) -> bool:
    known_safe = (
        *SAFE_PACKAGES.get(project_type.framework, ()),
        *SAFE_PACKAGES.get(project_type.language, ()),
        *CROSS_CUTTING_SAFE_PACKAGES,
    )
    name = package_name.lower()
    if "@" in name[1:]:
        name = name[: name.index("@", 1)]  # drop a version pin like eslint@8
    return any(
        name.startswith(safe) if safe.endswith(("/", "-")) else name == safe
        for safe in known_safe
    )


class ConfirmationDialogHandler:
    """Decides whether a detected confirmation prompt can be answered automatically."""

    def should_auto_confirm(
        self, dialog_text: str, project_context: ProjectContext
    ) -> ConfirmationDecision:
        decision = self._classify(dialog_text.lower().strip(), project_context)
        logger.info(
            f"Confirmation dialog {decision.dialog_type}: "
            f"{'YES' if decision.should_confirm else 'NO'} (confidence: {decision.confidence})"
        )
        return decision

    def get_confidence_threshold(self) -> float:
        return CONFIDENCE_THRESHOLD

    def _classify(self, text: str, context: ProjectContext) -> ConfirmationDecision:
        # A push anywhere in the prompt outranks every other family
        if _PUSH.search(text):
            return self._git_operation(text, context)
        if _TEST_DIALOG.search(text):
            return self._test_execution(context)
        if _FILE_DIALOG.search(text):
            return self._file_creation(text, context)
        if _PACKAGE_DIALOG.search(text):
            return self._package_install(text, context)
        if _BUILD_DIALOG.search(text):
            return self._build_script(text)
        if _GIT_DIALOG.search(text):
            return self._git_operation(text, context)

        return ConfirmationDecision(
            should_confirm=False,
            confidence=0.0,
            reasoning="Unknown dialog type - manual confirmation required for safety",
            dialog_type="unknown",
        )

    def _test_execution(self, context: ProjectContext) -> ConfirmationDecision:
        if context.has_tests:
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.9,
                reasoning="Project has tests - running them verifies the change",
                dialog_type="test-execution",
                response=YES_RESPONSE,
            )
        return ConfirmationDecision(
            should_confirm=True,
            confidence=0.7,
            reasoning="Test execution is generally safe and provides feedback",
            dialog_type="test-execution",
            response=YES_RESPONSE,
        )

    def _file_creation(self, text: str, context: ProjectContext) -> ConfirmationDecision:
        match = _FILE_EXTENSION.search(text)
        file_type = match.group(1) if match else None
        project_type = context.project_type

        if is_file_type_compatible(file_type, project_type) and _USEFUL_FILE_NAME.search(text):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.85,
                reasoning=(
                    f"Creating {file_type} file aligns with "
                    f"{project_type.framework}/{project_type.language} project"
                ),
                dialog_type="file-creation",
                response=YES_RESPONSE,
            )

        if re.search(r"service|util|helper|config|debug", text):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.8,
                reasoning="Service/utility files are generally beneficial for project organization",
                dialog_type="file-creation",
                response=YES_RESPONSE,
            )

        return ConfirmationDecision(
            should_confirm=False,
            confidence=0.6,
            reasoning="File creation requires manual review to ensure it fits project structure",
            dialog_type="file-creation",
        )

    def _package_install(self, text: str, context: ProjectContext) -> ConfirmationDecision:
        match = _PACKAGE_NAME.search(text)
        package_name = match.group(1).rstrip("?.!,") if match else None

        if package_name and is_known_safe_package(package_name, context.project_type):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.8,
                reasoning=(
                    f'Package "{package_name}" is commonly used in '
                    f"{context.project_type.framework} projects"
                ),
                dialog_type="package-install",
                response=YES_RESPONSE,
            )

        return ConfirmationDecision(
            should_confirm=False,
            confidence=0.5,
            reasoning="Package installation requires manual review for security and compatibility",
            dialog_type="package-install",
        )

    def _build_script(self, text: str) -> ConfirmationDecision:
        if re.search(r"build|compile|bundle", text):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.85,
                reasoning="Build operations are safe and help verify code correctness",
                dialog_type="build-script",
                response=YES_RESPONSE,
            )
        if re.search(r"dev|watch", text):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.8,
                reasoning="Development scripts are typically safe for local development",
                dialog_type="build-script",
                response=YES_RESPONSE,
            )
        return ConfirmationDecision(
            should_confirm=False,
            confidence=0.6,
            reasoning="Custom scripts require manual review for safety",
            dialog_type="build-script",
        )

    def _git_operation(self, text: str, context: ProjectContext) -> ConfirmationDecision:
        # Push is checked first: it is never auto-confirmed, whatever else the prompt says
        if re.search(r"push", text):
            return ConfirmationDecision(
                should_confirm=False,
                confidence=0.4,
                reasoning="Push operations should be manually reviewed before execution",
                dialog_type="git-operation",
            )

        if re.search(r"git.*add|stage.*file", text):
            return ConfirmationDecision(
                should_confirm=True,
                confidence=0.9,
                reasoning="Staging files is a safe operation that can be easily undone",
                dialog_type="git-operation",
                response=YES_RESPONSE,
            )

        if "commit" in text:
            git_status = context.git_status
            if git_status is not None and git_status.total_changes > 0:
                return ConfirmationDecision(
                    should_confirm=True,
                    confidence=0.75,
                    reasoning="Committing pending changes preserves progress",
                    dialog_type="git-operation",
                    response=YES_RESPONSE,
                )

        return ConfirmationDecision(
            should_confirm=False,
            confidence=0.5,
            reasoning="Git operations require careful manual review",
            dialog_type="git-operation",
        )
