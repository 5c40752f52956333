"""Project context builder with a time-based cache.

A context is rebuilt at most once per ``cache_interval_minutes`` per
absolute project path. Cache entries are checked and replaced under a
per-path ``asyncio.Lock`` so concurrent sessions on the same project never
observe a half-built entry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable

from guidepilot.config import ContextAwareConfig
from guidepilot.git_status import GitStatusResult, get_git_status
from guidepilot.models import CompliancePattern, ProjectContext, ProjectType
from guidepilot.project_detector import ProjectTypeDetector, python_requirement_names

logger = logging.getLogger(__name__)

RECENT_FILES_LIMIT = 2

TEST_DIR_NAMES = {"test", "tests", "__tests__", "spec", "specs", "e2e"}
TEST_FILE_MARKERS = (".test.", ".spec.", "_test.")
DOC_NAMES = {"docs", "doc", "documentation"}

# Directories to ignore
IGNORED_DIRS = {
    ".git", "node_modules", "__pycache__", ".venv", "venv",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    "dist", "build", ".build", "target", ".next", ".nuxt", "coverage",
}

GitStatusProvider = Callable[[str], Awaitable[GitStatusResult]]


def _is_test_entry(entry: os.DirEntry) -> bool:
    name = entry.name.lower()
    if entry.is_dir():
        return name in TEST_DIR_NAMES
    return name.startswith("test_") or any(marker in name for marker in TEST_FILE_MARKERS)


def _is_doc_entry(entry: os.DirEntry) -> bool:
    name = entry.name.lower()
    if entry.is_dir():
        return name in DOC_NAMES
    return name.startswith("readme") or name.endswith(".md")


def scan_project_files(project_path: str) -> dict[str, Any]:
    """Top-level test/doc presence plus the most recently modified files.

    Recent files are searched at the root and one level into each
    non-ignored subdirectory, newest first.
    """
    has_tests = False
    has_docs = False
    candidates: list[tuple[float, str]] = []

    with os.scandir(project_path) as entries:
        top_level = list(entries)

    for entry in top_level:
        has_tests = has_tests or _is_test_entry(entry)
        has_docs = has_docs or _is_doc_entry(entry)
        if entry.is_file():
            candidates.append((entry.stat().st_mtime, entry.name))
        elif entry.is_dir() and entry.name not in IGNORED_DIRS and not entry.name.startswith("."):
            try:
                with os.scandir(entry.path) as children:
                    for child in children:
                        if child.is_file():
                            candidates.append((child.stat().st_mtime, f"{entry.name}/{child.name}"))
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {entry.path}: {e}")

    candidates.sort(key=lambda item: item[0], reverse=True)
    return {
        "has_tests": has_tests,
        "has_documentation": has_docs,
        "recent_files": [name for _, name in candidates[:RECENT_FILES_LIMIT]],
    }


def read_dependencies(project_path: str) -> tuple[list[str], list[str]]:
    """(dependencies, dev_dependencies) from package.json, else Python manifests."""
    project = Path(project_path)
    package_json = project / "package.json"
    if package_json.is_file():
        try:
            manifest = json.loads(package_json.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Unreadable package.json in {project_path}: {e}")
            return [], []
        return (
            list(manifest.get("dependencies", {}) or {}),
            list(manifest.get("devDependencies", {}) or {}),
        )
    return python_requirement_names(project), []


class ContextBuilder:
    """Builds and caches ``ProjectContext`` snapshots keyed by absolute path."""

    def __init__(
        self,
        config: ContextAwareConfig | None = None,
        detector: ProjectTypeDetector | None = None,
        git_status: GitStatusProvider | None = None,
    ):
        self.config = config or ContextAwareConfig()
        self.detector = detector or ProjectTypeDetector()
        self._git_status = git_status or get_git_status
        self._cache: dict[str, ProjectContext] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def cache(self) -> dict[str, ProjectContext]:
        return self._cache

    def _is_fresh(self, context: ProjectContext) -> bool:
        ttl = timedelta(minutes=self.config.cache_interval_minutes)
        return datetime.now() - context.cache_timestamp < ttl

    async def build_project_context(self, project_path: str) -> ProjectContext:
        """Return the cached context for ``project_path`` or build a new one."""
        key = os.path.abspath(project_path)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(key)
            if cached is not None and self._is_fresh(cached):
                return cached

            try:
                context = await self._build(key)
            except Exception as e:
                logger.warning(f"Context build failed for {key}, using minimal context: {e}")
                return ProjectContext.minimal()

            self._cache[key] = context
            return context

    async def _build(self, key: str) -> ProjectContext:
        if self.config.enable_framework_detection:
            project_type = await self.detector.detect_project_type(key)
        else:
            project_type = ProjectType()

        git_status = None
        if self.config.enable_git_integration:
            try:
                result = await self._git_status(key)
                if result.success:
                    git_status = result.data
                else:
                    logger.debug(f"Git status unavailable for {key}: {result.error}")
            except Exception as e:
                logger.debug(f"Git status failed for {key}: {e}")

        files = await asyncio.to_thread(scan_project_files, key)
        dependencies, dev_dependencies = await asyncio.to_thread(read_dependencies, key)

        logger.debug(f"Built context for {key}: {project_type.framework}/{project_type.language}")
        return ProjectContext(
            project_type=project_type,
            git_status=git_status,
            recent_files=files["recent_files"],
            has_tests=files["has_tests"],
            has_documentation=files["has_documentation"],
            dependencies=dependencies,
            dev_dependencies=dev_dependencies,
            cache_timestamp=datetime.now(),
        )

    async def get_compliance_patterns(self, project_path: str) -> list[CompliancePattern]:
        context = await self.build_project_context(project_path)
        return await self.detector.get_compliance_patterns(context.project_type)

    def update_config(self, config: ContextAwareConfig) -> None:
        self.config = config

    def clear_cache(self) -> None:
        self._cache.clear()
        # Locks held by an in-flight build survive until that build finishes
        self._locks = {key: lock for key, lock in self._locks.items() if lock.locked()}

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "cache_size": len(self._cache),
            "config": self.config,
            "cache_keys": [os.path.basename(key) for key in self._cache],
        }
