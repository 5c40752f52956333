"""Shared records passed between the monitor, the orchestrator and its sources."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class AutopilotMonitorState:
    """Per-session runtime state, mutated only by the monitor."""

    is_active: bool = False
    guidances_provided: int = 0
    last_guidance_time: datetime | None = None
    analysis_in_progress: bool = False


@dataclass(frozen=True)
class AnalysisContext:
    """One analysis request: recent ANSI-stripped output plus the project it runs in."""

    terminal_output: str
    project_path: str
    session_id: str = ""

    @property
    def worktree_path(self) -> str:
        return self.project_path


@dataclass
class GuidanceResult:
    """One source's verdict. Lower ``priority`` wins ties in the orchestrator."""

    should_intervene: bool
    confidence: float
    reasoning: str
    source: str
    priority: int
    guidance: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_error(self) -> bool:
        return bool(self.metadata.get("error"))


@dataclass
class AutopilotDecision:
    """Verdict shape returned by the LLM client."""

    should_intervene: bool
    confidence: float
    reasoning: str
    guidance: str | None = None
    # LLMErrorCategory value when the call failed; None on success
    error_category: str | None = None


@dataclass
class GitStatus:
    files_added: int = 0
    files_deleted: int = 0
    ahead_count: int = 0
    behind_count: int = 0
    parent_branch: str | None = None

    @property
    def total_changes(self) -> int:
        return self.files_added + self.files_deleted


@dataclass
class ArchitecturalPattern:
    type: str
    confidence: float
    indicators: list[str] = field(default_factory=list)


@dataclass
class ProjectType:
    """Detected framework/language/build system of a project."""

    framework: str = "unknown"
    language: str = "unknown"
    build_system: str = "unknown"
    test_framework: str | None = None
    patterns: list[ArchitecturalPattern] = field(default_factory=list)


@dataclass
class ProjectContext:
    """Cached snapshot of project metadata.

    ``cache_timestamp`` is compared against the builder's TTL before reuse.
    """

    project_type: ProjectType = field(default_factory=ProjectType)
    git_status: GitStatus | None = None
    recent_files: list[str] = field(default_factory=list)
    has_tests: bool = False
    has_documentation: bool = False
    dependencies: list[str] = field(default_factory=list)
    dev_dependencies: list[str] = field(default_factory=list)
    cache_timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def minimal(cls) -> "ProjectContext":
        """Context used when building a real one failed."""
        return cls()

    @property
    def all_dependencies(self) -> list[str]:
        return [*self.dependencies, *self.dev_dependencies]


@dataclass
class GuidancePattern:
    """One matchable rule. ``priority`` runs 1..10, higher is more important."""

    id: str
    pattern: re.Pattern[str]
    priority: int
    guidance: str
    category: str

    def matches(self, output: str) -> bool:
        return self.pattern.search(output) is not None


@dataclass
class CompliancePattern:
    id: str
    pattern: re.Pattern[str]
    severity: str
    message: str
    category: str


@dataclass
class ConfirmationDecision:
    """Auto-confirm verdict for a detected yes/no prompt."""

    should_confirm: bool
    confidence: float
    reasoning: str
    dialog_type: str
    response: str | None = None
