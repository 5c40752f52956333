"""Shared test fixtures for the guidepilot test suite."""

import json
from dataclasses import dataclass, field

import pytest

from guidepilot.config import AutopilotConfig
from guidepilot.models import AutopilotMonitorState, GitStatus, ProjectContext, ProjectType


@dataclass
class FakeSession:
    """In-memory stand-in for a terminal session."""

    id: str = "session-1"
    worktree_path: str = "/tmp/project"
    output: list[str] = field(default_factory=list)
    is_active: bool = True
    autopilot_state: AutopilotMonitorState | None = None
    written: list[str] = field(default_factory=list)

    def write(self, data: str) -> None:
        self.written.append(data)


@pytest.fixture
def session(tmp_path):
    """Active session with some output, already marked active for the monitor."""
    return FakeSession(
        worktree_path=str(tmp_path),
        output=["$ npm test", "Running tests..."],
        autopilot_state=AutopilotMonitorState(is_active=True),
    )


@pytest.fixture
def config():
    """Config with a key for the default provider and no env leakage."""
    return AutopilotConfig(api_keys={"openai": "sk-test-openai"})


@pytest.fixture
def react_project(tmp_path):
    """React + TypeScript project on disk with tests and docs."""
    project = tmp_path / "react_app"
    project.mkdir()
    (project / "package.json").write_text(json.dumps({
        "name": "react-app",
        "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
        "devDependencies": {"typescript": "^5.0.0", "jest": "^29.0.0"},
    }))
    (project / "tsconfig.json").write_text("{}")
    (project / "src").mkdir()
    (project / "src" / "App.tsx").write_text("export const App = () => null;\n")
    (project / "__tests__").mkdir()
    (project / "__tests__" / "App.test.tsx").write_text("test('renders', () => {});\n")
    (project / "README.md").write_text("# React app\n")
    return str(project)


@pytest.fixture
def python_project(tmp_path):
    """Flask project with pytest tests."""
    project = tmp_path / "py_app"
    project.mkdir()
    (project / "requirements.txt").write_text("flask>=3.0\npytest==8.0\n# comment\n")
    (project / "app.py").write_text("app = None\n")
    (project / "tests").mkdir()
    (project / "tests" / "test_app.py").write_text("def test_app():\n    pass\n")
    return str(project)


@pytest.fixture
def react_context():
    """Prebuilt React/TypeScript context with pending git changes."""
    return ProjectContext(
        project_type=ProjectType(
            framework="react",
            language="typescript",
            build_system="npm",
            test_framework="jest",
        ),
        git_status=GitStatus(files_added=2, files_deleted=1, ahead_count=1, behind_count=0),
        recent_files=["src/App.tsx"],
        has_tests=True,
        has_documentation=True,
        dependencies=["react", "react-dom"],
        dev_dependencies=["typescript", "jest"],
    )


@pytest.fixture
def make_session(tmp_path):
    """Factory for extra sessions rooted in the temp project."""
    def _make(**kwargs):
        kwargs.setdefault("worktree_path", str(tmp_path))
        return FakeSession(**kwargs)
    return _make
