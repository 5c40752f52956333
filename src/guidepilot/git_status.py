"""Read-only git status probe used by the context builder."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from guidepilot.models import GitStatus

logger = logging.getLogger(__name__)


@dataclass
class GitStatusResult:
    success: bool
    data: GitStatus | None = None
    error: str | None = None


async def _run_git(*args: str, cwd: str | None = None, timeout: int = 10) -> dict:
    """Execute git command and return output."""
    cmd = ["git", *args]
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return {
        "exit_code": proc.returncode,
        "stdout": stdout.decode(errors="replace").strip(),
        "stderr": stderr.decode(errors="replace").strip(),
    }


def parse_porcelain(output: str) -> tuple[int, int]:
    """Count (changed-or-added, deleted) entries in ``git status --porcelain``."""
    added = deleted = 0
    for line in output.splitlines():
        if len(line) < 3:
            continue
        code = line[:2]
        if "D" in code:
            deleted += 1
        else:
            added += 1
    return added, deleted


async def get_git_status(path: str) -> GitStatusResult:
    """Summarize pending changes and upstream divergence. Never raises."""
    try:
        inside = await _run_git("rev-parse", "--is-inside-work-tree", cwd=path)
        if inside["exit_code"] != 0:
            return GitStatusResult(success=False, error="Not a git repository")

        status = await _run_git("status", "--porcelain", cwd=path)
        if status["exit_code"] != 0:
            return GitStatusResult(success=False, error=status["stderr"] or "git status failed")
        files_added, files_deleted = parse_porcelain(status["stdout"])

        ahead = behind = 0
        parent_branch = None
        upstream = await _run_git("rev-parse", "--abbrev-ref", "@{upstream}", cwd=path)
        if upstream["exit_code"] == 0 and upstream["stdout"]:
            parent_branch = upstream["stdout"]
            counts = await _run_git("rev-list", "--left-right", "--count", "HEAD...@{upstream}", cwd=path)
            parts = counts["stdout"].split()
            if counts["exit_code"] == 0 and len(parts) == 2:
                ahead, behind = int(parts[0]), int(parts[1])

        return GitStatusResult(
            success=True,
            data=GitStatus(
                files_added=files_added,
                files_deleted=files_deleted,
                ahead_count=ahead,
                behind_count=behind,
                parent_branch=parent_branch,
            ),
        )
    except (OSError, ValueError, asyncio.TimeoutError) as e:
        logger.debug(f"git status unavailable for {path}: {e}")
        return GitStatusResult(success=False, error=str(e))
