"""Pattern detection: catches sessions spinning on the same failure.

Detects:
- Repetition loops (same line printed over and over)
- Repeated identical errors
- Apology/retry churn
- Environment problems (missing commands, permissions)
- Unresolved merge conflicts

Everything here is a pure function of the output text, so the source is
always available and never suspends.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field

from guidepilot.config import AutopilotConfig, PatternConfig
from guidepilot.guidance.base import GuidanceSource
from guidepilot.models import AnalysisContext, GuidanceResult

logger = logging.getLogger(__name__)

MIN_LINE_LENGTH = 8  # Shorter lines (prompts, box borders) repeat legitimately

_ERROR_LINE = re.compile(r"\b(?:error|exception|traceback|failed)\b", re.IGNORECASE)
_CHURN = re.compile(
    r"\bI apologi[sz]e\b|\bsorry,? (?:I|let me)\b|\blet me try (?:again|a different)",
    re.IGNORECASE,
)
_COMMAND_NOT_FOUND = re.compile(
    r"command not found|is not recognized as an internal or external command", re.IGNORECASE
)
_PERMISSION = re.compile(r"Permission denied|\bEACCES\b|\bEPERM\b")
_MERGE_CONFLICT = re.compile(r"^(?:<{7}|>{7}) |CONFLICT \((?:content|modify/delete|add/add)\)", re.MULTILINE)
_DETACHED_HEAD = re.compile(r"You are in 'detached HEAD' state|HEAD detached at")


@dataclass
class PatternMatch:
    """One detection, ranked by confidence."""

    id: str
    category: str
    guidance: str
    confidence: float
    evidence: list[str] = field(default_factory=list)


def _significant_lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if len(line.strip()) >= MIN_LINE_LENGTH]


class PatternLibrary:
    """Deterministic detectors grouped by category."""

    def __init__(self, config: PatternConfig | None = None):
        self.config = config or PatternConfig()

    def detect(self, output: str) -> list[PatternMatch]:
        """Every detection in enabled categories, most confident first."""
        detectors = {
            "repetition": self._repetition,
            "errors": self._repeated_errors,
            "churn": self._churn,
            "environment": self._environment,
            "git": self._git,
        }
        matches: list[PatternMatch] = []
        for category in self.config.categories:
            detector = detectors.get(category)
            if detector is None:
                logger.debug(f"Unknown pattern category: {category}")
                continue
            matches.extend(detector(output))
        matches.sort(key=lambda m: m.confidence, reverse=True)
        return matches

    def _repetition(self, output: str) -> list[PatternMatch]:
        counts = Counter(_significant_lines(output))
        threshold = self.config.repetition_threshold
        repeated = [(line, n) for line, n in counts.most_common() if n >= threshold]
        if not repeated:
            return []
        line, n = repeated[0]
        return [
            PatternMatch(
                id="repetition-loop",
                category="repetition",
                guidance="You are repeating the same step. Stop and try a different approach.",
                confidence=0.9 if n > threshold else 0.85,
                evidence=[f"{n}x {line[:80]}"],
            )
        ]

    def _repeated_errors(self, output: str) -> list[PatternMatch]:
        errors = Counter(line for line in _significant_lines(output) if _ERROR_LINE.search(line))
        repeated = [(line, n) for line, n in errors.most_common() if n >= 2]
        if not repeated:
            return []
        line, n = repeated[0]
        return [
            PatternMatch(
                id="repeated-error",
                category="errors",
                guidance="The same error keeps coming back. Read it carefully and fix the root cause.",
                confidence=0.8,
                evidence=[f"{n}x {line[:80]}"],
            )
        ]

    def _churn(self, output: str) -> list[PatternMatch]:
        hits = _CHURN.findall(output)
        if len(hits) < 2:
            return []
        return [
            PatternMatch(
                id="apology-churn",
                category="churn",
                guidance="Pause and restate the goal before another attempt.",
                confidence=0.75,
                evidence=hits[:3],
            )
        ]

    def _environment(self, output: str) -> list[PatternMatch]:
        matches: list[PatternMatch] = []
        missing = _COMMAND_NOT_FOUND.search(output)
        if missing:
            matches.append(
                PatternMatch(
                    id="command-not-found",
                    category="environment",
                    guidance="That command is not installed here. Check the project's scripts for the right tool.",
                    confidence=0.85,
                    evidence=[missing.group(0)],
                )
            )
        denied = _PERMISSION.search(output)
        if denied:
            matches.append(
                PatternMatch(
                    id="permission-denied",
                    category="environment",
                    guidance="Permission denied. Do not retry with sudo; work inside the project directory.",
                    confidence=0.8,
                    evidence=[denied.group(0)],
                )
            )
        return matches

    def _git(self, output: str) -> list[PatternMatch]:
        matches: list[PatternMatch] = []
        conflict = _MERGE_CONFLICT.search(output)
        if conflict:
            matches.append(
                PatternMatch(
                    id="merge-conflict",
                    category="git",
                    guidance="Resolve the merge conflict markers before making further changes.",
                    confidence=0.95,
                    evidence=[conflict.group(0).strip()],
                )
            )
        if _DETACHED_HEAD.search(output):
            matches.append(
                PatternMatch(
                    id="detached-head",
                    category="git",
                    guidance="HEAD is detached. Create or switch to a branch before committing.",
                    confidence=0.7,
                )
            )
        return matches


class PatternGuidanceSource(GuidanceSource):
    """Fast regex and repetition checks over raw output."""

    id = "pattern-detection"
    priority = 1
    can_short_circuit = True

    def __init__(self, config: AutopilotConfig | None = None):
        self.config = (config or AutopilotConfig()).patterns
        self.library = PatternLibrary(self.config)

    async def analyze(self, context: AnalysisContext) -> GuidanceResult:
        if not self.config.enabled:
            return self.no_guidance("Pattern detection disabled")

        matches = self.library.detect(context.terminal_output)
        if not matches:
            return self.no_guidance("No known patterns detected")

        best = matches[0]
        logger.debug(f"Pattern match: {best.id} ({best.confidence})")
        return GuidanceResult(
            should_intervene=True,
            confidence=best.confidence,
            guidance=best.guidance,
            reasoning=f"Detected {best.category} pattern: {best.id}",
            source=self.id,
            priority=self.priority,
            metadata={
                "pattern_id": best.id,
                "pattern_category": best.category,
                "evidence": best.evidence,
                "matched_patterns": len(matches),
            },
        )

    def update_config(self, config: AutopilotConfig) -> None:
        self.config = config.patterns
        self.library.config = config.patterns
