"""Framework-aware guidance from the project context and pattern library."""

from __future__ import annotations

import logging
import re

from guidepilot.config import AutopilotConfig
from guidepilot.confirmation import ConfirmationDialogHandler, mentions_push
from guidepilot.context_builder import ContextBuilder
from guidepilot.context_patterns import CONFIRMATION, ContextPatterns
from guidepilot.guidance.base import GuidanceSource
from guidepilot.models import AnalysisContext, GuidancePattern, GuidanceResult, ProjectContext

logger = logging.getLogger(__name__)

_QUESTION_PROMPTS = (
    re.compile(r"Do you want", re.IGNORECASE),
    re.compile(r"Would you like", re.IGNORECASE),
    re.compile(r"Should I", re.IGNORECASE),
    re.compile(r"Proceed with", re.IGNORECASE),
    re.compile(r"Continue with", re.IGNORECASE),
)
_NUMBERED_MENU = re.compile(r"\d+\.\s+Yes", re.IGNORECASE)  # "1. Yes"

CONFIRMATION_PRIORITY = 1


def extract_prompt_line(output: str) -> str | None:
    """The line holding the pending question, or None when nothing is being asked.

    The last question line wins. A bare numbered menu is used only when no
    question line precedes it.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for line in reversed(lines):
        if any(p.search(line) for p in _QUESTION_PROMPTS):
            return line
    for line in reversed(lines):
        if _NUMBERED_MENU.search(line):
            return line
    return None


def is_confirmation_dialog(output: str) -> bool:
    return extract_prompt_line(output) is not None


def calculate_confidence(pattern: GuidancePattern, total_matches: int) -> float:
    """Confidence for a matched pattern, capped at 0.95."""
    base = min(0.5 + (pattern.priority / 10) * 0.4, 0.9)
    match_boost = min(total_matches * 0.05, 0.1)
    priority_boost = 0.1 if pattern.priority >= 8 else 0.0
    return min(base + match_boost + priority_boost, 0.95)


def enhance_guidance(pattern: GuidancePattern, project_context: ProjectContext) -> str:
    guidance = pattern.guidance
    project_type = project_context.project_type

    if pattern.category == "react-hooks":
        guidance += f" ({project_type.language} project)"
    elif pattern.category == "typescript-types":
        guidance += " Consider using project-specific types or interfaces."
    elif pattern.category == "git-workflow":
        git_status = project_context.git_status
        total_changes = git_status.total_changes if git_status else 0
        if total_changes > 0:
            guidance += f" Current changes: {total_changes} files."
    elif pattern.category == "testing" and project_type.test_framework:
        guidance += f" (Using {project_type.test_framework})"

    return guidance


class ContextAwareGuidanceSource(GuidanceSource):
    """Answers safe confirmation prompts and matches framework-specific patterns."""

    id = "context-aware"
    priority = 5
    can_short_circuit = True

    def __init__(
        self,
        config: AutopilotConfig | None = None,
        context_builder: ContextBuilder | None = None,
        patterns: ContextPatterns | None = None,
        confirmation_handler: ConfirmationDialogHandler | None = None,
    ):
        self.config = (config or AutopilotConfig()).context
        self.context_builder = context_builder or ContextBuilder(self.config)
        self.patterns = patterns or ContextPatterns()
        self.confirmation_handler = confirmation_handler or ConfirmationDialogHandler()

    async def analyze(self, context: AnalysisContext) -> GuidanceResult:
        if not self.config.enabled:
            return self.no_guidance("Context-aware guidance disabled")

        try:
            project_context = await self.context_builder.build_project_context(context.project_path)
            project_type = project_context.project_type
            logger.debug(f"Project context: {project_type.framework}/{project_type.language}")

            output = context.terminal_output
            prompt_line = extract_prompt_line(output)
            if prompt_line is not None:
                confirmation = self._handle_confirmation(prompt_line, project_context)
                if confirmation is not None:
                    return confirmation

            matched = [
                p for p in self.patterns.get_guidance_patterns(project_context, prompt_line or output)
                if self._pattern_applies(p, output, prompt_line)
            ]
            if not matched:
                return self.no_guidance(
                    "No context-specific patterns matched",
                    context_available=True,
                    framework=project_type.framework,
                    language=project_type.language,
                )

            matched.sort(key=lambda p: p.priority, reverse=True)
            best = matched[0]
            logger.debug(f"Matched pattern: {best.id} (priority: {best.priority})")

            return GuidanceResult(
                should_intervene=True,
                confidence=calculate_confidence(best, len(matched)),
                guidance=enhance_guidance(best, project_context),
                reasoning=(
                    f"Framework-specific guidance for {project_type.framework} project: "
                    f"{best.category}"
                ),
                source=self.id,
                priority=self.priority,
                metadata={
                    "framework": project_type.framework,
                    "language": project_type.language,
                    "pattern_id": best.id,
                    "pattern_category": best.category,
                    "matched_patterns": len(matched),
                },
            )
        except Exception as e:
            logger.warning(f"Context analysis failed: {e}")
            return self.error_result(f"Context analysis failed: {e}")

    @staticmethod
    def _pattern_applies(pattern: GuidancePattern, output: str, prompt_line: str | None) -> bool:
        if pattern.category != CONFIRMATION:
            return pattern.matches(output)
        # "1" answers the pending question only, and never a push
        if prompt_line is None or mentions_push(prompt_line):
            return False
        return pattern.matches(prompt_line)

    def _handle_confirmation(
        self, prompt_line: str, project_context: ProjectContext
    ) -> GuidanceResult | None:
        decision = self.confirmation_handler.should_auto_confirm(prompt_line, project_context)
        threshold = self.confirmation_handler.get_confidence_threshold()
        if not (decision.should_confirm and decision.confidence >= threshold):
            logger.debug(
                f"Confirmation dialog left to the user: confidence {decision.confidence} < {threshold}"
            )
            return None

        return GuidanceResult(
            should_intervene=True,
            confidence=decision.confidence,
            guidance=decision.response or "1",
            reasoning=f"Auto-confirmed {decision.dialog_type}: {decision.reasoning}",
            source=self.id,
            priority=CONFIRMATION_PRIORITY,
            metadata={
                "dialog_type": decision.dialog_type,
                "auto_confirmed": True,
                "original_reasoning": decision.reasoning,
            },
        )

    def update_config(self, config: AutopilotConfig) -> None:
        self.config = config.context
        self.context_builder.update_config(config.context)

    def get_debug_info(self) -> dict:
        return {
            "config": self.config,
            "context_builder": self.context_builder.get_debug_info(),
        }
