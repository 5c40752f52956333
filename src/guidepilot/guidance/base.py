"""Common contract for guidance sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from guidepilot.config import AutopilotConfig
from guidepilot.models import AnalysisContext, GuidanceResult


class GuidanceSource(ABC):
    """One independent analyzer run by the orchestrator.

    Lower ``priority`` runs first and wins ties. A source with
    ``can_short_circuit`` set stops the cycle when it intervenes with
    confidence >= 0.9.
    """

    id: str = ""
    priority: int = 50
    can_short_circuit: bool = False

    @abstractmethod
    async def analyze(self, context: AnalysisContext) -> GuidanceResult:
        """Analyze one cycle's output."""

    def update_config(self, config: AutopilotConfig) -> None:
        pass

    def is_available(self) -> bool:
        return True

    def no_guidance(self, reasoning: str, **metadata) -> GuidanceResult:
        return GuidanceResult(
            should_intervene=False,
            confidence=0.0,
            reasoning=reasoning,
            source=self.id,
            priority=self.priority,
            metadata=metadata,
        )

    def error_result(self, reasoning: str, **metadata) -> GuidanceResult:
        return self.no_guidance(reasoning, error=True, **metadata)
