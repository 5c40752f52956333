"""LLM-backed fallback source using the user's guide prompt."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from guidepilot.config import AutopilotConfig
from guidepilot.guidance.base import GuidanceSource
from guidepilot.llm_client import LLMClient
from guidepilot.models import AnalysisContext, GuidanceResult

logger = logging.getLogger(__name__)


class GuidePromptGuidanceSource(GuidanceSource):
    """General analysis by the configured model. Runs last and never short-circuits."""

    id = "guide-prompt"
    priority = 100
    can_short_circuit = False

    def __init__(self, config: AutopilotConfig | None = None, llm_client: LLMClient | None = None):
        self.llm_client = llm_client or LLMClient(config or AutopilotConfig())

    async def analyze(self, context: AnalysisContext) -> GuidanceResult:
        start = time.monotonic()
        try:
            decision = await self.llm_client.analyze_claude_output(
                context.terminal_output, context.project_path
            )
        except Exception as e:
            logger.error(f"Guide prompt analysis failed: {e}")
            return self.error_result(f"LLM analysis failed: {e}", error_message=str(e))

        duration_ms = (time.monotonic() - start) * 1000
        logger.debug(
            f"Guide prompt analysis completed in {duration_ms:.1f}ms "
            f"(intervene={decision.should_intervene}, confidence={decision.confidence})"
        )

        metadata = {
            "llm_provider": self.llm_client.get_current_provider_name(),
            "analysis_timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if decision.error_category is not None:
            metadata["error"] = True
            metadata["error_category"] = decision.error_category

        return GuidanceResult(
            should_intervene=decision.should_intervene,
            confidence=decision.confidence,
            guidance=decision.guidance,
            reasoning=decision.reasoning,
            source=self.id,
            priority=self.priority,
            metadata=metadata,
        )

    def update_config(self, config: AutopilotConfig) -> None:
        self.llm_client.update_config(config)

    def is_available(self) -> bool:
        return self.llm_client.is_available()

    def get_current_provider_name(self) -> str:
        return self.llm_client.get_current_provider_name()
