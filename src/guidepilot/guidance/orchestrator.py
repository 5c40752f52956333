"""Runs guidance sources in priority order and composes one result.

Sources run sequentially, lowest priority number first. A source that
declares ``can_short_circuit`` and intervenes with confidence >= 0.9 ends
the cycle early, so the LLM fallback is only called when cheaper sources
have nothing confident to say.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable

from guidepilot.config import AutopilotConfig
from guidepilot.guidance.base import GuidanceSource
from guidepilot.guidance.context_source import ContextAwareGuidanceSource
from guidepilot.guidance.guide_prompt_source import GuidePromptGuidanceSource
from guidepilot.guidance.pattern_source import PatternGuidanceSource
from guidepilot.llm_client import LLMClient
from guidepilot.models import AnalysisContext, GuidanceResult

logger = logging.getLogger(__name__)

SHORT_CIRCUIT_CONFIDENCE = 0.9
NO_GUIDANCE_SOURCE = "orchestrator"
NO_GUIDANCE_PRIORITY = 999


def default_sources(config: AutopilotConfig, llm_client: LLMClient | None = None) -> list[GuidanceSource]:
    return [
        PatternGuidanceSource(config),
        ContextAwareGuidanceSource(config),
        GuidePromptGuidanceSource(config, llm_client=llm_client),
    ]


def no_guidance_result(reasoning: str) -> GuidanceResult:
    return GuidanceResult(
        should_intervene=False,
        confidence=0.0,
        reasoning=reasoning,
        source=NO_GUIDANCE_SOURCE,
        priority=NO_GUIDANCE_PRIORITY,
        metadata={"no_guidance_reason": reasoning},
    )


def compose_response(results: list[GuidanceResult], primary: GuidanceResult) -> GuidanceResult:
    """Winning result plus attribution and a per-source summary."""
    analyzed = sum(1 for r in results if not r.has_error)
    return GuidanceResult(
        should_intervene=primary.should_intervene,
        confidence=primary.confidence,
        guidance=primary.guidance,
        reasoning=f"{primary.reasoning} [Source: {primary.source}, analyzed by {analyzed} sources]",
        source=primary.source,
        priority=primary.priority,
        metadata={
            **primary.metadata,
            "analysis_context": {
                "total_sources": len(results),
                "sources_analyzed": analyzed,
                "source_results": [
                    {
                        "source": r.source,
                        "should_intervene": r.should_intervene,
                        "confidence": r.confidence,
                        "has_error": r.has_error,
                    }
                    for r in results
                ],
            },
        },
    )


class GuidanceOrchestrator:
    """Registry of guidance sources, unique by id.

    With ``sources`` omitted the three built-in sources are registered;
    pass an explicit list (possibly empty) to control the set.
    """

    def __init__(
        self,
        config: AutopilotConfig | None = None,
        sources: Iterable[GuidanceSource] | None = None,
        llm_client: LLMClient | None = None,
    ):
        self.config = config or AutopilotConfig()
        self._sources: dict[str, GuidanceSource] = {}
        if sources is None:
            sources = default_sources(self.config, llm_client)
        for source in sources:
            self.add_source(source)

    def add_source(self, source: GuidanceSource) -> None:
        if source.id in self._sources:
            raise ValueError(f"Guidance source with ID '{source.id}' already exists")
        logger.info(f"Adding guidance source: {source.id} (priority: {source.priority})")
        self._sources[source.id] = source

    def remove_source(self, source_id: str) -> bool:
        removed = self._sources.pop(source_id, None) is not None
        if removed:
            logger.info(f"Removed guidance source: {source_id}")
        return removed

    def get_source_ids(self) -> list[str]:
        return list(self._sources)

    async def generate_guidance(self, context: AnalysisContext) -> GuidanceResult:
        if not self._sources:
            logger.warning("No guidance sources available")
            return no_guidance_result("No guidance sources available")

        # sorted() is stable: equal priorities keep registration order
        ordered = sorted(self._sources.values(), key=lambda s: s.priority)
        results: list[GuidanceResult] = []

        for source in ordered:
            start = time.monotonic()
            try:
                result = await source.analyze(context)
            except Exception as e:
                logger.error(f"Guidance source {source.id} failed: {e}")
                results.append(
                    GuidanceResult(
                        should_intervene=False,
                        confidence=0.0,
                        reasoning=f"Analysis failed: {e}",
                        source=source.id,
                        priority=source.priority,
                        metadata={"error": True},
                    )
                )
                continue

            logger.debug(
                f"Source {source.id} completed in {(time.monotonic() - start) * 1000:.1f}ms: "
                f"should_intervene={result.should_intervene}, confidence={result.confidence}"
            )
            results.append(result)

            if (
                result.should_intervene
                and result.confidence >= SHORT_CIRCUIT_CONFIDENCE
                and source.can_short_circuit
            ):
                logger.info(f"Short-circuiting on {source.id} (confidence: {result.confidence})")
                return compose_response(results, result)

        return self._compose_final(results)

    def _compose_final(self, results: list[GuidanceResult]) -> GuidanceResult:
        valid = [r for r in results if not r.has_error]
        if not valid:
            return no_guidance_result("All guidance sources failed")

        interventions = [r for r in valid if r.should_intervene]
        if not interventions:
            return no_guidance_result("No intervention recommended")

        chosen = interventions[0]
        for candidate in interventions[1:]:
            if candidate.priority < chosen.priority:
                chosen = candidate

        logger.info(f"Selected guidance from {chosen.source} (priority: {chosen.priority})")
        return compose_response(valid, chosen)

    def update_config(self, config: AutopilotConfig) -> None:
        self.config = config
        for source in self._sources.values():
            source.update_config(config)

    def is_available(self) -> bool:
        return any(source.is_available() for source in self._sources.values())

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "source_count": len(self._sources),
            "sources": [
                {
                    "id": s.id,
                    "priority": s.priority,
                    "can_short_circuit": s.can_short_circuit,
                    "available": s.is_available(),
                }
                for s in sorted(self._sources.values(), key=lambda s: s.priority)
            ],
        }
