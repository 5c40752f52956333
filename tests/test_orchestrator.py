"""Tests for guidepilot.guidance.orchestrator: ordering, short-circuit, isolation."""

import pytest

from guidepilot.config import AutopilotConfig
from guidepilot.guidance import GuidanceOrchestrator, GuidanceSource
from guidepilot.models import AnalysisContext, GuidanceResult


class StubSource(GuidanceSource):
    """Returns a fixed verdict and records calls."""

    def __init__(
        self,
        source_id,
        priority,
        should_intervene=False,
        confidence=0.5,
        can_short_circuit=False,
        error=None,
        available=True,
    ):
        self.id = source_id
        self.priority = priority
        self.can_short_circuit = can_short_circuit
        self._verdict = (should_intervene, confidence)
        self._error = error
        self._available = available
        self.calls = 0
        self.configs = []

    async def analyze(self, context):
        self.calls += 1
        if self._error:
            raise self._error
        should_intervene, confidence = self._verdict
        return GuidanceResult(
            should_intervene=should_intervene,
            confidence=confidence,
            guidance=f"from {self.id}" if should_intervene else None,
            reasoning=f"{self.id} says so",
            source=self.id,
            priority=self.priority,
        )

    def update_config(self, config):
        self.configs.append(config)

    def is_available(self):
        return self._available


CONTEXT = AnalysisContext(terminal_output="output", project_path="/tmp/project")


class TestRegistry:
    def test_default_sources(self):
        orchestrator = GuidanceOrchestrator(AutopilotConfig())
        assert orchestrator.get_source_ids() == ["pattern-detection", "context-aware", "guide-prompt"]

    def test_duplicate_id_rejected(self):
        orchestrator = GuidanceOrchestrator(sources=[StubSource("a", 1)])
        with pytest.raises(ValueError):
            orchestrator.add_source(StubSource("a", 2))

    def test_remove_source(self):
        orchestrator = GuidanceOrchestrator(sources=[StubSource("a", 1)])
        assert orchestrator.remove_source("a") is True
        assert orchestrator.remove_source("a") is False
        assert orchestrator.get_source_ids() == []

    def test_update_config_fans_out(self):
        a, b = StubSource("a", 1), StubSource("b", 2)
        orchestrator = GuidanceOrchestrator(sources=[a, b])
        config = AutopilotConfig(max_guidances_per_hour=5)
        orchestrator.update_config(config)
        assert a.configs == [config]
        assert b.configs == [config]

    def test_available_if_any_source_is(self):
        orchestrator = GuidanceOrchestrator(
            sources=[StubSource("a", 1, available=False), StubSource("b", 2)]
        )
        assert orchestrator.is_available() is True
        orchestrator.remove_source("b")
        assert orchestrator.is_available() is False


class TestGenerateGuidance:
    @pytest.mark.asyncio
    async def test_no_sources(self):
        result = await GuidanceOrchestrator(sources=[]).generate_guidance(CONTEXT)
        assert result.should_intervene is False
        assert result.source == "orchestrator"
        assert result.priority == 999
        assert result.metadata["no_guidance_reason"] == "No guidance sources available"

    @pytest.mark.asyncio
    async def test_lowest_priority_number_wins(self):
        orchestrator = GuidanceOrchestrator(sources=[
            StubSource("ten", 10, should_intervene=True, confidence=0.8),
            StubSource("five", 5, should_intervene=True, confidence=0.6),
        ])
        result = await orchestrator.generate_guidance(CONTEXT)
        assert result.source == "five"
        assert result.guidance == "from five"
        assert result.reasoning == "five says so [Source: five, analyzed by 2 sources]"

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_first_registered(self):
        orchestrator = GuidanceOrchestrator(sources=[
            StubSource("first", 5, should_intervene=True),
            StubSource("second", 5, should_intervene=True),
        ])
        result = await orchestrator.generate_guidance(CONTEXT)
        assert result.source == "first"

    @pytest.mark.asyncio
    async def test_short_circuit_skips_later_sources(self):
        fast = StubSource("fast", 1, should_intervene=True, confidence=0.95, can_short_circuit=True)
        slow = StubSource("slow", 100, should_intervene=True, confidence=0.99)
        result = await GuidanceOrchestrator(sources=[slow, fast]).generate_guidance(CONTEXT)
        assert result.source == "fast"
        assert slow.calls == 0
        assert result.metadata["analysis_context"]["total_sources"] == 1

    @pytest.mark.asyncio
    async def test_no_short_circuit_below_threshold(self):
        fast = StubSource("fast", 1, should_intervene=True, confidence=0.85, can_short_circuit=True)
        slow = StubSource("slow", 100)
        result = await GuidanceOrchestrator(sources=[fast, slow]).generate_guidance(CONTEXT)
        assert slow.calls == 1
        assert result.source == "fast"

    @pytest.mark.asyncio
    async def test_no_short_circuit_when_not_allowed(self):
        fast = StubSource("fast", 1, should_intervene=True, confidence=0.99)
        slow = StubSource("slow", 100)
        await GuidanceOrchestrator(sources=[fast, slow]).generate_guidance(CONTEXT)
        assert slow.calls == 1

    @pytest.mark.asyncio
    async def test_failing_source_is_isolated(self):
        broken = StubSource("broken", 1, error=RuntimeError("kaboom"))
        healthy = StubSource("healthy", 50, should_intervene=True, confidence=0.7)
        result = await GuidanceOrchestrator(sources=[broken, healthy]).generate_guidance(CONTEXT)

        assert healthy.calls == 1
        assert result.source == "healthy"
        summary = result.metadata["analysis_context"]
        assert summary["sources_analyzed"] == 1
        assert [r["source"] for r in summary["source_results"]] == ["healthy"]

    @pytest.mark.asyncio
    async def test_all_sources_failing(self):
        orchestrator = GuidanceOrchestrator(sources=[StubSource("broken", 1, error=ValueError("x"))])
        result = await orchestrator.generate_guidance(CONTEXT)
        assert result.should_intervene is False
        assert result.reasoning == "All guidance sources failed"

    @pytest.mark.asyncio
    async def test_no_intervention(self):
        orchestrator = GuidanceOrchestrator(sources=[StubSource("a", 1), StubSource("b", 2)])
        result = await orchestrator.generate_guidance(CONTEXT)
        assert result.should_intervene is False
        assert result.metadata["no_guidance_reason"] == "No intervention recommended"

    @pytest.mark.asyncio
    async def test_error_tagged_results_are_not_selected(self):
        class ErrorTagged(StubSource):
            async def analyze(self, context):
                result = await super().analyze(context)
                result.metadata["error"] = True
                return result

        orchestrator = GuidanceOrchestrator(sources=[
            ErrorTagged("tagged", 1, should_intervene=True),
            StubSource("ok", 2, should_intervene=True),
        ])
        result = await orchestrator.generate_guidance(CONTEXT)
        assert result.source == "ok"

    @pytest.mark.asyncio
    async def test_end_to_end_pattern_short_circuit(self):
        orchestrator = GuidanceOrchestrator(AutopilotConfig())
        guide = orchestrator._sources["guide-prompt"]
        context = AnalysisContext(
            terminal_output="CONFLICT (content): Merge conflict in app.py", project_path="/nonexistent"
        )
        result = await orchestrator.generate_guidance(context)
        assert result.source == "pattern-detection"
        assert result.metadata["pattern_id"] == "merge-conflict"
        assert guide.llm_client.get_stats()["request_count"] == 0
