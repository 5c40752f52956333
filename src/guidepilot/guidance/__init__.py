"""Guidance sources and the orchestrator that ranks them."""

from guidepilot.guidance.base import GuidanceSource
from guidepilot.guidance.context_source import ContextAwareGuidanceSource
from guidepilot.guidance.guide_prompt_source import GuidePromptGuidanceSource
from guidepilot.guidance.orchestrator import GuidanceOrchestrator
from guidepilot.guidance.pattern_source import PatternGuidanceSource, PatternLibrary

__all__ = [
    "ContextAwareGuidanceSource",
    "GuidanceOrchestrator",
    "GuidePromptGuidanceSource",
    "GuidanceSource",
    "PatternGuidanceSource",
    "PatternLibrary",
]
