"""Guidepilot: guidance decision engine for supervising coding-assistant sessions."""

__version__ = "0.3.0"

from guidepilot.config import AutopilotConfig, ConfigStore, GuidepilotError
from guidepilot.confirmation import ConfirmationDialogHandler
from guidepilot.context_builder import ContextBuilder
from guidepilot.context_patterns import ContextPatterns
from guidepilot.events import MonitorEvent, MonitorEvents
from guidepilot.guidance import (
    ContextAwareGuidanceSource,
    GuidanceOrchestrator,
    GuidePromptGuidanceSource,
    GuidanceSource,
    PatternGuidanceSource,
)
from guidepilot.llm_client import LLMClient, LLMErrorCategory
from guidepilot.models import AnalysisContext, AutopilotMonitorState, GuidanceResult, ProjectContext
from guidepilot.monitor import AutopilotMonitor

__all__ = [
    "AutopilotConfig",
    "ConfigStore",
    "GuidepilotError",
    "ConfirmationDialogHandler",
    "ContextBuilder",
    "ContextPatterns",
    "MonitorEvent",
    "MonitorEvents",
    "ContextAwareGuidanceSource",
    "GuidanceOrchestrator",
    "GuidePromptGuidanceSource",
    "GuidanceSource",
    "PatternGuidanceSource",
    "LLMClient",
    "LLMErrorCategory",
    "AnalysisContext",
    "AutopilotMonitorState",
    "GuidanceResult",
    "ProjectContext",
    "AutopilotMonitor",
]
