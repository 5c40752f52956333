"""Autopilot monitor: periodic per-session analysis under an hourly budget.

Each enabled session gets its own asyncio task that sleeps for
``analysis_delay_ms`` and then runs one analysis cycle. A cycle is skipped
when the session is inactive, when a previous cycle is still running, or
when the hourly guidance budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Protocol

from guidepilot.config import AutopilotConfig
from guidepilot.events import (
    EVENT_ANALYSIS_COMPLETE,
    EVENT_ANALYSIS_ERROR,
    EVENT_GUIDANCE_PROVIDED,
    EVENT_STATUS_CHANGED,
    STATUS_ACTIVE,
    STATUS_STANDBY,
    MonitorEvents,
)
from guidepilot.guidance import GuidanceOrchestrator
from guidepilot.models import AnalysisContext, AutopilotMonitorState, GuidanceResult

logger = logging.getLogger(__name__)

RECENT_OUTPUT_LINES = 10
GUIDANCE_PREFIX = "✈️ Auto-pilot: "
RATE_WINDOW = timedelta(hours=1)

_ANSI_ESCAPE = re.compile(r"\x1b\[[\d;?]*[a-zA-Z]|\x1b\][^\x07]*\x07")


class Session(Protocol):
    """What the monitor needs from a terminal session."""

    id: str
    worktree_path: str
    output: list[str]
    is_active: bool
    autopilot_state: AutopilotMonitorState | None

    def write(self, data: str) -> Any: ...


def strip_ansi(value: str) -> str:
    return _ANSI_ESCAPE.sub("", value)


def format_guidance(guidance: str) -> str:
    return f"{GUIDANCE_PREFIX}{guidance}\n"


class AutopilotMonitor:
    """Schedules analysis cycles and writes accepted guidance into sessions."""

    def __init__(
        self,
        config: AutopilotConfig,
        orchestrator: GuidanceOrchestrator | None = None,
        events: MonitorEvents | None = None,
    ):
        self.config = config
        self.orchestrator = orchestrator or GuidanceOrchestrator(config)
        self.events = events or MonitorEvents()
        self._tasks: dict[str, asyncio.Task] = {}

    def is_available(self) -> bool:
        return self.orchestrator.is_available()

    def update_config(self, config: AutopilotConfig) -> None:
        """Applies on the next tick; running loops re-read the delay each cycle."""
        self.config = config
        self.orchestrator.update_config(config)

    def enable(self, session: Session) -> None:
        """Start monitoring ``session``. No-op if already active.

        Must be called with a running event loop.
        """
        if session.autopilot_state is None:
            session.autopilot_state = AutopilotMonitorState()

        state = session.autopilot_state
        if state.is_active:
            return

        loop = asyncio.get_running_loop()
        state.is_active = True
        self._cancel_task(session.id)
        self._tasks[session.id] = loop.create_task(
            self._monitor_loop(session), name=f"autopilot-{session.id}"
        )
        logger.info(f"Autopilot enabled for session {session.id}")
        self.events.emit(EVENT_STATUS_CHANGED, session, STATUS_ACTIVE)

    def disable(self, session: Session) -> None:
        """Stop monitoring ``session``; the pending tick is cancelled immediately."""
        state = session.autopilot_state
        if state is None or not state.is_active:
            return

        state.is_active = False
        self._cancel_task(session.id)
        logger.info(f"Autopilot disabled for session {session.id}")
        self.events.emit(EVENT_STATUS_CHANGED, session, STATUS_STANDBY)

    def toggle(self, session: Session) -> bool:
        """Flip monitoring; returns True when now active."""
        state = session.autopilot_state
        if state is None or not state.is_active:
            self.enable(session)
            return True
        self.disable(session)
        return False

    def get_state(self, session: Session) -> AutopilotMonitorState | None:
        return session.autopilot_state

    def _cancel_task(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _monitor_loop(self, session: Session) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.analysis_delay_ms / 1000)
                state = session.autopilot_state
                if state is None or not state.is_active:
                    break
                await self.analyze_session(session)
            except asyncio.CancelledError:
                break

    def can_provide_guidance(self, state: AutopilotMonitorState) -> bool:
        """Hourly budget check. Resets the counter once the window has passed."""
        if state.last_guidance_time is None:
            return True
        if datetime.now() - state.last_guidance_time >= RATE_WINDOW:
            state.guidances_provided = 0
            return True
        return state.guidances_provided < self.config.max_guidances_per_hour

    def get_recent_output(self, session: Session) -> str:
        return strip_ansi("\n".join(session.output[-RECENT_OUTPUT_LINES:]))

    async def analyze_session(self, session: Session) -> GuidanceResult | None:
        """Run one analysis cycle. Never raises; failures become events."""
        state = session.autopilot_state
        if state is None or not state.is_active or not session.is_active:
            return None
        if state.analysis_in_progress:
            logger.debug(f"Analysis already running for session {session.id}, skipping")
            return None
        if not self.is_available():
            return None
        if not self.can_provide_guidance(state):
            logger.debug(f"Guidance budget spent for session {session.id}")
            return None

        state.analysis_in_progress = True
        try:
            output = self.get_recent_output(session)
            if not output.strip():
                return None

            context = AnalysisContext(
                terminal_output=output,
                project_path=session.worktree_path,
                session_id=session.id,
            )
            result = await self.orchestrator.generate_guidance(context)

            if (
                result.should_intervene
                and result.guidance
                and result.confidence >= self.config.intervention_threshold
            ):
                self._provide_guidance(session, state, result)

            self.events.emit(EVENT_ANALYSIS_COMPLETE, session, result)
            return result
        except Exception as e:
            logger.error(f"Analysis failed for session {session.id}: {e}")
            self.events.emit(EVENT_ANALYSIS_ERROR, session, e)
            return None
        finally:
            state.analysis_in_progress = False

    def _provide_guidance(
        self, session: Session, state: AutopilotMonitorState, result: GuidanceResult
    ) -> None:
        session.write(format_guidance(result.guidance))
        state.guidances_provided += 1
        state.last_guidance_time = datetime.now()
        logger.info(
            f"Guidance from {result.source} written to session {session.id} "
            f"({state.guidances_provided}/{self.config.max_guidances_per_hour} this hour)"
        )
        self.events.emit(EVENT_GUIDANCE_PROVIDED, session, result)

    async def shutdown(self) -> None:
        """Cancel every monitoring task and drop listeners."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.events.clear()
