"""The analysis loop that coaches the user toward a goal.

Ties together frame capture, the failover runner, response parsing and
the history log. One cycle is in flight at most; the next one is
scheduled only after the previous one finished, so slow model calls
throttle the cadence on their own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from screencoach.backend.client import InsightBackend
from screencoach.capture.base import CaptureError, FrameSource
from screencoach.coach.failover import (
    BackgroundTasks,
    FailoverRunner,
    NoCredentialsError,
    PoolExhaustedError,
)
from screencoach.domain.models import (
    UNINTERESTING_STATES,
    AnalysisContext,
    AnalysisOutcome,
    CapturedFrame,
    CoachPhase,
    Credential,
    ParsedAnalysis,
    PastInsight,
)
from screencoach.interpreter.base import ProviderError, VisionProvider

logger = logging.getLogger(__name__)

STATUS_NO_KEYS = "No API keys configured"
STATUS_EXHAUSTED = "All API keys exhausted (quota exceeded). Add or replace keys to continue."
STATUS_SAFETY_LOCKED = "Daily safety limit reached, analysis paused"


@dataclass
class CycleReport:
    """What one call to ``run_cycle`` did."""

    attempts: int = 0
    outcome: AnalysisOutcome | None = None
    skipped: str | None = None
    frame_unavailable: bool = False
    discarded: bool = False
    error: Exception | None = None


class AnalysisOrchestrator:
    """Drives capture -> analyze -> record -> cooldown -> repeat.

    Example usage::

        coach = AnalysisOrchestrator(source, runner, backend, goal="Ship the release")
        await coach.start()
        ...
        await coach.stop()
    """

    def __init__(
        self,
        frame_source: FrameSource,
        runner: FailoverRunner,
        backend: InsightBackend | None = None,
        goal: str = "",
        cycle_interval: float = 4.0,
        frame_retry_delay: float = 1.0,
        history_limit: int = 50,
        on_outcome: Callable[[AnalysisOutcome], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        on_reconfigure_needed: Callable[[str], None] | None = None,
    ) -> None:
        self._source = frame_source
        self._runner = runner
        self._backend = backend
        self.goal = goal
        self._cycle_interval = cycle_interval
        self._frame_retry_delay = frame_retry_delay
        self._history_limit = history_limit
        self.on_outcome = on_outcome
        self.on_status = on_status
        self.on_reconfigure_needed = on_reconfigure_needed

        self._phase = CoachPhase.IDLE
        self._capturing = False
        self._analyzing = False
        self._run_id = 0
        self._quota_exceeded = False
        self._safety_locked = False
        self._status_message = ""
        self._current: AnalysisOutcome | None = None
        self._context: AnalysisContext | None = None
        self._history: list[AnalysisOutcome] = []
        self._timer: asyncio.TimerHandle | None = None
        self._ticks: set[asyncio.Task] = set()
        self._background = BackgroundTasks()

    # -- observable state -------------------------------------------------

    @property
    def phase(self) -> CoachPhase:
        return self._phase

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def quota_exceeded(self) -> bool:
        return self._quota_exceeded

    @property
    def safety_locked(self) -> bool:
        return self._safety_locked

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def current_analysis(self) -> AnalysisOutcome | None:
        return self._current

    @property
    def context(self) -> AnalysisContext | None:
        return self._context

    @property
    def history(self) -> tuple[AnalysisOutcome, ...]:
        """Visible history log, most recent first."""
        return tuple(self._history)

    @property
    def background(self) -> BackgroundTasks:
        return self._background

    # -- lifecycle --------------------------------------------------------

    async def load_history(self) -> None:
        """Seed the visible history from the backend, if one is configured."""
        if self._backend is None:
            return
        records = await self._backend.fetch_history()
        self._history = list(records[: self._history_limit])
        logger.info("Loaded %d history entries from backend", len(self._history))

    async def start(self, schedule: bool = True) -> None:
        """Start capturing and schedule the first cycle immediately.

        With ``schedule=False`` no timer is armed and the caller drives
        cycles through ``run_cycle``.

        Raises:
            CaptureError: If the frame source cannot be started.
        """
        if self._capturing:
            return
        try:
            await self._source.start_capture()
        except CaptureError as e:
            self._set_phase(CoachPhase.IDLE)
            self._set_status(str(e))
            raise
        self._capturing = True
        self._run_id += 1
        self._set_phase(CoachPhase.CAPTURING)
        self._set_status("Capturing")
        logger.info("Coaching started (goal=%r)", self.goal)
        if schedule:
            self._schedule(0, self._run_id)

    async def stop(self) -> None:
        """Stop capturing and cancel the pending cycle.

        A model call already in flight is left to finish; its result is
        discarded.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        was_capturing = self._capturing
        self._capturing = False
        await self._source.stop_capture()
        self._set_phase(CoachPhase.IDLE)
        if was_capturing:
            self._set_status("Stopped")
            logger.info("Coaching stopped")

    def reconfigure(self, keys: Iterable[str]) -> None:
        """Replace the credential list and clear any halt."""
        self._runner.pool.replace(keys)
        self._quota_exceeded = False
        self._safety_locked = False
        if self._phase == CoachPhase.HALTED:
            self._set_phase(CoachPhase.CAPTURING if self._capturing else CoachPhase.IDLE)
        self._set_status(f"{len(self._runner.pool)} API key(s) configured")

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle and pending side effects to finish."""
        if self._ticks:
            await asyncio.gather(*self._ticks, return_exceptions=True)
        await self._background.drain()

    # -- one cycle --------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Run one analysis cycle if every gate allows it."""
        report = CycleReport()
        if not self._capturing:
            report.skipped = "not capturing"
            return report
        if self._analyzing:
            report.skipped = "busy"
            return report
        if self._quota_exceeded:
            report.skipped = "exhausted"
            return report
        if self._runner.pool.is_empty:
            self._halt(STATUS_NO_KEYS, signal=self._phase != CoachPhase.HALTED)
            report.skipped = "no credentials"
            return report
        if self._runner.quota.is_safety_locked():
            if not self._safety_locked:
                logger.warning("Safety limit reached, skipping analysis cycles")
            self._safety_locked = True
            self._halt(STATUS_SAFETY_LOCKED, signal=False)
            report.skipped = "safety locked"
            return report

        self._analyzing = True
        self._set_phase(CoachPhase.ANALYZING)
        try:
            frame = await self._source.take_snapshot()
            if frame is None:
                report.frame_unavailable = True
                self._set_phase(CoachPhase.COOLDOWN)
                return report
            await self._analyze(frame, report)
        finally:
            self._analyzing = False
        return report

    async def _analyze(self, frame: CapturedFrame, report: CycleReport) -> None:
        run_id = self._run_id
        goal = self.goal
        context = self._context

        async def attempt(provider: VisionProvider, credential: Credential) -> ParsedAnalysis:
            report.attempts += 1
            insights: Sequence[PastInsight] = []
            if provider.supports_embeddings:
                insights = await self._retrieve_insights(provider, credential, goal, context)
            return await provider.analyze_frame(frame, goal, credential, context, insights)

        logger.info("Analysis cycle started (frame #%d)", frame.frame_number)
        try:
            result = await self._runner.run(attempt, label="analysis")
        except NoCredentialsError as e:
            report.error = e
            if self._is_current(run_id):
                self._halt(STATUS_NO_KEYS)
            return
        except PoolExhaustedError as e:
            report.error = e
            if self._is_current(run_id):
                self._quota_exceeded = True
                self._halt(STATUS_EXHAUSTED)
            return
        except ProviderError as e:
            report.error = e
            logger.warning("Analysis cycle failed: %s", e)
            if self._is_current(run_id):
                self._set_phase(CoachPhase.COOLDOWN)
                self._set_status(f"Analysis failed: {e}")
            return

        if not self._is_current(run_id):
            report.discarded = True
            logger.info("Discarding analysis result, capture was stopped or restarted")
            return

        outcome = AnalysisOutcome.from_parsed(result.value, screenshot=frame, goal=goal or None)
        report.outcome = outcome
        self._safety_locked = False
        self._record(outcome)
        self._context = AnalysisContext.from_outcome(outcome)
        self._set_phase(CoachPhase.COOLDOWN)
        self._set_status(f"{outcome.state.value}: {outcome.micro_assist}")
        logger.info("Analysis cycle finished: %s (%d attempt(s))", outcome.state.value, report.attempts)

        if self._backend is not None:
            self._background.spawn(
                self._log_outcome(outcome, goal, self._runner.provider_for(result.credential), result.credential),
                name="log-analysis",
            )

    def _record(self, outcome: AnalysisOutcome) -> None:
        self._current = outcome
        latest = self._history[0] if self._history else None
        if outcome.state not in UNINTERESTING_STATES and not outcome.same_directive(latest):
            self._history.insert(0, outcome)
            del self._history[self._history_limit:]
        if self.on_outcome is not None:
            self.on_outcome(outcome)

    async def _retrieve_insights(
        self,
        provider: VisionProvider,
        credential: Credential,
        goal: str,
        context: AnalysisContext | None,
    ) -> list[PastInsight]:
        if self._backend is None:
            return []
        query = context.last_observation if context is not None else goal
        if not query:
            return []
        try:
            vector = await provider.embed(query, credential)
            if not vector:
                return []
            return await self._backend.similar_context(vector)
        except Exception as e:
            logger.warning("Similar-context retrieval failed: %s", e)
            return []

    async def _log_outcome(
        self,
        outcome: AnalysisOutcome,
        goal: str,
        provider: VisionProvider,
        credential: Credential,
    ) -> None:
        vector = None
        if provider.supports_embeddings:
            vector = await provider.embed(outcome.observation, credential)
        await self._backend.log_analysis(outcome, goal, vector)

    # -- scheduling -------------------------------------------------------

    def _is_current(self, run_id: int) -> bool:
        """Whether a cycle begun under ``run_id`` belongs to the live capture run."""
        return self._capturing and run_id == self._run_id

    def _schedule(self, delay: float, run_id: int) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._spawn_tick, run_id)

    def _spawn_tick(self, run_id: int) -> None:
        self._timer = None
        if not self._is_current(run_id):
            return
        task = asyncio.get_running_loop().create_task(self._tick(run_id), name="analysis-cycle")
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _tick(self, run_id: int) -> None:
        # A stop/start while this cycle was in flight hands the timer chain
        # to the new run; this one must not reschedule.
        delay = self._cycle_interval
        try:
            if self._phase == CoachPhase.COOLDOWN:
                self._set_phase(CoachPhase.CAPTURING)
            report = await self.run_cycle()
            if report.frame_unavailable:
                delay = self._frame_retry_delay
        except Exception:
            logger.exception("Unexpected error in analysis cycle")
        if self._is_current(run_id):
            self._schedule(delay, run_id)

    # -- status -----------------------------------------------------------

    def _halt(self, message: str, signal: bool = True) -> None:
        self._set_phase(CoachPhase.HALTED)
        self._set_status(message)
        if signal:
            logger.warning("Analysis halted: %s", message)
            if self.on_reconfigure_needed is not None:
                self.on_reconfigure_needed(message)

    def _set_phase(self, phase: CoachPhase) -> None:
        if phase != self._phase:
            logger.debug("Phase %s -> %s", self._phase.value, phase.value)
            self._phase = phase

    def _set_status(self, message: str) -> None:
        if message == self._status_message:
            return
        self._status_message = message
        if self.on_status is not None:
            self.on_status(message)
