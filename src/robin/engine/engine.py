"""Execution engine: the bounded perceive, plan, act loop.

One ``execute`` call is one run.  Each iteration captures the surface,
asks the planner for an ``Analysis``, and either finishes (completion or
no proposed actions) or executes the proposed batch sequentially and then
applies the stopping heuristic.  The run ends in exactly one terminal
state:

* ``COMPLETED``: the planner reported the task done.
* ``EXHAUSTED``: ``max_iterations`` reached.
* ``ABORTED``: no proposed actions, heuristic stop, or ``stop()``.
* ``FAILED``: planner or loop-control fault, raised as ``RunFailure``.

Every produced result, bookkeeping or real, is appended to the session
recorder as it is produced; nothing is rolled back on failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from pydantic import ValidationError

from robin.engine.heuristics import evaluate
from robin.exceptions import (
    EngineError,
    InitializationError,
    PlannerError,
    RobinError,
    RunFailure,
)
from robin.models.action import Action, ActionResult, ActionType, ResultKind, Screenshot
from robin.models.analysis import Analysis
from robin.models.config import AgentConfig, AgentSettings
from robin.models.session import RunReport, Session
from robin.models.states import (
    SESSION_STATUS_FOR_STATE,
    EngineState,
    SessionStatus,
    StopReason,
    can_transition,
)
from robin.monitoring.event_bus import EventBus, EventType
from robin.operators.base import Operator
from robin.planner.base import Planner
from robin.sessions.recorder import DEFAULT_HISTORY_LIMIT, InMemorySessionRecorder, SessionRecorder

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s]+")
_URL_TRAILING = ".,;:!?)]}'\""


def extract_url(instruction: str) -> str | None:
    """Return the first http(s) URL in *instruction*, minus trailing punctuation."""
    match = URL_PATTERN.search(instruction)
    if not match:
        return None
    url = match.group(0).rstrip(_URL_TRAILING)
    return url or None


class ExecutionEngine:
    """Drives one operator and one planner through bounded runs.

    Operator and planner are built from ``AgentConfig`` by ``initialize``
    unless injected here.  The recorder defaults to an in-memory one and the
    event bus to a bus with no sinks.

    Args:
        operator: Pre-built operator (initialised by ``initialize`` if needed).
        planner: Pre-built planner.
        recorder: Session recorder.
        event_bus: Outbound event port.
    """

    def __init__(
        self,
        operator: Operator | None = None,
        planner: Planner | None = None,
        recorder: SessionRecorder | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._operator = operator
        self._planner = planner
        self._recorder: SessionRecorder = recorder or InMemorySessionRecorder()
        self._bus = event_bus or EventBus()
        self._settings = AgentSettings()

        self._state = EngineState.INITIALIZING
        self._initialized = False
        self._released = False
        self._owns_operator = False
        self._owns_planner = False

        # Per-run state (reset in execute)
        self._iteration = 0
        self._results: list[ActionResult] = []
        self._session_id = ""
        self._location = ""
        self._navigated = False
        self._last_run: RunReport | None = None

        # External control
        self._paused = False
        self._stop_requested = False
        self._running = False
        self._run_task: asyncio.Task | None = None
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._stop_event = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def iteration(self) -> int:
        return self._iteration

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def stopped(self) -> bool:
        return self._released

    @property
    def running(self) -> bool:
        return self._running

    @property
    def settings(self) -> AgentSettings:
        return self._settings

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def recorder(self) -> SessionRecorder:
        return self._recorder

    @property
    def last_run(self) -> RunReport | None:
        return self._last_run

    def current_session(self) -> Session | None:
        """Snapshot of the active run's session, or the last run's."""
        if not self._session_id:
            return None
        return self._recorder.get_session(self._session_id)

    def session_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Session]:
        return self._recorder.session_history(limit)

    def current_location(self) -> str:
        """Last known surface location (URL or window title)."""
        return self._location

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, config: AgentConfig | None = None) -> None:
        """Build and initialise the operator and planner.

        Raises:
            EngineError: If the engine is mid-run or already initialised.
            InitializationError: If either component cannot be set up.  Any
                component already set up is cleaned up first.
        """
        if self._running:
            raise EngineError("Cannot initialize while a run is in progress")
        if self._initialized and not self._released:
            raise EngineError("Engine is already initialized")

        self._state = EngineState.INITIALIZING
        if config is not None:
            self._settings = config.settings
        elif self._operator is None or self._planner is None:
            raise InitializationError("AgentConfig is required unless operator and planner are injected")

        operator_settings: dict[str, Any] = dict(config.operator.settings) if config else {}
        built_operator = built_planner = False
        try:
            if self._operator is None:
                from robin.operators.factory import create_operator

                self._operator = create_operator(config.operator)
                built_operator = self._owns_operator = True
            if not self._operator.is_initialized:
                await self._operator.initialize(operator_settings)

            if self._planner is None:
                from robin.planner.factory import create_planner

                self._planner = create_planner(config.model)
                built_planner = self._owns_planner = True
        except Exception as exc:
            await self._release_components()
            if built_operator:
                self._operator = None
                self._owns_operator = False
            if built_planner:
                self._planner = None
                self._owns_planner = False
            if isinstance(exc, InitializationError):
                raise
            raise InitializationError(f"Engine initialization failed: {exc}") from exc

        self._initialized = True
        self._released = False
        self._stop_requested = False
        self._stop_event = asyncio.Event()
        logger.info(
            "Engine initialized: operator=%s planner=%s max_iterations=%d",
            type(self._operator).__name__,
            type(self._planner).__name__,
            self._settings.max_iterations,
        )

    async def pause(self) -> None:
        """Suspend at the next checkpoint; the in-flight action finishes first."""
        if self._paused:
            return
        self._paused = True
        self._resume_event.clear()
        logger.info("Engine paused at iteration %d", self._iteration)
        await self._emit(EventType.AGENT_PAUSED, {"iteration": self._iteration})

    async def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self._resume_event.set()
        logger.info("Engine resumed at iteration %d", self._iteration)
        await self._emit(EventType.AGENT_RESUMED, {"iteration": self._iteration})

    async def stop(self) -> None:
        """End any run at its next checkpoint and release the operator and planner.

        Idempotent: resources are released exactly once.  When called during
        a run from another task, waits until the in-flight action finishes
        and the run reaches its terminal state.
        """
        self._stop_requested = True
        self._stop_event.set()
        self._resume_event.set()

        if self._running and asyncio.current_task() is not self._run_task:
            await self._idle.wait()

        if self._released:
            return
        self._released = True
        self._paused = False

        await self._release_components()
        # Components built from config are rebuilt by the next initialize().
        if self._owns_operator:
            self._operator = None
            self._owns_operator = False
        if self._owns_planner:
            self._planner = None
            self._owns_planner = False
        self._initialized = False
        try:
            pruned = self._recorder.prune_older_than(self._settings.session_retention_ms)
            logger.debug("Pruned %d sessions on stop", pruned)
        except Exception as exc:
            logger.warning("Session pruning failed: %s", exc)
        logger.info("Engine stopped")
        await self._emit(EventType.AGENT_STOPPED, {"iteration": self._iteration})

    async def __aenter__(self) -> ExecutionEngine:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _release_components(self) -> None:
        if self._operator is not None:
            try:
                await self._operator.cleanup()
            except Exception as exc:
                logger.warning("Operator cleanup failed: %s", exc)
        if self._planner is not None:
            try:
                await self._planner.cleanup()
            except Exception as exc:
                logger.warning("Planner cleanup failed: %s", exc)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def execute(self, instruction: str) -> list[ActionResult]:
        """Run *instruction* to a terminal state and return every result in order.

        Raises:
            EngineError: Not initialised, already stopped, or a run is in progress.
            RunFailure: Planner or loop-control fault; carries the iteration,
                the partial results and the session id.
        """
        if self._running:
            raise EngineError("A run is already in progress on this engine")
        if not self._initialized or self._operator is None or self._planner is None:
            raise EngineError("Engine is not initialized")
        if self._released:
            raise EngineError("Engine has been stopped; call initialize() again")

        self._running = True
        self._run_task = asyncio.current_task()
        self._idle.clear()
        self._iteration = 0
        self._results = []
        self._session_id = ""
        self._navigated = False
        self._paused = False
        self._resume_event.set()

        try:
            self._session_id = self._recorder.create_session(
                instruction,
                metadata={
                    "operator": self._operator.operator_type.value,
                    "max_iterations": self._settings.max_iterations,
                },
            )
            self._bus.session_id = self._session_id
            await self._transition(EngineState.ITERATING)
            await self._emit(
                EventType.EXECUTION_STARTED,
                {"instruction": instruction, "max_iterations": self._settings.max_iterations},
            )
            logger.info("Run %s started: %s", self._session_id, instruction)

            final_state, reason = await self._run_loop(instruction)

            await self._transition(final_state)
            self._recorder.finish_session(self._session_id, SESSION_STATUS_FOR_STATE[final_state])
            self._last_run = RunReport(
                session_id=self._session_id,
                state=final_state,
                iterations=self._iteration,
                stop_reason=reason,
                results=list(self._results),
            )
            logger.info(
                "Run %s ended: state=%s reason=%s iterations=%d results=%d",
                self._session_id,
                final_state.value,
                reason.value,
                self._iteration,
                len(self._results),
            )
            await self._emit(
                EventType.EXECUTION_COMPLETED,
                {
                    "state": final_state.value,
                    "reason": reason.value,
                    "iterations": self._iteration,
                    "results": len(self._results),
                    "url": self._location,
                },
            )
            return list(self._results)

        except asyncio.CancelledError:
            logger.warning("Run %s cancelled at iteration %d", self._session_id, self._iteration)
            old_state = self._state
            self._state = EngineState.ABORTED
            self._finish_quietly(SessionStatus.ABORTED, "cancelled")
            self._last_run = RunReport(
                session_id=self._session_id,
                state=EngineState.ABORTED,
                iterations=self._iteration,
                stop_reason=StopReason.STOPPED,
                results=list(self._results),
                error="cancelled",
            )
            await self._emit(
                EventType.STATE_CHANGED,
                {"old_state": old_state.value, "new_state": EngineState.ABORTED.value},
            )
            raise

        except Exception as exc:
            logger.exception("Run %s failed at iteration %d", self._session_id, self._iteration)
            old_state = self._state
            self._state = EngineState.FAILED
            self._finish_quietly(SessionStatus.FAILED, str(exc))
            self._last_run = RunReport(
                session_id=self._session_id,
                state=EngineState.FAILED,
                iterations=self._iteration,
                stop_reason=StopReason.ERROR,
                results=list(self._results),
                error=str(exc),
            )
            await self._emit(
                EventType.STATE_CHANGED,
                {"old_state": old_state.value, "new_state": EngineState.FAILED.value},
            )
            await self._emit(
                EventType.EXECUTION_FAILED,
                {"iteration": self._iteration, "error": str(exc), "error_type": type(exc).__name__},
            )
            raise RunFailure(
                f"Run failed at iteration {self._iteration}: {exc}",
                iteration=self._iteration,
                results=list(self._results),
                session_id=self._session_id,
                details={"cause": type(exc).__name__},
            ) from exc

        finally:
            self._running = False
            self._run_task = None
            self._idle.set()
            if self._settings.release_on_exit:
                await self.stop()

    async def _run_loop(self, instruction: str) -> tuple[EngineState, StopReason]:
        await self._operator.prepare(instruction)

        if not await self._checkpoint():
            return EngineState.ABORTED, StopReason.STOPPED
        await self._navigate_from_instruction(instruction)

        while True:
            if not await self._checkpoint():
                return EngineState.ABORTED, StopReason.STOPPED

            self._iteration += 1
            iteration = self._iteration
            logger.info("Iteration %d/%d", iteration, self._settings.max_iterations)
            await self._emit(
                EventType.ITERATION_STARTED,
                {"iteration": iteration, "max_iterations": self._settings.max_iterations},
            )

            # 1. Perceive
            screenshot = await self._operator.capture()
            await self._refresh_location()
            self._record(
                ActionResult(
                    id=f"screenshot-{iteration}",
                    success=True,
                    data=self._tags(ResultKind.SCREENSHOT.value, iteration, screenshot=screenshot.metadata()),
                )
            )
            await self._emit(
                EventType.SCREENSHOT_CAPTURED,
                {"iteration": iteration, **screenshot.metadata(), "url": self._location},
            )

            # 2. Plan
            analysis = await self._analyze(screenshot, instruction, iteration)
            self._record(
                ActionResult(
                    id=f"analysis-{iteration}",
                    success=True,
                    data=self._tags(
                        ResultKind.AI_ANALYSIS.value,
                        iteration,
                        reasoning=analysis.reasoning,
                        confidence=analysis.confidence,
                        isComplete=analysis.is_complete,
                        nextActions=[a.type.value for a in analysis.actions],
                    ),
                )
            )
            await self._emit(
                EventType.ANALYSIS_COMPLETED,
                {
                    "iteration": iteration,
                    "reasoning": analysis.reasoning,
                    "confidence": analysis.confidence,
                    "is_complete": analysis.is_complete,
                    "actions": [a.summary() for a in analysis.actions],
                },
            )

            # 3. Completion
            if analysis.is_complete:
                self._record(
                    ActionResult(
                        id=f"completion-{iteration}",
                        success=True,
                        data=self._tags(
                            ResultKind.TASK_COMPLETE.value,
                            iteration,
                            message="Task completed successfully",
                            finalReasoning=analysis.reasoning,
                        ),
                    )
                )
                return EngineState.COMPLETED, StopReason.TASK_COMPLETE

            # 4. No proposed progress
            if not analysis.actions:
                logger.warning("Planner proposed no actions at iteration %d", iteration)
                return EngineState.ABORTED, StopReason.NO_ACTIONS

            # 5. Act
            for index, action in enumerate(analysis.actions):
                if not await self._checkpoint():
                    return EngineState.ABORTED, StopReason.STOPPED
                await self._perform(action, iteration)
                if index < len(analysis.actions) - 1:
                    await self._sleep(self._settings.action_delay_ms)

            # 6. Heuristic
            decision = evaluate(self._results, analysis.confidence)
            if decision.stop:
                logger.warning("Stopping run at iteration %d: %s", iteration, decision.detail)
                return EngineState.ABORTED, decision.reason

            # 7. Bound
            if iteration >= self._settings.max_iterations:
                logger.warning("Max iterations reached (%d)", self._settings.max_iterations)
                return EngineState.EXHAUSTED, StopReason.MAX_ITERATIONS

            # 8. Pace
            await self._sleep(self._settings.iteration_delay_ms)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _navigate_from_instruction(self, instruction: str) -> None:
        url = extract_url(instruction)
        if url is None or self._navigated:
            return
        if not self._operator.supports(ActionType.NAVIGATE):
            logger.debug("Operator cannot navigate; skipping URL shortcut for %s", url)
            return
        logger.info("Instruction contains URL, navigating to %s", url)
        action = Action(
            type=ActionType.NAVIGATE,
            parameters={"url": url},
            description=f"Navigate to {url}",
            reasoning="URL found in instruction",
        )
        await self._perform(action, 0)

    async def _analyze(self, screenshot: Screenshot, instruction: str, iteration: int) -> Analysis:
        try:
            analysis: Any = await self._planner.analyze_screenshot(
                screenshot, instruction, iteration, tuple(self._results)
            )
        except RobinError:
            raise
        except Exception as exc:
            raise PlannerError(f"Planner call failed: {exc}") from exc

        if isinstance(analysis, Analysis):
            return analysis
        if isinstance(analysis, dict):
            try:
                return Analysis.model_validate(analysis)
            except ValidationError as exc:
                raise PlannerError(f"Planner returned an inconsistent analysis: {exc}") from exc
        raise PlannerError(f"Planner returned {type(analysis).__name__}, expected Analysis")

    async def _perform(self, action: Action, iteration: int) -> ActionResult:
        await self._emit(EventType.ACTION_STARTED, {"iteration": iteration, "action": action.summary()})
        try:
            result = await self._operator.execute(action)
        except Exception as exc:
            logger.warning("Action %s raised %s: %s", action.type.value, type(exc).__name__, exc)
            result = ActionResult(id=action.id, success=False, error=str(exc) or type(exc).__name__)

        if action.type == ActionType.NAVIGATE and result.success:
            self._navigated = True
            self._location = str(result.data.get("url") or action.parameters.get("url") or self._location)
        elif result.data.get("url"):
            self._location = str(result.data["url"])

        result = result.with_data(**self._tags(action.type.value, iteration))
        self._record(result)

        await self._emit(
            EventType.ACTION_COMPLETED,
            {
                "iteration": iteration,
                "action_id": action.id,
                "type": action.type.value,
                "success": result.success,
                "error": result.error,
            },
        )
        if action.type == ActionType.NAVIGATE and result.success:
            await self._emit(EventType.NAVIGATION_COMPLETED, {"iteration": iteration, "url": self._location})
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _tags(self, kind: str, iteration: int, **extra: Any) -> dict[str, Any]:
        data: dict[str, Any] = {"action": kind, "iteration": iteration, **extra}
        if self._location:
            data["url"] = self._location
        return data

    def _record(self, result: ActionResult) -> None:
        self._results.append(result)
        self._recorder.append(self._session_id, result)

    def _finish_quietly(self, status: SessionStatus, error: str) -> None:
        if not self._session_id:
            return
        try:
            self._recorder.finish_session(self._session_id, status, error)
        except Exception as exc:
            logger.warning("Could not finish session %s: %s", self._session_id, exc)

    async def _refresh_location(self) -> None:
        state = await self._operator.query_state()
        location = state.get("url") or state.get("window")
        if location:
            self._location = str(location)

    async def _checkpoint(self) -> bool:
        """Block while paused; return False once a stop was requested."""
        if self._stop_requested:
            return False
        if not self._resume_event.is_set():
            await self._resume_event.wait()
        return not self._stop_requested

    async def _sleep(self, delay_ms: int) -> None:
        """Cooperative wait that a ``stop()`` cuts short."""
        if delay_ms <= 0 or self._stop_requested:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            pass

    async def _transition(self, new_state: EngineState) -> None:
        if not can_transition(self._state, new_state):
            raise EngineError(f"Illegal state transition: {self._state.value} -> {new_state.value}")
        old_state = self._state
        self._state = new_state
        logger.info("State: %s -> %s", old_state.value, new_state.value)
        await self._emit(EventType.STATE_CHANGED, {"old_state": old_state.value, "new_state": new_state.value})

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        try:
            await self._bus.emit(event_type, data)
        except Exception as exc:
            logger.debug("Event emission failed (%s): %s", event_type.value, exc)
