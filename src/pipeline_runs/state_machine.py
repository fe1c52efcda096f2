"""Workflow state machine for pipeline runs."""

import logging
import threading
from dataclasses import fields
from typing import Any, Callable, Optional

from common.datetime import utc_now
from pipeline_runs.models import (
    InvalidTransition,
    PipelineRun,
    RunAlreadyActive,
    RunSnapshot,
    RunStage,
)

logger = logging.getLogger(__name__)

Observer = Callable[[RunSnapshot], Any]

TRANSITIONS: dict[RunStage, frozenset[RunStage]] = {
    RunStage.IDLE: frozenset({RunStage.COLLECTING}),
    RunStage.COLLECTING: frozenset({RunStage.PROCESSING, RunStage.FAILED}),
    RunStage.PROCESSING: frozenset({RunStage.ANALYZING, RunStage.FAILED}),
    RunStage.ANALYZING: frozenset({RunStage.COMPLETE, RunStage.FAILED}),
    RunStage.COMPLETE: frozenset({RunStage.IDLE}),
    RunStage.FAILED: frozenset({RunStage.IDLE}),
}

_RUN_FIELDS = {f.name for f in fields(PipelineRun)}


class PipelineStateMachine:
    """Sequences one run at a time through Idle -> ... -> Complete | Failed.

    Every transition publishes a RunSnapshot to all observers, in order.
    With `auto_reset` the machine returns to Idle as soon as the terminal
    snapshot has been delivered; otherwise it waits for `acknowledge()` or
    the next `start()`.
    """

    def __init__(self, auto_reset: bool = True, clock: Callable = utc_now):
        self.auto_reset = auto_reset
        self._clock = clock
        self._run: Optional[PipelineRun] = None
        self._stage = RunStage.IDLE
        self._snapshot = RunSnapshot(stage=RunStage.IDLE)
        self._observers: list[Observer] = []
        self._lock = threading.RLock()

    @property
    def stage(self) -> RunStage:
        return self._snapshot.stage

    @property
    def current_run_id(self) -> Optional[str]:
        return self._snapshot.run_id

    def snapshot(self) -> RunSnapshot:
        return self._snapshot

    def subscribe(self, observer: Observer) -> Observer:
        with self._lock:
            self._observers.append(observer)
        return observer

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def start(self, run: PipelineRun) -> RunSnapshot:
        """Begin `run` (Idle -> Collecting).

        Raises:
            RunAlreadyActive: If another run has not reached a terminal stage
        """
        with self._lock:
            if self._stage.is_active:
                raise RunAlreadyActive(self._snapshot.run_id, self._stage)
            if self._stage.is_terminal:
                self._reset()
            run.started_at = run.started_at or self._clock()
            self._run = run
            return self._transition(RunStage.COLLECTING)

    def advance(self, stage: RunStage, **updates: Any) -> RunSnapshot:
        """Apply counter updates to the active run and move it to `stage`."""
        with self._lock:
            self._apply(updates)
            if stage.is_terminal and self._run is not None:
                self._run.ended_at = self._clock()
            return self._transition(stage)

    def update(self, **updates: Any) -> RunSnapshot:
        """Apply counter updates without a transition (not published)."""
        with self._lock:
            self._apply(updates)
            if self._run is not None:
                self._snapshot = self._run.snapshot()
            return self._snapshot

    def fail(self, error: str, **updates: Any) -> RunSnapshot:
        updates["error"] = error
        return self.advance(RunStage.FAILED, **updates)

    def acknowledge(self) -> RunSnapshot:
        """Reset a terminal machine to Idle; a no-op when already Idle."""
        with self._lock:
            if self._stage == RunStage.IDLE:
                return self._snapshot
            if not self._stage.is_terminal:
                raise InvalidTransition(self._stage, RunStage.IDLE)
            return self._reset()

    def _apply(self, updates: dict[str, Any]) -> None:
        if not updates:
            return
        if self._run is None:
            raise InvalidTransition(self._stage, self._stage)
        for name, value in updates.items():
            if name not in _RUN_FIELDS:
                raise AttributeError(f"PipelineRun has no field {name!r}")
            setattr(self._run, name, value)

    def _transition(self, target: RunStage) -> RunSnapshot:
        if target not in TRANSITIONS[self._stage] or self._run is None:
            raise InvalidTransition(self._stage, target)

        logger.info("Run %s: %s -> %s", self._run.id, self._stage.value, target.value)
        self._stage = target
        self._run.stage = target
        snapshot = self._run.snapshot()
        self._snapshot = snapshot
        self._publish(snapshot)

        if target.is_terminal and self.auto_reset:
            self._reset()
        return snapshot

    def _reset(self) -> RunSnapshot:
        self._stage = RunStage.IDLE
        self._run = None
        self._snapshot = RunSnapshot(stage=RunStage.IDLE)
        self._publish(self._snapshot)
        return self._snapshot

    def _publish(self, snapshot: RunSnapshot) -> None:
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Snapshot observer %r failed", observer)
