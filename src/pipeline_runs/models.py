"""Data models for pipeline runs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from common.serialization import serialize_dataclass
from source_registry.models import Category


class RunStage(str, Enum):
    IDLE = "Idle"
    COLLECTING = "Collecting"
    PROCESSING = "Processing"
    ANALYZING = "Analyzing"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStage.COMPLETE, RunStage.FAILED)

    @property
    def is_active(self) -> bool:
        return self not in (RunStage.IDLE, RunStage.COMPLETE, RunStage.FAILED)


class RunMode(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class RunAlreadyActive(Exception):
    def __init__(self, run_id: Optional[str], stage: RunStage):
        super().__init__(f"Run {run_id} is already active ({stage.value})")
        self.run_id = run_id
        self.stage = stage


class InvalidTransition(Exception):
    def __init__(self, current: RunStage, target: RunStage):
        super().__init__(f"Invalid stage transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class UnknownRun(KeyError):
    def __init__(self, run_id: str):
        super().__init__(run_id)
        self.run_id = run_id

    def __str__(self) -> str:
        return f"Unknown or expired run: {self.run_id}"


@dataclass(frozen=True)
class RunSnapshot:
    """Immutable view of a run at one stage transition."""
    stage: RunStage
    run_id: Optional[str] = None
    mode: Optional[RunMode] = None
    categories: tuple[Category, ...] = ()
    collected: int = 0
    stored: int = 0
    duplicates: int = 0
    processed_count: int = 0
    source_failures: int = 0
    analysis_failures: int = 0
    suspended_sources: tuple[str, ...] = ()
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return serialize_dataclass(self)


@dataclass
class PipelineRun:
    """Mutable state of one end-to-end cycle, owned by the state machine."""
    id: str
    mode: RunMode
    categories: tuple[Category, ...] = ()
    stage: RunStage = RunStage.IDLE
    collected: int = 0
    stored: int = 0
    duplicates: int = 0
    processed_count: int = 0
    source_failures: int = 0
    analysis_failures: int = 0
    suspended_sources: tuple[str, ...] = ()
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    stored_item_ids: list[str] = field(default_factory=list)

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            stage=self.stage,
            run_id=self.id,
            mode=self.mode,
            categories=tuple(self.categories),
            collected=self.collected,
            stored=self.stored,
            duplicates=self.duplicates,
            processed_count=self.processed_count,
            source_failures=self.source_failures,
            analysis_failures=self.analysis_failures,
            suspended_sources=tuple(self.suspended_sources),
            error=self.error,
            started_at=self.started_at,
            ended_at=self.ended_at,
        )
