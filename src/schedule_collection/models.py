"""Data models for the collection scheduler."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from collect_sources.models import CollectionRun


class SourceStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


@dataclass
class SourceState:
    """Scheduler-owned runtime state of one source."""
    source_id: str
    status: SourceStatus = SourceStatus.ACTIVE
    consecutive_failures: int = 0
    in_flight: bool = False
    last_run_start: Optional[datetime] = None
    last_run_end: Optional[datetime] = None
    last_success_start: Optional[datetime] = None
    next_due_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def suspended(self) -> bool:
        return self.status == SourceStatus.SUSPENDED


@dataclass
class TickResult:
    """Terminal collection runs of one dispatch, in completion order."""
    runs: list[CollectionRun] = field(default_factory=list)
    dispatched: int = 0
    skipped_in_flight: list[str] = field(default_factory=list)
    dedup_error: Optional[Exception] = None

    @property
    def collected(self) -> int:
        return sum(run.item_count for run in self.runs)

    @property
    def stored(self) -> int:
        return sum(run.stored for run in self.runs)

    @property
    def duplicates(self) -> int:
        return sum(run.duplicates for run in self.runs)

    @property
    def stored_item_ids(self) -> list[str]:
        return [item_id for run in self.runs for item_id in run.stored_item_ids]

    @property
    def failures(self) -> list[CollectionRun]:
        return [run for run in self.runs if run.failed]

    @property
    def all_abandoned(self) -> bool:
        return bool(self.runs) and all(run.abandoned for run in self.runs)
