"""Data models for the collect_sources stage."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from source_registry.models import Category


class CollectErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    PARSE_FAILURE = "parse_failure"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"


class FetchError(Exception):
    """Raised by fetch clients for a failed fetch attempt."""

    def __init__(self, kind: CollectErrorKind, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after


@dataclass(frozen=True)
class CollectError:
    """Typed failure of one collection attempt."""
    kind: CollectErrorKind
    message: str
    retry_after: Optional[float] = None

    @classmethod
    def from_fetch_error(cls, error: FetchError) -> "CollectError":
        return cls(kind=error.kind, message=error.message, retry_after=error.retry_after)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class RawItem:
    """A candidate record from a source, before deduplication."""
    source_id: str
    category: Category
    fingerprint: str
    title: str
    body: Optional[str] = None
    url: Optional[str] = None
    ticker: Optional[str] = None
    published_at: Optional[datetime] = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectResult:
    source_id: str
    items: list[RawItem] = field(default_factory=list)
    error: Optional[CollectError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class CollectionRun:
    """One attempt to collect from one source."""
    source_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    outcome: Optional[OutcomeKind] = None
    item_count: int = 0
    error: Optional[CollectError] = None
    stored: int = 0
    duplicates: int = 0
    stored_item_ids: list[str] = field(default_factory=list)
    abandoned: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None

    @property
    def failed(self) -> bool:
        return self.outcome == OutcomeKind.FAILED
