"""Data models for stored intelligence items."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from collect_sources.models import RawItem
from common.hashing import generate_item_id
from source_registry.models import Category


class StoreUnavailable(Exception):
    """The item store cannot be reached or refused the operation."""


class UnknownItem(KeyError):
    def __init__(self, item_id: str):
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"Unknown item: {self.item_id}"


@dataclass(frozen=True)
class StoredItem:
    id: str
    source_id: str
    category: Category
    fingerprint: str
    title: str
    collected_at: datetime
    body: Optional[str] = None
    url: Optional[str] = None
    ticker: Optional[str] = None
    published_at: Optional[datetime] = None
    extras: dict[str, Any] = field(default_factory=dict)
    processed: bool = False
    processed_at: Optional[datetime] = None
    enrichment: Optional[dict[str, Any]] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_raw(cls, item: RawItem, collected_at: datetime) -> "StoredItem":
        return cls(
            id=generate_item_id(item.source_id, item.fingerprint),
            source_id=item.source_id,
            category=item.category,
            fingerprint=item.fingerprint,
            title=item.title,
            body=item.body,
            url=item.url,
            ticker=item.ticker,
            published_at=item.published_at,
            collected_at=collected_at,
            extras=dict(item.extras),
        )

    @property
    def sort_time(self) -> datetime:
        """Timestamp used for newest-first ordering."""
        return self.published_at or self.collected_at

    def with_enrichment(self, enrichment: dict[str, Any], processed_at: datetime) -> "StoredItem":
        return replace(self, processed=True, processed_at=processed_at, enrichment=dict(enrichment), last_error=None)

    def with_failure(self, reason: str) -> "StoredItem":
        return replace(self, attempts=self.attempts + 1, last_error=reason)


@dataclass(frozen=True)
class ItemFilter:
    """Store-level selection; all set fields must match."""
    category: Optional[Category] = None
    ticker: Optional[str] = None
    since: Optional[datetime] = None
    processed: Optional[bool] = None
    source_id: Optional[str] = None

    def matches(self, item: StoredItem) -> bool:
        if self.category is not None and item.category != self.category:
            return False
        if self.ticker is not None and (item.ticker or "").upper() != self.ticker.upper():
            return False
        if self.since is not None and item.sort_time < self.since:
            return False
        if self.processed is not None and item.processed != self.processed:
            return False
        if self.source_id is not None and item.source_id != self.source_id:
            return False
        return True
