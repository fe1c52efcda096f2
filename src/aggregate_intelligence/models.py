"""Data models for aggregated intelligence reads."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from common.datetime import parse_optional_datetime
from common.serialization import serialize_dataclass
from common.text import normalize_ticker
from item_store.models import ItemFilter, StoredItem
from source_registry.models import Category


@dataclass(frozen=True)
class IntelligenceFilter:
    category: Optional[Category] = None
    ticker: Optional[str] = None
    since: Optional[datetime] = None

    def to_item_filter(self) -> ItemFilter:
        return ItemFilter(
            category=self.category,
            ticker=normalize_ticker(self.ticker),
            since=parse_optional_datetime(self.since),
        )


@dataclass
class IntelligenceResult:
    """Stored items grouped into buckets keyed by lowercase category name."""
    buckets: dict[str, list[StoredItem]] = field(default_factory=dict)
    total: int = 0

    def to_dict(self) -> dict:
        return {
            "buckets": {
                name: [serialize_dataclass(item) for item in items]
                for name, items in self.buckets.items()
            },
            "total": self.total,
        }


@dataclass
class CategoryStats:
    total: int = 0
    unprocessed: int = 0


@dataclass
class CollectionStats:
    total_items: int = 0
    unprocessed_items: int = 0
    last_collection: Optional[datetime] = None
    categories: dict[str, CategoryStats] = field(default_factory=dict)
