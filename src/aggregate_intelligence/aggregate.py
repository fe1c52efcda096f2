"""Read-only grouping of stored items for downstream consumers."""

import logging
from typing import Optional

from aggregate_intelligence.models import (
    CategoryStats,
    CollectionStats,
    IntelligenceFilter,
    IntelligenceResult,
)
from item_store.base import ItemStore
from item_store.models import ItemFilter
from source_registry.models import Category

logger = logging.getLogger(__name__)


class Aggregator:
    def __init__(self, store: ItemStore):
        self._store = store

    def query(self, intelligence_filter: Optional[IntelligenceFilter] = None) -> IntelligenceResult:
        """Group matching items by category, newest first within each bucket.

        Buckets appear in category declaration order; categories with no
        matching items are omitted.
        """
        intelligence_filter = intelligence_filter or IntelligenceFilter()
        items = self._store.select_by_filter(intelligence_filter.to_item_filter())

        grouped: dict[Category, list] = {}
        for item in items:
            grouped.setdefault(item.category, []).append(item)

        result = IntelligenceResult()
        for category in Category:
            bucket = grouped.get(category)
            if not bucket:
                continue
            bucket.sort(key=lambda item: (item.sort_time, item.id), reverse=True)
            result.buckets[category.bucket] = bucket
            result.total += len(bucket)

        logger.debug("Intelligence query matched %d items in %d buckets", result.total, len(result.buckets))
        return result

    def stats(self) -> CollectionStats:
        """Totals, unprocessed counts and the latest collection time."""
        stats = CollectionStats()
        for item in self._store.select_by_filter(ItemFilter()):
            category_stats = stats.categories.setdefault(item.category.bucket, CategoryStats())
            category_stats.total += 1
            stats.total_items += 1
            if not item.processed:
                category_stats.unprocessed += 1
                stats.unprocessed_items += 1
            if stats.last_collection is None or item.collected_at > stats.last_collection:
                stats.last_collection = item.collected_at
        return stats
