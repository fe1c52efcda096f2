"""Item store interface."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from collect_sources.models import RawItem
from item_store.models import ItemFilter, StoredItem
from source_registry.models import Category


class ItemStore(ABC):
    """Persistence for collected items.

    Every write is atomic per item. `processed` only ever moves from False
    to True; implementations must make `mark_processed` a no-op for an item
    that is already processed. Operational failures raise StoreUnavailable.
    """

    @abstractmethod
    def insert_if_absent(self, source_id: str, fingerprint: str, item: RawItem) -> bool:
        """Store the item unless (source_id, fingerprint) is already present.

        Returns True when a new item was stored.
        """

    @abstractmethod
    def mark_processed(self, item_id: str, enrichment: dict[str, Any]) -> bool:
        """Attach enrichment and flip `processed`; False if it was already processed."""

    @abstractmethod
    def record_failure(self, item_id: str, reason: str) -> None:
        """Count a failed analysis attempt; the item stays unprocessed."""

    @abstractmethod
    def get(self, item_id: str) -> Optional[StoredItem]:
        ...

    @abstractmethod
    def select_by_filter(self, item_filter: ItemFilter) -> list[StoredItem]:
        ...

    def select_unprocessed(self, category: Optional[Category] = None) -> list[StoredItem]:
        return self.select_by_filter(ItemFilter(category=category, processed=False))

    def get_many(self, item_ids: list[str]) -> list[StoredItem]:
        items = []
        for item_id in item_ids:
            item = self.get(item_id)
            if item is not None:
                items.append(item)
        return items
