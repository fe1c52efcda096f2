"""In-memory item store."""

import logging
import threading
from typing import Any, Callable, Optional

from collect_sources.models import RawItem
from common.datetime import utc_now
from common.hashing import generate_item_id
from item_store.base import ItemStore
from item_store.models import ItemFilter, StoredItem, UnknownItem

logger = logging.getLogger(__name__)


class InMemoryItemStore(ItemStore):
    """Thread-safe store keeping immutable StoredItem values in a dict."""

    def __init__(self, clock: Callable = utc_now):
        self._items: dict[str, StoredItem] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def insert_if_absent(self, source_id: str, fingerprint: str, item: RawItem) -> bool:
        item_id = generate_item_id(source_id, fingerprint)
        with self._lock:
            if item_id in self._items:
                return False
            self._items[item_id] = StoredItem.from_raw(item, collected_at=self._clock())
            return True

    def mark_processed(self, item_id: str, enrichment: dict[str, Any]) -> bool:
        with self._lock:
            current = self._require(item_id)
            if current.processed:
                logger.debug("Item %s already processed; keeping first enrichment", item_id)
                return False
            self._items[item_id] = current.with_enrichment(enrichment, processed_at=self._clock())
            return True

    def record_failure(self, item_id: str, reason: str) -> None:
        with self._lock:
            current = self._require(item_id)
            if current.processed:
                return
            self._items[item_id] = current.with_failure(reason)

    def get(self, item_id: str) -> Optional[StoredItem]:
        with self._lock:
            return self._items.get(item_id)

    def select_by_filter(self, item_filter: ItemFilter) -> list[StoredItem]:
        with self._lock:
            items = list(self._items.values())
        return [item for item in items if item_filter.matches(item)]

    def _require(self, item_id: str) -> StoredItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise UnknownItem(item_id) from None
