"""Admit collected items into the store, dropping ones already seen."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from collect_sources.models import RawItem
from common.hashing import generate_item_id
from item_store.base import ItemStore
from item_store.models import StoreUnavailable

logger = logging.getLogger(__name__)


class DedupError(Exception):
    """The store could not be consulted while admitting items."""


@dataclass
class AdmitResult:
    stored: int = 0
    duplicates: int = 0
    item_ids: list[str] = field(default_factory=list)


class Deduplicator:
    """Insert-if-absent on (source_id, fingerprint), serialized per source.

    Admissions for the same source take the same lock so a source's batch is
    checked and inserted as a unit; different sources never contend.
    """

    def __init__(self, store: ItemStore):
        self._store = store
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, source_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(source_id)
            if lock is None:
                lock = self._locks[source_id] = threading.Lock()
            return lock

    def admit(self, source_id: str, items: Iterable[RawItem]) -> AdmitResult:
        result = AdmitResult()
        with self._lock_for(source_id):
            for item in items:
                try:
                    inserted = self._store.insert_if_absent(source_id, item.fingerprint, item)
                except StoreUnavailable as e:
                    raise DedupError(f"Store unavailable while admitting items from {source_id}: {e}") from e
                if inserted:
                    result.stored += 1
                    result.item_ids.append(generate_item_id(source_id, item.fingerprint))
                else:
                    result.duplicates += 1

        logger.info(
            "Admitted %d new items from %s (%d duplicates)",
            result.stored,
            source_id,
            result.duplicates,
        )
        return result
