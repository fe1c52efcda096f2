"""Core processing logic: analyze unprocessed items and record enrichment."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Optional

from item_store.base import ItemStore
from item_store.models import StoreUnavailable, StoredItem
from process_items.analysis import AnalysisEngine, AnalysisError
from source_registry.models import Category

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class ProcessingBatch:
    """Handle on a submitted set of analyses."""

    def __init__(self, futures: dict[Future, str]):
        self._futures = futures

    @property
    def item_ids(self) -> list[str]:
        return list(self._futures.values())

    def wait(self, timeout: Optional[float] = None) -> ProcessResult:
        """Gather results until every analysis finishes or `timeout` passes.

        Analyses not finished in time count as pending; queued ones are
        cancelled so their items simply stay unprocessed.

        Raises:
            StoreUnavailable: If results could not be written to the store
        """
        result = ProcessResult(submitted=len(self._futures))
        finished = set()
        try:
            for future in as_completed(self._futures, timeout=timeout):
                finished.add(future)
                item_id = self._futures[future]
                error = future.result()
                if error is None:
                    result.succeeded += 1
                else:
                    result.failed += 1
                    result.failures[item_id] = error
        except FutureTimeout:
            pass

        for future in self._futures:
            if future not in finished:
                future.cancel()
                result.pending += 1

        if result.pending:
            logger.warning("%d analyses still pending at timeout", result.pending)
        return result


class ProcessingStage:
    """Submits unprocessed items to the analysis engine on a bounded pool."""

    def __init__(self, store: ItemStore, engine: AnalysisEngine, max_concurrent_analyses: int = 3):
        if max_concurrent_analyses < 1:
            raise ValueError("max_concurrent_analyses must be at least 1")
        self._store = store
        self._engine = engine
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_analyses,
            thread_name_prefix="analyze",
        )

    def submit(self, items: Iterable[StoredItem]) -> ProcessingBatch:
        futures = {}
        for item in items:
            if item.processed:
                continue
            futures[self._executor.submit(self._analyze_one, item)] = item.id
        logger.info("Submitted %d items for analysis", len(futures))
        return ProcessingBatch(futures)

    def process_items(self, items: Iterable[StoredItem], timeout: Optional[float] = None) -> ProcessResult:
        result = self.submit(items).wait(timeout)
        logger.info(
            "Processed %d items (%d failed, %d pending)",
            result.succeeded,
            result.failed,
            result.pending,
        )
        return result

    def process_batch(self, category: Optional[Category] = None, timeout: Optional[float] = None) -> ProcessResult:
        """Analyze every unprocessed item in the store, optionally for one category."""
        items = self._store.select_unprocessed(category)
        return self.process_items(items, timeout)

    def _analyze_one(self, item: StoredItem) -> Optional[str]:
        """Returns None on success or the failure reason."""
        try:
            enrichment = self._engine.analyze(item)
        except StoreUnavailable:
            raise
        except AnalysisError as e:
            reason = str(e)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
        else:
            self._store.mark_processed(item.id, enrichment)
            return None

        logger.warning("Analysis failed for %s: %s", item.id, reason)
        self._store.record_failure(item.id, reason)
        return reason

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
