"""Intelligence pipeline: trigger, status and query surface over the components."""

import logging
import os
import random
import threading
import uuid
from collections import OrderedDict
from typing import Callable, Iterable, Optional

from dotenv import load_dotenv

from aggregate_intelligence.aggregate import Aggregator
from aggregate_intelligence.models import CollectionStats, IntelligenceFilter, IntelligenceResult
from collect_sources.collect import Collector, FetchClient
from common.datetime import utc_now
from deduplicate_items.deduplicate import DedupError, Deduplicator
from item_store.base import ItemStore
from item_store.memory import InMemoryItemStore
from item_store.models import StoreUnavailable
from pipeline_runs.config import PipelineConfig, StoreConfig, get_config
from pipeline_runs.models import (
    PipelineRun,
    RunAlreadyActive,
    RunMode,
    RunSnapshot,
    RunStage,
    UnknownRun,
)
from pipeline_runs.state_machine import PipelineStateMachine
from process_items.analysis import AnalysisEngine, OpenAIAnalysisEngine
from process_items.process import ProcessingStage, ProcessResult
from schedule_collection.models import SourceState
from schedule_collection.scheduler import Scheduler
from source_registry.models import Category, FetchKind
from source_registry.registry import SourceRegistry, load_registry

load_dotenv()

logger = logging.getLogger(__name__)


def build_store(store_config: StoreConfig) -> ItemStore:
    """Create the configured item store."""
    if store_config.backend == "memory":
        return InMemoryItemStore()

    from item_store.sql import SqlItemStore

    url = store_config.url or os.environ.get("DATABASE_URL")
    if not url:
        raise ValueError("store.backend is 'sql' but neither store.url nor DATABASE_URL is set")
    return SqlItemStore.from_url(url)


class IntelligencePipeline:
    """One end-to-end cycle at a time: collect -> process -> analyze.

    `start_run` returns immediately with a run id; the run proceeds on a
    background thread and its progress is read with `get_run_status` (or by
    subscribing to the state machine).
    """

    def __init__(
        self,
        registry: SourceRegistry,
        store: ItemStore,
        engine: AnalysisEngine,
        collector: Optional[Collector] = None,
        config: Optional[PipelineConfig] = None,
        clock: Callable = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or PipelineConfig()
        self.registry = registry
        self.store = store
        self.collector = collector or Collector(timeout_seconds=self.config.collector.timeout_seconds)

        scheduler_config = self.config.scheduler
        self.scheduler = Scheduler(
            registry,
            self.collector,
            Deduplicator(store),
            max_concurrent_collections=scheduler_config.max_concurrent_collections,
            suspend_after_failures=scheduler_config.suspend_after_failures,
            failure_backoff_factor=scheduler_config.failure_backoff_factor,
            max_backoff=scheduler_config.max_backoff,
            jitter_seconds=scheduler_config.jitter_seconds,
            rng=rng,
            clock=clock,
        )
        self.processing = ProcessingStage(
            store,
            engine,
            max_concurrent_analyses=self.config.processing.max_concurrent_analyses,
        )
        self.aggregator = Aggregator(store)
        self.machine = PipelineStateMachine(auto_reset=self.config.pipeline.auto_reset, clock=clock)

        self._history: OrderedDict[str, RunSnapshot] = OrderedDict()
        self._finished: dict[str, threading.Event] = {}
        self._history_lock = threading.Lock()
        self.machine.subscribe(self._record_snapshot)

    @classmethod
    def from_config(
        cls,
        config: Optional[PipelineConfig] = None,
        clients: Optional[dict[FetchKind, FetchClient]] = None,
        engine: Optional[AnalysisEngine] = None,
    ) -> "IntelligencePipeline":
        config = config or get_config()
        return cls(
            registry=load_registry(config.sources_file),
            store=build_store(config.store),
            engine=engine or OpenAIAnalysisEngine(model=config.analysis.model),
            collector=Collector(clients, timeout_seconds=config.collector.timeout_seconds),
            config=config,
        )

    # Trigger

    def start_run(
        self,
        mode: RunMode | str = RunMode.MANUAL,
        categories: Optional[Iterable[Category | str]] = None,
    ) -> str:
        """Start a run on a background thread and return its id.

        Raises:
            RunAlreadyActive: If a run is still in progress
            ValueError: If a category name is unknown
        """
        mode = RunMode(mode)
        wanted = tuple(Category.parse(category) for category in categories or ())
        run = PipelineRun(id=uuid.uuid4().hex, mode=mode, categories=wanted)

        finished = threading.Event()
        with self._history_lock:
            self._finished[run.id] = finished
        try:
            self.machine.start(run)
        except RunAlreadyActive:
            with self._history_lock:
                self._finished.pop(run.id, None)
            raise

        logger.info("Started %s run %s (categories: %s)", mode.value, run.id, [c.value for c in wanted] or "all")
        thread = threading.Thread(
            target=self._execute,
            args=(run, finished),
            name=f"run-{run.id[:8]}",
            daemon=True,
        )
        thread.start()
        return run.id

    def run_once(
        self,
        mode: RunMode | str = RunMode.MANUAL,
        categories: Optional[Iterable[Category | str]] = None,
        timeout: Optional[float] = None,
    ) -> RunSnapshot:
        """Start a run and block until it reaches a terminal stage."""
        run_id = self.start_run(mode, categories)
        return self.wait_for_run(run_id, timeout)

    def scheduled_tick(self) -> Optional[str]:
        """Start a scheduled run when any source is due and no run is active."""
        if not self.scheduler.due():
            logger.debug("No sources due")
            return None
        try:
            return self.start_run(RunMode.SCHEDULED)
        except RunAlreadyActive as e:
            logger.info("Skipping scheduled tick: %s", e)
            return None

    def run_scheduler(self, stop_event: threading.Event) -> None:
        self.scheduler.run_forever(
            self.scheduled_tick,
            stop_event,
            interval_seconds=self.config.scheduler.tick_seconds,
        )

    # Run execution

    def _execute(self, run: PipelineRun, finished: threading.Event) -> None:
        try:
            if self._collect(run):
                self._process(run)
        except (DedupError, StoreUnavailable) as e:
            logger.error("Run %s failed: %s", run.id, e)
            self.machine.fail(str(e))
        except Exception as e:
            logger.exception("Run %s crashed", run.id)
            self.machine.fail(f"{type(e).__name__}: {e}")
        finally:
            finished.set()

    def _collect(self, run: PipelineRun) -> bool:
        if len(self.registry) == 0:
            logger.error("Run %s: source registry is empty", run.id)
            self.machine.fail("Source registry is empty")
            return False

        sources = self.scheduler.enabled_sources(run.categories)
        if not sources:
            names = ", ".join(c.value for c in run.categories) or "any category"
            logger.error("Run %s: no enabled sources for %s", run.id, names)
            self.machine.fail(f"No enabled sources for {names}")
            return False

        deadline = self.config.pipeline.collect_deadline_seconds
        if run.mode == RunMode.MANUAL:
            handle = self.scheduler.collect_all(deadline, run.categories)
        else:
            handle = self.scheduler.collect_due(deadline, run.categories)
        tick = handle.wait()

        suspended = tuple(
            source_id for source_id, state in self.scheduler.states().items() if state.suspended
        )
        counts = dict(
            collected=tick.collected,
            stored=tick.stored,
            duplicates=tick.duplicates,
            source_failures=len(tick.failures),
            suspended_sources=suspended,
            stored_item_ids=tick.stored_item_ids,
        )

        if tick.dedup_error is not None:
            raise tick.dedup_error
        if tick.all_abandoned:
            logger.error("Run %s: no source finished before the collection deadline", run.id)
            self.machine.fail("No source finished before the collection deadline", **counts)
            return False

        self.machine.advance(RunStage.PROCESSING, **counts)
        return True

    def _process(self, run: PipelineRun) -> None:
        # Only items ingested by this run; older backlog goes through process_backlog
        items = self.store.get_many(run.stored_item_ids)
        batch = self.processing.submit(items)
        self.machine.advance(RunStage.ANALYZING)

        result = batch.wait(self.config.pipeline.analysis_timeout_seconds)
        self.machine.advance(
            RunStage.COMPLETE,
            processed_count=result.succeeded,
            analysis_failures=result.failed,
        )

    # Status

    def _record_snapshot(self, snapshot: RunSnapshot) -> None:
        if snapshot.run_id is None:
            return
        with self._history_lock:
            self._history[snapshot.run_id] = snapshot
            self._history.move_to_end(snapshot.run_id)
            while len(self._history) > self.config.pipeline.run_history:
                expired, _ = self._history.popitem(last=False)
                self._finished.pop(expired, None)

    def get_run_status(self, run_id: str) -> RunSnapshot:
        """Latest snapshot of a run.

        Raises:
            UnknownRun: If the id was never issued or has aged out of the history
        """
        with self._history_lock:
            snapshot = self._history.get(run_id)
        if snapshot is None:
            raise UnknownRun(run_id)
        return snapshot

    def wait_for_run(self, run_id: str, timeout: Optional[float] = None) -> RunSnapshot:
        with self._history_lock:
            finished = self._finished.get(run_id)
        if finished is None:
            raise UnknownRun(run_id)
        finished.wait(timeout)
        return self.get_run_status(run_id)

    def current_status(self) -> RunSnapshot:
        return self.machine.snapshot()

    def acknowledge(self) -> RunSnapshot:
        return self.machine.acknowledge()

    def recent_runs(self) -> list[RunSnapshot]:
        with self._history_lock:
            return list(reversed(self._history.values()))

    # Sources

    def source_statuses(self, category: Optional[Category | str] = None) -> list[tuple]:
        """(descriptor, scheduler state) pairs in declaration order."""
        states = self.scheduler.states()
        return [(source, states[source.id]) for source in self.registry.list(category=category)]

    def resume_source(self, source_id: str) -> SourceState:
        return self.scheduler.resume(source_id)

    # Processing and reads

    def process_backlog(self, category: Optional[Category | str] = None) -> ProcessResult:
        """Analyze every unprocessed item, including ones left over from earlier runs."""
        wanted = Category.parse(category) if category is not None else None
        return self.processing.process_batch(wanted, timeout=self.config.pipeline.analysis_timeout_seconds)

    def query_intelligence(self, intelligence_filter: Optional[IntelligenceFilter] = None) -> IntelligenceResult:
        return self.aggregator.query(intelligence_filter)

    def collection_stats(self) -> CollectionStats:
        return self.aggregator.stats()

    def shutdown(self) -> None:
        self.scheduler.shutdown()
        self.processing.shutdown()
