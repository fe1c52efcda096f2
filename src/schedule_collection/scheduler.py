"""Collection scheduler: decides which sources are due and runs them on a bounded pool."""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from collect_sources.collect import Collector
from collect_sources.models import CollectError, CollectErrorKind, CollectionRun, OutcomeKind
from common.datetime import utc_now
from deduplicate_items.deduplicate import DedupError, Deduplicator
from schedule_collection.models import SourceState, SourceStatus, TickResult
from source_registry.models import Category, SourceDescriptor
from source_registry.registry import SourceRegistry

logger = logging.getLogger(__name__)

_PENDING = "pending"
_ADMITTING = "admitting"
_DONE = "done"
_ABANDONED = "abandoned"


def dispatch_order(sources: Iterable[SourceDescriptor]) -> list[SourceDescriptor]:
    """Tier first (CRITICAL before LOW), then source id."""
    return sorted(sources, key=lambda source: (source.tier.rank, source.id))


def due_sources(
    states: Mapping[str, SourceState],
    sources: Iterable[SourceDescriptor],
    now: datetime,
) -> list[SourceDescriptor]:
    """Sources due at `now`, in dispatch order.

    A source is due when it has never run or its next due time has passed.
    Sources with a collection in flight are never due. Suspended sources
    stay schedulable so a later success can clear the suspension.
    """
    due = []
    for source in sources:
        state = states.get(source.id)
        if state is None:
            due.append(source)
            continue
        if state.in_flight:
            continue
        if state.next_due_at is None or now >= state.next_due_at:
            due.append(source)
    return dispatch_order(due)


class _Ticket:
    """Tracks one dispatched collection so the deadline and the worker agree on who records it."""

    def __init__(self, source: SourceDescriptor, dispatched_at: datetime):
        self.source = source
        self.dispatched_at = dispatched_at
        self.status = _PENDING
        self.lock = threading.Lock()


class TickHandle:
    """Handle on one dispatch; `wait` gathers the terminal CollectionRuns."""

    def __init__(
        self,
        scheduler: "Scheduler",
        futures: dict[Future, _Ticket],
        timeout_seconds: Optional[float],
        skipped_in_flight: list[str],
    ):
        self._scheduler = scheduler
        self._futures = futures
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        self._skipped = skipped_in_flight
        self._result: Optional[TickResult] = None
        self._wait_lock = threading.Lock()

    @property
    def source_ids(self) -> list[str]:
        return [ticket.source.id for ticket in self._futures.values()]

    def done(self) -> bool:
        return all(future.done() for future in self._futures)

    def wait(self) -> TickResult:
        """Block until every collection is terminal or the deadline passes.

        Collections still in flight at the deadline are recorded as TIMEOUT
        failures; whatever they return later is discarded.
        """
        with self._wait_lock:
            if self._result is None:
                self._result = self._gather()
            return self._result

    def _gather(self) -> TickResult:
        result = TickResult(dispatched=len(self._futures), skipped_in_flight=list(self._skipped))
        remaining = None
        if self._deadline is not None:
            remaining = max(self._deadline - time.monotonic(), 0.0)

        finished = set()
        try:
            for future in as_completed(self._futures, timeout=remaining):
                finished.add(future)
                self._collect_finished(future, result)
        except FutureTimeout:
            pass

        for future, ticket in self._futures.items():
            if future in finished:
                continue
            with ticket.lock:
                abandoned = ticket.status == _PENDING
                if abandoned:
                    ticket.status = _ABANDONED
            if abandoned:
                result.runs.append(self._scheduler._abandon(ticket, future))
            else:
                # Admission already started; it is local and short, so let it land
                self._collect_finished(future, result)

        return result

    def _collect_finished(self, future: Future, result: TickResult) -> None:
        try:
            run = future.result()
        except DedupError as e:
            if result.dedup_error is None:
                result.dedup_error = e
            return
        if run is not None:
            result.runs.append(run)


class Scheduler:
    """Owns the per-source state table and dispatches collections.

    Each dispatched unit of work collects one source and admits its items
    through the Deduplicator. At most one collection per source is in
    flight; concurrency across sources is capped by
    `max_concurrent_collections`.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        collector: Collector,
        deduplicator: Deduplicator,
        max_concurrent_collections: int = 5,
        suspend_after_failures: int = 3,
        failure_backoff_factor: float = 1.0,
        max_backoff: Optional[timedelta] = None,
        jitter_seconds: float = 0.0,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_concurrent_collections < 1:
            raise ValueError("max_concurrent_collections must be at least 1")
        self.registry = registry
        self._collector = collector
        self._deduplicator = deduplicator
        self.max_concurrent_collections = max_concurrent_collections
        self.suspend_after_failures = suspend_after_failures
        self.failure_backoff_factor = failure_backoff_factor
        self.max_backoff = max_backoff
        self.jitter_seconds = jitter_seconds
        self._rng = rng or random.Random()
        self._clock = clock
        self._states: dict[str, SourceState] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_collections,
            thread_name_prefix="collect",
        )

    # State table

    def _state(self, source_id: str) -> SourceState:
        state = self._states.get(source_id)
        if state is None:
            state = self._states[source_id] = SourceState(source_id=source_id)
        return state

    def states(self) -> dict[str, SourceState]:
        """Copy of the state table for every registered source."""
        with self._lock:
            return {source.id: replace(self._state(source.id)) for source in self.registry}

    def state(self, source_id: str) -> SourceState:
        self.registry.get(source_id)
        with self._lock:
            return replace(self._state(source_id))

    def resume(self, source_id: str) -> SourceState:
        """Clear a suspension and make the source due immediately."""
        self.registry.get(source_id)
        with self._lock:
            state = self._state(source_id)
            state.status = SourceStatus.ACTIVE
            state.consecutive_failures = 0
            state.next_due_at = None
            logger.info("Source %s resumed", source_id)
            return replace(state)

    # Selection

    def enabled_sources(self, categories: Optional[Iterable[Category]] = None) -> list[SourceDescriptor]:
        sources = self.registry.list(enabled_only=True)
        if categories:
            wanted = {Category.parse(category) for category in categories}
            sources = tuple(source for source in sources if source.category in wanted)
        return list(sources)

    def due(self, now: Optional[datetime] = None, categories: Optional[Iterable[Category]] = None) -> list[SourceDescriptor]:
        now = now or self._clock()
        with self._lock:
            states = {source_id: replace(state) for source_id, state in self._states.items()}
        return due_sources(states, self.enabled_sources(categories), now)

    # Dispatch

    def collect_due(
        self,
        timeout_seconds: Optional[float] = None,
        categories: Optional[Iterable[Category]] = None,
        now: Optional[datetime] = None,
    ) -> TickHandle:
        """Dispatch every enabled source that is due (scheduled mode)."""
        return self.dispatch(self.due(now=now, categories=categories), timeout_seconds)

    def collect_all(
        self,
        timeout_seconds: Optional[float] = None,
        categories: Optional[Iterable[Category]] = None,
    ) -> TickHandle:
        """Dispatch every enabled source regardless of cadence (manual mode)."""
        return self.dispatch(self.enabled_sources(categories), timeout_seconds)

    def dispatch(self, sources: Iterable[SourceDescriptor], timeout_seconds: Optional[float] = None) -> TickHandle:
        futures: dict[Future, _Ticket] = {}
        skipped = []
        dispatched_at = self._clock()

        for source in dispatch_order(sources):
            with self._lock:
                state = self._state(source.id)
                if state.in_flight:
                    skipped.append(source.id)
                    logger.info("Skipping %s: collection already in flight", source.id)
                    continue
                state.in_flight = True
                state.last_run_start = dispatched_at
                since = state.last_success_start

            ticket = _Ticket(source, dispatched_at)
            future = self._executor.submit(self._run_one, ticket, since)
            futures[future] = ticket

        logger.info("Dispatched %d collections (%d skipped in flight)", len(futures), len(skipped))
        return TickHandle(self, futures, timeout_seconds, skipped)

    def _run_one(self, ticket: _Ticket, since: Optional[datetime]) -> Optional[CollectionRun]:
        source = ticket.source
        started_at = self._clock()
        try:
            result = self._collector.collect(source, since)

            with ticket.lock:
                if ticket.status == _ABANDONED:
                    logger.info("Discarding late result from %s", source.id)
                    return None
                ticket.status = _ADMITTING

            run = CollectionRun(source_id=source.id, started_at=started_at)
            if result.ok:
                admitted = self._deduplicator.admit(source.id, result.items)
                run.item_count = len(result.items)
                run.stored = admitted.stored
                run.duplicates = admitted.duplicates
                run.stored_item_ids = admitted.item_ids
                run.outcome = OutcomeKind.SUCCESS if result.items else OutcomeKind.EMPTY
            else:
                run.error = result.error
                run.outcome = OutcomeKind.FAILED
            run.ended_at = self._clock()

            self._record_outcome(source, run)
            return run
        finally:
            with ticket.lock:
                if ticket.status != _ABANDONED:
                    ticket.status = _DONE
            with self._lock:
                self._state(source.id).in_flight = False

    def _abandon(self, ticket: _Ticket, future: Future) -> CollectionRun:
        source = ticket.source
        run = CollectionRun(
            source_id=source.id,
            started_at=ticket.dispatched_at,
            ended_at=self._clock(),
            outcome=OutcomeKind.FAILED,
            error=CollectError(CollectErrorKind.TIMEOUT, "Collection still in flight at the run deadline"),
            abandoned=True,
        )
        logger.warning("Abandoning collection from %s at deadline", source.id)
        self._record_outcome(source, run)
        if future.cancel():
            # Never started, so no worker will clear the flag
            with self._lock:
                self._state(source.id).in_flight = False
        return run

    # Outcome bookkeeping

    def _record_outcome(self, source: SourceDescriptor, run: CollectionRun) -> None:
        with self._lock:
            state = self._state(source.id)
            state.last_run_end = run.ended_at

            if run.failed:
                state.consecutive_failures += 1
                state.last_error = str(run.error)
                if state.consecutive_failures >= self.suspend_after_failures and not state.suspended:
                    state.status = SourceStatus.SUSPENDED
                    logger.warning(
                        "Source %s suspended after %d consecutive failures",
                        source.id,
                        state.consecutive_failures,
                    )
            else:
                if state.suspended:
                    logger.info("Source %s recovered; clearing suspension", source.id)
                state.consecutive_failures = 0
                state.status = SourceStatus.ACTIVE
                state.last_error = None
                state.last_success_start = run.started_at

            state.next_due_at = self._next_due(source, state, run)

    def _next_due(self, source: SourceDescriptor, state: SourceState, run: CollectionRun) -> datetime:
        cadence = source.effective_cadence
        delay = cadence
        if run.failed and state.consecutive_failures > 1:
            delay = cadence * (self.failure_backoff_factor ** (state.consecutive_failures - 1))
            if self.max_backoff is not None:
                delay = min(delay, max(self.max_backoff, cadence))

        next_due = run.ended_at + delay
        if self.jitter_seconds > 0:
            next_due += timedelta(seconds=self._rng.uniform(0, self.jitter_seconds))

        if run.failed and run.error.kind == CollectErrorKind.RATE_LIMITED and run.error.retry_after:
            next_due = max(next_due, run.ended_at + timedelta(seconds=run.error.retry_after))
        return next_due

    # Loop

    def run_forever(
        self,
        tick: Callable[[], Any],
        stop_event: threading.Event,
        interval_seconds: float = 60.0,
    ) -> None:
        """Call `tick` every `interval_seconds` until `stop_event` is set."""
        logger.info("Scheduler loop started (interval %ss)", interval_seconds)
        while not stop_event.is_set():
            try:
                tick()
            except Exception:
                logger.exception("Scheduled tick failed")
            stop_event.wait(interval_seconds)
        logger.info("Scheduler loop stopped")

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
