"""Tests for schedule_collection.scheduler module."""

import random
import threading
import time
from datetime import datetime, timezone, timedelta

import pytest

from collect_sources.models import CollectError, CollectErrorKind, CollectResult, RawItem
from common.hashing import compute_fingerprint
from deduplicate_items.deduplicate import Deduplicator
from item_store.memory import InMemoryItemStore
from item_store.models import StoreUnavailable
from schedule_collection.models import SourceState, SourceStatus
from schedule_collection.scheduler import Scheduler, due_sources
from source_registry.models import Category, FetchKind, PriorityTier, SourceDescriptor
from source_registry.registry import SourceRegistry, UnknownSource

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now += delta


class ScriptedCollector:
    """Returns queued results per source id; an empty success once the queue runs out."""

    def __init__(self, results=None, block=None):
        self.results = {key: list(value) for key, value in (results or {}).items()}
        self.block = block or {}
        self.calls = []
        self._lock = threading.Lock()

    def collect(self, source, since=None):
        with self._lock:
            self.calls.append(source.id)
            queue = self.results.get(source.id)
            result = queue.pop(0) if queue else None
        if source.id in self.block:
            self.block[source.id].wait(5)
        return result or CollectResult(source_id=source.id)


def _source(source_id, tier=PriorityTier.MEDIUM, cadence=timedelta(minutes=10)) -> SourceDescriptor:
    return SourceDescriptor(
        id=source_id,
        name=source_id,
        category=Category.SOCIAL,
        tier=tier,
        fetch_kind=FetchKind.API,
        fetch_params={"url": f"https://example.com/{source_id}"},
        cadence=cadence,
    )


def _failure(source_id, kind=CollectErrorKind.UNREACHABLE, retry_after=None) -> CollectResult:
    return CollectResult(source_id=source_id, error=CollectError(kind, "boom", retry_after=retry_after))


def _items(source_id, *titles) -> CollectResult:
    return CollectResult(source_id=source_id, items=[
        RawItem(source_id=source_id, category=Category.SOCIAL,
                fingerprint=compute_fingerprint(title, None), title=title)
        for title in titles
    ])


def _scheduler(sources, collector, clock=None, store=None, **kwargs) -> Scheduler:
    return Scheduler(
        SourceRegistry(sources),
        collector,
        Deduplicator(store if store is not None else InMemoryItemStore()),
        clock=clock or FakeClock(),
        **kwargs,
    )


def _wait_until(predicate, timeout=2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestDueSources:
    def test_dispatch_order_is_tier_then_id(self) -> None:
        sources = [
            _source("A", PriorityTier.LOW),
            _source("B", PriorityTier.CRITICAL),
            _source("C", PriorityTier.HIGH),
            _source("D", PriorityTier.CRITICAL),
        ]
        assert [s.id for s in due_sources({}, sources, T0)] == ["B", "D", "C", "A"]

    def test_due_rules(self) -> None:
        sources = [_source("never"), _source("due"), _source("later"), _source("busy")]
        states = {
            "due": SourceState("due", next_due_at=T0),
            "later": SourceState("later", next_due_at=T0 + timedelta(seconds=1)),
            "busy": SourceState("busy", in_flight=True),
        }
        assert [s.id for s in due_sources(states, sources, T0)] == ["due", "never"]

    def test_suspended_sources_stay_schedulable(self) -> None:
        states = {"s": SourceState("s", status=SourceStatus.SUSPENDED, next_due_at=T0)}
        assert [s.id for s in due_sources(states, [_source("s")], T0)] == ["s"]


class TestDispatch:
    def test_collections_start_in_tier_order(self) -> None:
        sources = [
            _source("A", PriorityTier.LOW),
            _source("B", PriorityTier.CRITICAL),
            _source("C", PriorityTier.HIGH),
            _source("D", PriorityTier.CRITICAL),
        ]
        collector = ScriptedCollector()
        scheduler = _scheduler(sources, collector, max_concurrent_collections=1)

        scheduler.collect_due().wait()

        assert collector.calls == ["B", "D", "C", "A"]

    def test_items_are_admitted_through_dedup(self) -> None:
        store = InMemoryItemStore()
        collector = ScriptedCollector({"wsb": [_items("wsb", "one", "two", "one")]})
        scheduler = _scheduler([_source("wsb")], collector, store=store)

        tick = scheduler.collect_all().wait()

        assert tick.collected == 3
        assert tick.stored == 2
        assert tick.duplicates == 1
        assert len(tick.stored_item_ids) == 2
        assert len(store) == 2

    def test_collect_due_skips_sources_not_yet_due(self) -> None:
        clock = FakeClock()
        collector = ScriptedCollector()
        scheduler = _scheduler([_source("wsb")], collector, clock=clock)
        scheduler.collect_due().wait()

        clock.advance(timedelta(minutes=5))
        assert scheduler.collect_due().wait().dispatched == 0

        clock.advance(timedelta(minutes=5))
        assert scheduler.collect_due().wait().dispatched == 1

    def test_collect_all_ignores_cadence(self) -> None:
        collector = ScriptedCollector()
        scheduler = _scheduler([_source("wsb")], collector)
        scheduler.collect_all().wait()
        scheduler.collect_all().wait()
        assert collector.calls == ["wsb", "wsb"]

    def test_collect_all_honours_categories_and_enabled(self) -> None:
        news = SourceDescriptor(
            id="cnbc", name="CNBC", category=Category.NEWS, tier=PriorityTier.HIGH,
            fetch_kind=FetchKind.RSS, fetch_params={"url": "https://example.com"},
        )
        disabled = SourceDescriptor(
            id="off", name="Off", category=Category.SOCIAL, tier=PriorityTier.HIGH,
            fetch_kind=FetchKind.RSS, fetch_params={"url": "https://example.com"}, enabled=False,
        )
        collector = ScriptedCollector()
        scheduler = _scheduler([news, disabled, _source("wsb")], collector)

        scheduler.collect_all(categories=[Category.SOCIAL]).wait()

        assert collector.calls == ["wsb"]

    def test_store_failure_is_reported_on_tick(self) -> None:
        class BrokenStore(InMemoryItemStore):
            def insert_if_absent(self, source_id, fingerprint, item):
                raise StoreUnavailable("db down")

        collector = ScriptedCollector({"wsb": [_items("wsb", "one")]})
        scheduler = _scheduler([_source("wsb")], collector, store=BrokenStore())

        tick = scheduler.collect_all().wait()

        assert tick.dedup_error is not None
        assert not scheduler.state("wsb").in_flight


class TestDeadline:
    def test_in_flight_collection_is_abandoned_as_timeout(self) -> None:
        release = threading.Event()
        store = InMemoryItemStore()
        collector = ScriptedCollector({"slow": [_items("slow", "late item")]}, block={"slow": release})
        scheduler = _scheduler([_source("slow")], collector, store=store)

        handle = scheduler.collect_all(timeout_seconds=0.1)
        tick = handle.wait()

        assert len(tick.runs) == 1
        run = tick.runs[0]
        assert run.abandoned
        assert run.error.kind == CollectErrorKind.TIMEOUT
        assert tick.all_abandoned
        state = scheduler.state("slow")
        assert state.consecutive_failures == 1
        assert state.in_flight

        # A second dispatch must not start a parallel collection
        assert scheduler.collect_all().source_ids == []

        release.set()
        assert _wait_until(lambda: not scheduler.state("slow").in_flight)
        assert len(store) == 0

    def test_queued_collection_is_cancelled_at_deadline(self) -> None:
        release = threading.Event()
        collector = ScriptedCollector(block={"a-slow": release})
        scheduler = _scheduler(
            [_source("a-slow"), _source("b-queued")],
            collector,
            max_concurrent_collections=1,
        )

        tick = scheduler.collect_all(timeout_seconds=0.1).wait()

        assert {run.source_id for run in tick.runs} == {"a-slow", "b-queued"}
        assert not scheduler.state("b-queued").in_flight
        release.set()
        assert _wait_until(lambda: not scheduler.state("a-slow").in_flight)
        assert collector.calls == ["a-slow"]


class TestFailurePolicy:
    def test_success_schedules_next_run_one_cadence_later(self) -> None:
        scheduler = _scheduler([_source("wsb")], ScriptedCollector())
        scheduler.collect_all().wait()
        state = scheduler.state("wsb")
        assert state.next_due_at == T0 + timedelta(minutes=10)
        assert state.last_run_end == T0

    def test_failure_retries_on_normal_schedule(self) -> None:
        scheduler = _scheduler([_source("wsb")], ScriptedCollector({"wsb": [_failure("wsb")]}))
        scheduler.collect_all().wait()
        state = scheduler.state("wsb")
        assert state.next_due_at == T0 + timedelta(minutes=10)
        assert state.consecutive_failures == 1
        assert state.status == SourceStatus.ACTIVE

    def test_backoff_grows_and_is_capped(self) -> None:
        collector = ScriptedCollector({"wsb": [_failure("wsb")] * 4})
        scheduler = _scheduler(
            [_source("wsb")],
            collector,
            failure_backoff_factor=2.0,
            max_backoff=timedelta(minutes=30),
        )
        delays = []
        for _ in range(4):
            scheduler.collect_all().wait()
            delays.append(scheduler.state("wsb").next_due_at - T0)
        assert delays == [
            timedelta(minutes=10),
            timedelta(minutes=20),
            timedelta(minutes=30),
            timedelta(minutes=30),
        ]

    def test_rate_limit_honours_retry_after(self) -> None:
        collector = ScriptedCollector({"wsb": [_failure("wsb", CollectErrorKind.RATE_LIMITED, retry_after=3600)]})
        scheduler = _scheduler([_source("wsb")], collector)
        scheduler.collect_all().wait()
        assert scheduler.state("wsb").next_due_at == T0 + timedelta(hours=1)

    def test_three_failures_suspend_and_success_clears(self) -> None:
        clock = FakeClock()
        collector = ScriptedCollector({"wsb": [_failure("wsb")] * 3})
        scheduler = _scheduler([_source("wsb")], collector, clock=clock)

        for expected_failures in (1, 2, 3):
            assert [s.id for s in scheduler.due()] == ["wsb"]
            scheduler.collect_due().wait()
            assert scheduler.state("wsb").consecutive_failures == expected_failures
            clock.advance(timedelta(minutes=10))

        assert scheduler.state("wsb").status == SourceStatus.SUSPENDED

        # Still scheduled while suspended; the next success clears it
        scheduler.collect_due().wait()
        state = scheduler.state("wsb")
        assert state.status == SourceStatus.ACTIVE
        assert state.consecutive_failures == 0
        assert collector.calls == ["wsb"] * 4

    def test_resume_clears_suspension_and_makes_source_due(self) -> None:
        collector = ScriptedCollector({"wsb": [_failure("wsb")] * 3})
        scheduler = _scheduler([_source("wsb")], collector)
        for _ in range(3):
            scheduler.collect_all().wait()

        state = scheduler.resume("wsb")

        assert state.status == SourceStatus.ACTIVE
        assert state.consecutive_failures == 0
        assert [s.id for s in scheduler.due()] == ["wsb"]

    def test_resume_unknown_source(self) -> None:
        scheduler = _scheduler([_source("wsb")], ScriptedCollector())
        with pytest.raises(UnknownSource):
            scheduler.resume("nope")

    def test_jitter_stays_within_bounds(self) -> None:
        scheduler = _scheduler(
            [_source("wsb")],
            ScriptedCollector(),
            jitter_seconds=30,
            rng=random.Random(7),
        )
        scheduler.collect_all().wait()
        offset = scheduler.state("wsb").next_due_at - (T0 + timedelta(minutes=10))
        assert timedelta(0) <= offset <= timedelta(seconds=30)


class TestRunForever:
    def test_ticks_until_stopped_and_survives_errors(self) -> None:
        scheduler = _scheduler([_source("wsb")], ScriptedCollector())
        stop_event = threading.Event()
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            if len(calls) >= 3:
                stop_event.set()

        scheduler.run_forever(tick, stop_event, interval_seconds=0.01)

        assert len(calls) == 3

    def test_invalid_cap(self) -> None:
        with pytest.raises(ValueError):
            _scheduler([_source("wsb")], ScriptedCollector(), max_concurrent_collections=0)
