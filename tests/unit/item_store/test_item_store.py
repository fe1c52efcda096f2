"""Tests for the item_store backends."""

from datetime import datetime, timezone, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from collect_sources.models import RawItem
from common.hashing import compute_fingerprint, generate_item_id
from item_store.memory import InMemoryItemStore
from item_store.models import ItemFilter, StoreUnavailable, UnknownItem
from item_store.sql import SqlItemStore
from source_registry.models import Category

NOW = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)


def _raw(title, source_id="wsb", category=Category.SOCIAL, ticker=None, published_at=None) -> RawItem:
    return RawItem(
        source_id=source_id,
        category=category,
        fingerprint=compute_fingerprint(title, published_at, ticker),
        title=title,
        ticker=ticker,
        published_at=published_at,
        extras={"score": 10},
    )


def _sqlite_store() -> SqlItemStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlItemStore(engine, clock=lambda: NOW)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryItemStore(clock=lambda: NOW)
    return _sqlite_store()


class TestInsertIfAbsent:
    def test_second_insert_of_same_key_is_rejected(self, store) -> None:
        item = _raw("GME squeeze")
        assert store.insert_if_absent("wsb", item.fingerprint, item) is True
        assert store.insert_if_absent("wsb", item.fingerprint, item) is False
        assert len(store.select_by_filter(ItemFilter())) == 1

    def test_same_fingerprint_from_other_source_is_new(self, store) -> None:
        item = _raw("GME squeeze")
        other = _raw("GME squeeze", source_id="stocktwits-trending")
        assert store.insert_if_absent("wsb", item.fingerprint, item)
        assert store.insert_if_absent("stocktwits-trending", other.fingerprint, other)

    def test_stored_item_fields(self, store) -> None:
        published = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        item = _raw("AAPL beats", ticker="AAPL", published_at=published)
        store.insert_if_absent("wsb", item.fingerprint, item)

        stored = store.get(generate_item_id("wsb", item.fingerprint))

        assert stored.title == "AAPL beats"
        assert stored.category == Category.SOCIAL
        assert stored.published_at == published
        assert stored.collected_at == NOW
        assert stored.extras == {"score": 10}
        assert stored.processed is False


class TestMarkProcessed:
    def test_processed_flag_is_monotonic(self, store) -> None:
        item = _raw("Fed holds")
        store.insert_if_absent("wsb", item.fingerprint, item)
        item_id = generate_item_id("wsb", item.fingerprint)

        assert store.mark_processed(item_id, {"summary": "first"}) is True
        assert store.mark_processed(item_id, {"summary": "second"}) is False

        stored = store.get(item_id)
        assert stored.processed is True
        assert stored.processed_at == NOW
        assert stored.enrichment == {"summary": "first"}

    def test_failure_after_processing_is_ignored(self, store) -> None:
        item = _raw("Fed holds")
        store.insert_if_absent("wsb", item.fingerprint, item)
        item_id = generate_item_id("wsb", item.fingerprint)
        store.mark_processed(item_id, {"summary": "ok"})

        store.record_failure(item_id, "late failure")

        stored = store.get(item_id)
        assert stored.processed is True
        assert stored.last_error is None

    def test_unknown_item_raises(self, store) -> None:
        with pytest.raises(UnknownItem):
            store.mark_processed("nope", {})


class TestRecordFailure:
    def test_counts_attempts_and_keeps_unprocessed(self, store) -> None:
        item = _raw("Rumor")
        store.insert_if_absent("wsb", item.fingerprint, item)
        item_id = generate_item_id("wsb", item.fingerprint)

        store.record_failure(item_id, "timeout")
        store.record_failure(item_id, "rate limited")

        stored = store.get(item_id)
        assert stored.attempts == 2
        assert stored.last_error == "rate limited"
        assert [i.id for i in store.select_unprocessed()] == [item_id]


class TestSelectByFilter:
    def test_filters(self, store) -> None:
        old = datetime(2023, 12, 1, tzinfo=timezone.utc)
        recent = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for item in [
            _raw("Apple news", source_id="cnbc", category=Category.NEWS, ticker="AAPL", published_at=recent),
            _raw("Apple old", source_id="cnbc", category=Category.NEWS, ticker="AAPL", published_at=old),
            _raw("Apple social", ticker="AAPL", published_at=recent),
            _raw("Tesla social", ticker="TSLA", published_at=recent),
        ]:
            store.insert_if_absent(item.source_id, item.fingerprint, item)

        assert len(store.select_by_filter(ItemFilter(ticker="aapl"))) == 3
        assert len(store.select_by_filter(ItemFilter(category=Category.NEWS))) == 2
        assert len(store.select_by_filter(ItemFilter(since=recent - timedelta(days=1)))) == 3
        assert len(store.select_unprocessed(Category.SOCIAL)) == 2
        assert len(store.select_by_filter(ItemFilter(source_id="cnbc"))) == 2


class TestSqlItemStoreErrors:
    def test_operational_errors_become_store_unavailable(self) -> None:
        store = _sqlite_store()
        with store._engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE intel_items")

        item = _raw("Anything")
        with pytest.raises(StoreUnavailable):
            store.insert_if_absent("wsb", item.fingerprint, item)
