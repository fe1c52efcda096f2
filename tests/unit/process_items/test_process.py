"""Tests for process_items.process and process_items.analysis modules."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from collect_sources.models import RawItem
from item_store.memory import InMemoryItemStore
from item_store.models import ItemFilter, StoreUnavailable
from process_items.analysis import (
    AnalysisError,
    OpenAIAnalysisEngine,
    _format_item_for_prompt,
    parse_enrichment,
)
from process_items.process import ProcessingStage
from source_registry.models import Category

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _raw(title: str, category: Category = Category.SOCIAL) -> RawItem:
    return RawItem(source_id="wsb", category=category, fingerprint=f"fp-{title}", title=title)


def _store_with(*raws: RawItem) -> InMemoryItemStore:
    store = InMemoryItemStore(clock=lambda: NOW)
    for raw in raws:
        store.insert_if_absent(raw.source_id, raw.fingerprint, raw)
    return store


class FakeEngine:
    """Fails any item whose title starts with 'bad'."""

    def __init__(self, block: threading.Event | None = None):
        self.block = block
        self.seen = []

    def analyze(self, item):
        self.seen.append(item.id)
        if self.block is not None:
            self.block.wait(5)
        if item.title.startswith("bad"):
            raise AnalysisError("model refused")
        return {"summary": item.title.upper(), "sentiment": "neutral", "impact": "low", "tickers": []}


class TestProcessingStage:
    def test_processes_and_records_failures(self) -> None:
        store = _store_with(_raw("good one"), _raw("bad one"), _raw("good two"))
        stage = ProcessingStage(store, FakeEngine(), max_concurrent_analyses=2)

        result = stage.process_batch()

        assert result.submitted == 3
        assert result.succeeded == 2
        assert result.failed == 1
        assert list(result.failures.values()) == ["model refused"]

        unprocessed = store.select_unprocessed()
        assert [item.title for item in unprocessed] == ["bad one"]
        assert unprocessed[0].attempts == 1
        assert unprocessed[0].last_error == "model refused"
        stage.shutdown()

    def test_enrichment_is_stored(self) -> None:
        store = _store_with(_raw("good one"))
        stage = ProcessingStage(store, FakeEngine())
        stage.process_batch()

        assert store.select_unprocessed() == []
        stored = store.select_by_filter(ItemFilter(processed=True))[0]
        assert stored.processed
        assert stored.enrichment["summary"] == "GOOD ONE"
        assert stored.processed_at == NOW
        stage.shutdown()

    def test_unexpected_engine_error_counts_as_failure(self) -> None:
        engine = MagicMock()
        engine.analyze.side_effect = RuntimeError("kaboom")
        store = _store_with(_raw("one"))
        stage = ProcessingStage(store, engine)

        result = stage.process_batch()

        assert result.failed == 1
        assert "RuntimeError" in next(iter(result.failures.values()))
        stage.shutdown()

    def test_category_filter(self) -> None:
        store = _store_with(_raw("social"), _raw("news", Category.NEWS))
        engine = FakeEngine()
        stage = ProcessingStage(store, engine)

        result = stage.process_batch(Category.NEWS)

        assert result.succeeded == 1
        assert [item.title for item in store.select_unprocessed()] == ["social"]
        stage.shutdown()

    def test_processed_items_are_not_resubmitted(self) -> None:
        store = _store_with(_raw("good one"))
        engine = FakeEngine()
        stage = ProcessingStage(store, engine)
        items = store.select_unprocessed()
        stage.process_items(items)

        refreshed = store.get_many([item.id for item in items])
        assert stage.submit(refreshed).item_ids == []
        assert len(engine.seen) == 1
        stage.shutdown()

    def test_timeout_leaves_items_pending(self) -> None:
        release = threading.Event()
        store = _store_with(_raw("slow one"), _raw("slow two"))
        stage = ProcessingStage(store, FakeEngine(block=release), max_concurrent_analyses=1)

        result = stage.process_batch(timeout=0.1)

        assert result.pending == 2
        assert result.succeeded == 0
        release.set()
        stage.shutdown(wait=True)

    def test_store_failure_propagates(self) -> None:
        class BrokenStore(InMemoryItemStore):
            def mark_processed(self, item_id, enrichment):
                raise StoreUnavailable("db down")

        store = BrokenStore(clock=lambda: NOW)
        raw = _raw("good one")
        store.insert_if_absent(raw.source_id, raw.fingerprint, raw)
        stage = ProcessingStage(store, FakeEngine())

        with pytest.raises(StoreUnavailable):
            stage.process_batch()
        stage.shutdown()

    def test_invalid_pool_size(self) -> None:
        with pytest.raises(ValueError):
            ProcessingStage(InMemoryItemStore(), FakeEngine(), max_concurrent_analyses=0)


class TestParseEnrichment:
    def test_normalizes_fields(self) -> None:
        content = json.dumps({
            "summary": "Apple beats estimates",
            "sentiment": "BULLISH",
            "impact": "extreme",
            "tickers": ["$aapl", " msft ", "AAPL", ""],
        })
        assert parse_enrichment(content) == {
            "summary": "Apple beats estimates",
            "sentiment": "bullish",
            "impact": "low",
            "tickers": ["AAPL", "MSFT"],
        }

    @pytest.mark.parametrize("content", [None, "", "not json", json.dumps({"sentiment": "bullish"})])
    def test_rejects_bad_answers(self, content) -> None:
        with pytest.raises(AnalysisError):
            parse_enrichment(content)


class TestOpenAIAnalysisEngine:
    def _item(self):
        store = _store_with(RawItem(
            source_id="wsb", category=Category.SOCIAL, fingerprint="fp", title="AAPL to the moon",
            body="Calls everywhere", ticker="AAPL",
        ))
        return store.select_unprocessed()[0]

    def test_calls_chat_completion(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content=json.dumps({
                "summary": "Retail is bullish on Apple",
                "sentiment": "bullish",
                "impact": "medium",
                "tickers": ["AAPL"],
            })))
        ]
        engine = OpenAIAnalysisEngine(model="test-model", client=client)

        enrichment = engine.analyze(self._item())

        assert enrichment["sentiment"] == "bullish"
        assert enrichment["model"] == "test-model"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "AAPL to the moon" in kwargs["messages"][1]["content"]

    def test_api_error_becomes_analysis_error(self) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = OpenAIError("quota exceeded")
        engine = OpenAIAnalysisEngine(client=client)

        with pytest.raises(AnalysisError, match="quota exceeded"):
            engine.analyze(self._item())

    def test_prompt_includes_known_ticker(self) -> None:
        prompt = _format_item_for_prompt(self._item())
        assert "Known ticker: AAPL" in prompt
        assert "Category: SOCIAL" in prompt
