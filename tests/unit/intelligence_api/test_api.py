"""Tests for the intelligence_api FastAPI app."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from collect_sources.collect import Collector
from intelligence_api.dependencies import get_pipeline
from intelligence_api.main import app
from item_store.memory import InMemoryItemStore
from item_store.models import StoreUnavailable
from pipeline_runs.config import PipelineConfig, PipelineSettings
from pipeline_runs.service import IntelligencePipeline
from source_registry.models import Category, FetchKind, PriorityTier, SourceDescriptor
from source_registry.registry import SourceRegistry

WSB = SourceDescriptor(
    id="wsb",
    name="r/wallstreetbets",
    category=Category.SOCIAL,
    tier=PriorityTier.HIGH,
    fetch_kind=FetchKind.API,
    fetch_params={"url": "https://www.reddit.com/r/wallstreetbets/new.json"},
    cadence=timedelta(minutes=30),
)


class FakeClient:
    def __init__(self, titles=(), release: threading.Event | None = None):
        self.titles = list(titles)
        self.release = release

    def fetch(self, params, since=None):
        if self.release is not None:
            self.release.wait(5)
        titles, self.titles = self.titles, []
        return [{"title": title} for title in titles]


class FakeEngine:
    def analyze(self, item):
        return {"summary": item.title, "sentiment": "neutral", "impact": "low", "tickers": []}


def _pipeline(client: FakeClient, store=None, auto_reset: bool = True) -> IntelligencePipeline:
    return IntelligencePipeline(
        registry=SourceRegistry([WSB]),
        store=store if store is not None else InMemoryItemStore(),
        engine=FakeEngine(),
        collector=Collector({FetchKind.API: client}),
        config=PipelineConfig(pipeline=PipelineSettings(auto_reset=auto_reset)),
    )


@pytest.fixture
def make_client():
    pipelines = []

    def build(pipeline: IntelligencePipeline) -> TestClient:
        pipelines.append(pipeline)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()
    for pipeline in pipelines:
        pipeline.shutdown()


class TestRuns:
    def test_trigger_and_poll(self, make_client) -> None:
        pipeline = _pipeline(FakeClient(["$AAPL calls", "Tesla puts"]))
        client = make_client(pipeline)

        response = client.post("/runs", json={"categories": ["social"]})
        assert response.status_code == 202
        run_id = response.json()["run_id"]

        pipeline.wait_for_run(run_id, timeout=10)
        body = client.get(f"/runs/{run_id}").json()
        assert body["stage"] == "Complete"
        assert body["stored"] == 2
        assert body["processed_count"] == 2
        assert body["categories"] == ["SOCIAL"]

    def test_conflict_while_active(self, make_client) -> None:
        release = threading.Event()
        pipeline = _pipeline(FakeClient(["one"], release=release))
        client = make_client(pipeline)

        run_id = client.post("/runs", json={}).json()["run_id"]
        assert client.post("/runs", json={}).status_code == 409
        assert client.get("/runs/current").json()["run_id"] == run_id

        release.set()
        pipeline.wait_for_run(run_id, timeout=10)

    def test_bad_category(self, make_client) -> None:
        client = make_client(_pipeline(FakeClient()))
        assert client.post("/runs", json={"categories": ["bogus"]}).status_code == 400

    def test_unknown_run(self, make_client) -> None:
        client = make_client(_pipeline(FakeClient()))
        assert client.get("/runs/nope").status_code == 404

    def test_acknowledge(self, make_client) -> None:
        pipeline = _pipeline(FakeClient(["one"]), auto_reset=False)
        client = make_client(pipeline)
        pipeline.run_once(timeout=10)
        assert client.get("/runs/current").json()["stage"] == "Complete"

        response = client.post("/runs/acknowledge")

        assert response.status_code == 200
        assert response.json()["stage"] == "Idle"


class TestIntelligence:
    def test_query_by_ticker(self, make_client) -> None:
        pipeline = _pipeline(FakeClient(["$AAPL calls", "Tesla puts"]))
        client = make_client(pipeline)
        pipeline.run_once(timeout=10)

        body = client.get("/intelligence", params={"ticker": "aapl"}).json()

        assert body["total"] == 1
        [item] = body["buckets"]["social"]
        assert item["ticker"] == "AAPL"
        assert item["processed"] is True
        assert item["enrichment"]["summary"] == "$AAPL calls"

    def test_bad_category(self, make_client) -> None:
        client = make_client(_pipeline(FakeClient()))
        assert client.get("/intelligence", params={"category": "bogus"}).status_code == 400

    def test_stats(self, make_client) -> None:
        pipeline = _pipeline(FakeClient(["one"]))
        client = make_client(pipeline)
        pipeline.run_once(timeout=10)

        body = client.get("/intelligence/stats").json()

        assert body["total_items"] == 1
        assert body["categories"]["social"] == {"total": 1, "unprocessed": 0}

    def test_process_store_unavailable(self, make_client) -> None:
        class BrokenStore(InMemoryItemStore):
            def select_by_filter(self, item_filter):
                raise StoreUnavailable("db down")

        client = make_client(_pipeline(FakeClient(), store=BrokenStore()))
        assert client.post("/process").status_code == 503

    def test_process_empty_backlog(self, make_client) -> None:
        client = make_client(_pipeline(FakeClient()))
        body = client.post("/process", params={"category": "social"}).json()
        assert body["submitted"] == 0


class TestSources:
    def test_list_and_resume(self, make_client) -> None:
        client = make_client(_pipeline(FakeClient()))

        [source] = client.get("/sources").json()
        assert source["id"] == "wsb"
        assert source["status"] == "active"
        assert source["cadence_seconds"] == 1800

        assert client.get("/sources", params={"category": "bogus"}).status_code == 400
        assert client.post("/sources/wsb/resume").status_code == 200
        assert client.post("/sources/nope/resume").status_code == 404

    def test_health(self, make_client) -> None:
        body = make_client(_pipeline(FakeClient())).get("/health").json()
        assert body == {"status": "ok", "stage": "Idle", "sources": 1}
