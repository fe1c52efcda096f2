"""API Pydantic models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pipeline_runs.models import RunMode


class RunRequest(BaseModel):
    """Body of a run trigger."""

    mode: RunMode = RunMode.MANUAL
    categories: list[str] = Field(default_factory=list)


class RunStartedResponse(BaseModel):
    run_id: str


class RunSnapshotResponse(BaseModel):
    """One published stage of a pipeline run."""

    stage: str
    run_id: str | None = None
    mode: str | None = None
    categories: list[str] = Field(default_factory=list)
    collected: int = 0
    stored: int = 0
    duplicates: int = 0
    processed_count: int = 0
    source_failures: int = 0
    analysis_failures: int = 0
    suspended_sources: list[str] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


class IntelligenceItemResponse(BaseModel):
    id: str
    source_id: str
    category: str
    title: str
    body: str | None = None
    url: str | None = None
    ticker: str | None = None
    published_at: datetime | None = None
    collected_at: datetime
    processed: bool
    processed_at: datetime | None = None
    enrichment: dict[str, Any] | None = None
    extras: dict[str, Any] = Field(default_factory=dict)


class IntelligenceResponse(BaseModel):
    """Items grouped by lowercase category name, newest first."""

    buckets: dict[str, list[IntelligenceItemResponse]]
    total: int


class CategoryStatsResponse(BaseModel):
    total: int
    unprocessed: int


class CollectionStatsResponse(BaseModel):
    total_items: int
    unprocessed_items: int
    last_collection: datetime | None = None
    categories: dict[str, CategoryStatsResponse] = Field(default_factory=dict)


class ProcessResponse(BaseModel):
    submitted: int
    succeeded: int
    failed: int
    pending: int
    failures: dict[str, str] = Field(default_factory=dict)


class SourceResponse(BaseModel):
    """A registry entry with its scheduler status."""

    id: str
    name: str
    category: str
    tier: str
    fetch_kind: str
    enabled: bool
    cadence_seconds: float
    status: str
    consecutive_failures: int
    in_flight: bool
    last_run_end: datetime | None = None
    next_due_at: datetime | None = None
    last_error: str | None = None
