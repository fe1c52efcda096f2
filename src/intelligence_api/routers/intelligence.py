"""Aggregated intelligence endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from aggregate_intelligence.models import IntelligenceFilter
from common.serialization import serialize_dataclass
from intelligence_api.dependencies import get_pipeline
from intelligence_api.models import CollectionStatsResponse, IntelligenceResponse, ProcessResponse
from item_store.models import StoreUnavailable
from pipeline_runs.service import IntelligencePipeline
from source_registry.models import Category

router = APIRouter(tags=["intelligence"])


def _parse_category(value: str | None) -> Category | None:
    if value is None:
        return None
    try:
        return Category.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/intelligence", response_model=IntelligenceResponse)
def query_intelligence(
    pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)],
    category: Annotated[str | None, Query(description="Category, e.g. SOCIAL")] = None,
    ticker: Annotated[str | None, Query(description="Ticker symbol, e.g. AAPL")] = None,
    since: Annotated[datetime | None, Query(description="Only items at or after this time")] = None,
):
    """Stored items grouped by category, newest first."""
    result = pipeline.query_intelligence(
        IntelligenceFilter(category=_parse_category(category), ticker=ticker, since=since)
    )
    return IntelligenceResponse(**result.to_dict())


@router.get("/intelligence/stats", response_model=CollectionStatsResponse)
def collection_stats(pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    """Totals, unprocessed counts and last collection time."""
    return CollectionStatsResponse(**serialize_dataclass(pipeline.collection_stats()))


@router.post("/process", response_model=ProcessResponse)
def process_backlog(
    pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)],
    category: Annotated[str | None, Query(description="Only this category")] = None,
):
    """Analyze every unprocessed item (optionally one category) and wait for the results."""
    try:
        result = pipeline.process_backlog(_parse_category(category))
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return ProcessResponse(**serialize_dataclass(result))
