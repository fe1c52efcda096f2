"""Source registry endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from intelligence_api.dependencies import get_pipeline
from intelligence_api.models import SourceResponse
from pipeline_runs.service import IntelligencePipeline
from schedule_collection.models import SourceState
from source_registry.models import SourceDescriptor
from source_registry.registry import UnknownSource

router = APIRouter(prefix="/sources", tags=["sources"])


def _to_response(source: SourceDescriptor, state: SourceState) -> SourceResponse:
    return SourceResponse(
        id=source.id,
        name=source.name,
        category=source.category.value,
        tier=source.tier.value,
        fetch_kind=source.fetch_kind.value,
        enabled=source.enabled,
        cadence_seconds=source.effective_cadence.total_seconds(),
        status=state.status.value,
        consecutive_failures=state.consecutive_failures,
        in_flight=state.in_flight,
        last_run_end=state.last_run_end,
        next_due_at=state.next_due_at,
        last_error=state.last_error,
    )


@router.get("", response_model=list[SourceResponse])
def list_sources(
    pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)],
    category: Annotated[str | None, Query(description="Filter by category")] = None,
):
    try:
        statuses = pipeline.source_statuses(category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [_to_response(source, state) for source, state in statuses]


@router.post("/{source_id}/resume", response_model=SourceResponse)
def resume_source(source_id: str, pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    """Clear a suspension and make the source due immediately."""
    try:
        state = pipeline.resume_source(source_id)
    except UnknownSource as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _to_response(pipeline.registry.get(source_id), state)
