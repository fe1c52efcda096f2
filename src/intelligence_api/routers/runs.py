"""Pipeline run endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from intelligence_api.dependencies import get_pipeline
from intelligence_api.models import RunRequest, RunSnapshotResponse, RunStartedResponse
from pipeline_runs.models import InvalidTransition, RunAlreadyActive, UnknownRun
from pipeline_runs.service import IntelligencePipeline

router = APIRouter(prefix="/runs", tags=["runs"])


@router.post("", response_model=RunStartedResponse, status_code=status.HTTP_202_ACCEPTED)
def start_run(
    request: RunRequest,
    pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)],
):
    """Trigger a run. Progress is polled through GET /runs/{run_id}."""
    try:
        run_id = pipeline.start_run(request.mode, request.categories)
    except RunAlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return RunStartedResponse(run_id=run_id)


@router.get("/current", response_model=RunSnapshotResponse)
def current_run(pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    """Current state machine snapshot (Idle when no run is active)."""
    return RunSnapshotResponse(**pipeline.current_status().to_dict())


@router.post("/acknowledge", response_model=RunSnapshotResponse)
def acknowledge(pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    try:
        snapshot = pipeline.acknowledge()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return RunSnapshotResponse(**snapshot.to_dict())


@router.get("/{run_id}", response_model=RunSnapshotResponse)
def get_run(run_id: str, pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    try:
        snapshot = pipeline.get_run_status(run_id)
    except UnknownRun as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return RunSnapshotResponse(**snapshot.to_dict())
