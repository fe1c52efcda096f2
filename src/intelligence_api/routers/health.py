"""Health check endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from intelligence_api.dependencies import get_pipeline
from pipeline_runs.service import IntelligencePipeline

router = APIRouter(tags=["health"])


@router.get("/health")
def health(pipeline: Annotated[IntelligencePipeline, Depends(get_pipeline)]):
    return {
        "status": "ok",
        "stage": pipeline.current_status().stage.value,
        "sources": len(pipeline.registry),
    }
