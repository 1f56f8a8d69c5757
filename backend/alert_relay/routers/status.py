"""Device status ingestion API."""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..dependencies import get_pipeline
from ..schemas.status import StatusProcessedResponse
from ..services.pipeline import AlertPipeline

router = APIRouter(prefix="/api", tags=["status"])


@router.post("/status", response_model=StatusProcessedResponse)
async def update_status(
    data: Dict[str, Any] = Body(...),
    pipeline: AlertPipeline = Depends(get_pipeline),
):
    """Ingest a device status payload; alerts on error codes past the cooldown."""
    await pipeline.processor.process_status(data, source="http")
    return StatusProcessedResponse()
