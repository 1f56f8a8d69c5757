"""Token registration API endpoints for push notifications."""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from ..dependencies import get_pipeline
from ..schemas.registration import (
    CleanupResponse,
    TokenListResponse,
    TokenRegisterRequest,
    TokenRegisterResponse,
    TokenSummary,
)
from ..services.pipeline import AlertPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tokens"])


@router.post("/register-token", response_model=TokenRegisterResponse)
async def register_token(
    request: TokenRegisterRequest,
    pipeline: AlertPipeline = Depends(get_pipeline),
):
    """Register a device token for push notifications.

    The app calls this on every launch. A device id keeps one registration
    per device across token refreshes.
    """
    await pipeline.registration.register_token(
        request.token,
        device_id=request.device_id,
        platform=request.platform,
        app_version=request.app_version,
    )
    return TokenRegisterResponse(
        message="Token registered successfully",
        registered_at=datetime.utcnow().isoformat() + "Z",
    )


@router.get("/tokens", response_model=TokenListResponse)
async def list_tokens(pipeline: AlertPipeline = Depends(get_pipeline)):
    """List registered tokens, truncated (for admin checks)."""
    summaries = await pipeline.registration.list_token_summaries()
    return TokenListResponse(
        total=len(summaries),
        tokens=[TokenSummary(**summary) for summary in summaries],
    )


@router.post("/tokens/cleanup", response_model=CleanupResponse)
async def cleanup_duplicate_tokens(pipeline: AlertPipeline = Depends(get_pipeline)):
    """Delete registrations that repeat an already registered token."""
    report = await pipeline.registration.clean_duplicate_tokens()
    return CleanupResponse(total=report.total, duplicates_removed=report.duplicates_removed)
