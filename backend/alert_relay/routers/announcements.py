"""Announcement API endpoints."""
import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_pipeline
from ..schemas.announcement import AnnouncementRequest, AnnouncementResponse, AnnouncementStats
from ..services.pipeline import AlertPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["announcements"])


@router.post("/announcement", response_model=AnnouncementResponse)
async def send_announcement(
    request: AnnouncementRequest,
    pipeline: AlertPipeline = Depends(get_pipeline),
):
    """Send an announcement to every registered device, or to targetToken only."""
    report = await pipeline.dispatcher.send_announcement(
        request.title,
        request.body,
        target_token=request.target_token,
    )
    logger.info(
        f"Announcement sent: {report.success_count} success, {report.failure_count} failure"
    )
    return AnnouncementResponse(
        message="Announcement processing complete",
        stats=AnnouncementStats(success=report.success_count, failure=report.failure_count),
    )
