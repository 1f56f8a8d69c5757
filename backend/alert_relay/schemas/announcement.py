"""Announcement schemas."""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class AnnouncementRequest(BaseModel):
    """Request to send an announcement to all devices or one token."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    body: Optional[str] = None
    target_token: Optional[str] = Field(default=None, alias="targetToken")


class AnnouncementStats(BaseModel):
    success: int
    failure: int


class AnnouncementResponse(BaseModel):
    message: str
    stats: AnnouncementStats
