"""Pydantic schemas for API request/response models."""
from .registration import (
    TokenRegisterRequest,
    TokenRegisterResponse,
    TokenSummary,
    TokenListResponse,
    CleanupResponse,
)
from .announcement import (
    AnnouncementRequest,
    AnnouncementResponse,
    AnnouncementStats,
)
from .status import StatusProcessedResponse

__all__ = [
    "TokenRegisterRequest",
    "TokenRegisterResponse",
    "TokenSummary",
    "TokenListResponse",
    "CleanupResponse",
    "AnnouncementRequest",
    "AnnouncementResponse",
    "AnnouncementStats",
    "StatusProcessedResponse",
]
