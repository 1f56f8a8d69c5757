"""Token registration schemas."""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class TokenRegisterRequest(BaseModel):
    """Request to register a device token for push notifications."""
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    platform: Optional[str] = None
    app_version: Optional[str] = Field(default=None, alias="appVersion")


class TokenRegisterResponse(BaseModel):
    """Response after registering a token."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    registered_at: str = Field(alias="registeredAt")


class TokenSummary(BaseModel):
    """A registration with its token truncated."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    token: str
    platform: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    last_used: Optional[str] = Field(default=None, alias="lastUsed")
    active: bool


class TokenListResponse(BaseModel):
    total: int
    tokens: List[TokenSummary]


class CleanupResponse(BaseModel):
    """Result of a duplicate token sweep."""
    model_config = ConfigDict(populate_by_name=True)

    total: int
    duplicates_removed: int = Field(alias="duplicatesRemoved")
