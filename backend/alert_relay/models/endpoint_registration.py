"""EndpointRegistration model - binds a device to its push delivery token."""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, String

from ..database import Base


class EndpointRegistration(Base):
    """Registered endpoint for push notifications.

    One row per registration id. The id is the device id when the app
    supplies one, otherwise the delivery token itself.
    """

    __tablename__ = "endpoint_registrations"

    registration_id = Column(String, primary_key=True)
    delivery_token = Column(String, nullable=False, index=True)
    device_id = Column(String, nullable=True, index=True)
    platform = Column(String, default="android")  # android, ios
    app_version = Column(String, default="1.0.0")
    created_at = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow)
    last_used = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True)
