"""DeviceStatus model - raw audit trail of inbound status payloads."""
from datetime import datetime
from sqlalchemy import JSON, Column, DateTime, Integer, String

from ..database import Base


class DeviceStatus(Base):
    """Inbound status payload, written once per event whether or not it alerts."""

    __tablename__ = "device_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payload = Column(JSON, nullable=False)
    source = Column(String, nullable=True)  # RTDB_LISTENER, http
    received_at = Column(DateTime, default=datetime.utcnow)
