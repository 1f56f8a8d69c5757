"""NotificationLock model - cooldown state for error alerts."""
from sqlalchemy import BigInteger, Column, Integer, String

from ..database import Base

NOTIFICATION_LOCK_NAME = "notification_lock"


class NotificationLock(Base):
    """The most recently permitted alert. Singleton row, not a history."""

    __tablename__ = "notification_locks"

    name = Column(String, primary_key=True, default=NOTIFICATION_LOCK_NAME)
    last_error_code = Column(Integer, nullable=False)
    last_sent_at = Column(BigInteger, nullable=False)  # epoch milliseconds
