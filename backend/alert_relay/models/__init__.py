"""Database models."""
from .endpoint_registration import EndpointRegistration
from .notification_lock import NotificationLock, NOTIFICATION_LOCK_NAME
from .device_status import DeviceStatus

__all__ = ["EndpointRegistration", "NotificationLock", "NOTIFICATION_LOCK_NAME", "DeviceStatus"]
