"""Push gateway - batch delivery of payloads to device endpoints.

The dispatcher only depends on the PushGateway protocol. FcmPushGateway is
the production implementation; NoopPushGateway is selected at startup when
Firebase is not configured.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

import firebase_admin
from firebase_admin import exceptions, messaging

logger = logging.getLogger(__name__)

# FCM rejects send_each batches larger than this
FCM_MAX_BATCH_SIZE = 500


class ErrorKind(str, Enum):
    """Classification of a per-endpoint delivery failure."""
    UNREGISTERED = "unregistered"
    INVALID_TOKEN = "invalid_token"
    INVALID_ARGUMENT = "invalid_argument"
    SENDER_ID_MISMATCH = "sender_id_mismatch"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


# The endpoint will never accept a message again; its registration is removed
PERMANENT_ERROR_KINDS = frozenset({
    ErrorKind.UNREGISTERED,
    ErrorKind.INVALID_TOKEN,
    ErrorKind.INVALID_ARGUMENT,
})


@dataclass
class SendResult:
    """Outcome of one entry in a batch, aligned by index with the input."""
    success: bool
    error_kind: Optional[ErrorKind] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class PushGateway(Protocol):
    async def send_batch(self, messages: List[dict]) -> List[SendResult]:
        ...


def classify_error(error: Optional[BaseException]) -> ErrorKind:
    """Map a firebase-admin exception onto an ErrorKind."""
    if error is None:
        return ErrorKind.UNKNOWN
    if isinstance(error, messaging.UnregisteredError):
        return ErrorKind.UNREGISTERED
    if isinstance(error, messaging.SenderIdMismatchError):
        return ErrorKind.SENDER_ID_MISMATCH
    if isinstance(error, messaging.QuotaExceededError):
        return ErrorKind.QUOTA_EXCEEDED
    if isinstance(error, exceptions.InvalidArgumentError):
        if "registration token" in str(error).lower():
            return ErrorKind.INVALID_TOKEN
        return ErrorKind.INVALID_ARGUMENT
    if isinstance(error, exceptions.NotFoundError):
        return ErrorKind.UNREGISTERED
    if isinstance(error, (exceptions.UnavailableError, exceptions.DeadlineExceededError)):
        return ErrorKind.UNAVAILABLE
    if isinstance(error, exceptions.InternalError):
        return ErrorKind.INTERNAL
    return ErrorKind.UNKNOWN


def to_fcm_message(payload: dict) -> messaging.Message:
    """Convert a payload dict into a firebase-admin Message."""
    notification = payload.get("notification") or {}

    android_config = None
    android = payload.get("android")
    if android:
        hints = android.get("notification") or {}
        android_config = messaging.AndroidConfig(
            priority=android.get("priority"),
            ttl=android.get("ttl"),
            notification=messaging.AndroidNotification(
                channel_id=hints.get("channelId"),
                sound=hints.get("sound"),
                priority=hints.get("priority"),
                default_sound=hints.get("defaultSound"),
                default_vibrate_timings=hints.get("defaultVibrateTimings"),
                default_light_settings=hints.get("defaultLightSettings"),
                notification_count=hints.get("notificationCount"),
            ) if hints else None,
        )

    apns_config = None
    apns = payload.get("apns")
    if apns:
        aps = (apns.get("payload") or {}).get("aps") or {}
        alert = aps.get("alert") or {}
        # Keys without a dedicated Aps field, e.g. interruption-level
        custom = {
            key: value for key, value in aps.items()
            if key not in ("alert", "sound", "badge", "content-available")
        }
        apns_config = messaging.APNSConfig(
            headers=apns.get("headers"),
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=alert.get("title"), body=alert.get("body")),
                    sound=aps.get("sound"),
                    badge=aps.get("badge"),
                    content_available=bool(aps.get("content-available")),
                    custom_data=custom or None,
                ),
            ),
        )

    return messaging.Message(
        token=payload["token"],
        notification=messaging.Notification(
            title=notification.get("title"),
            body=notification.get("body"),
        ),
        data=payload.get("data"),
        android=android_config,
        apns=apns_config,
    )


class FcmPushGateway:
    """Delivers payloads through Firebase Cloud Messaging."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app

    async def send_batch(self, messages: List[dict]) -> List[SendResult]:
        results: List[SendResult] = []
        for start in range(0, len(messages), FCM_MAX_BATCH_SIZE):
            chunk = [to_fcm_message(m) for m in messages[start:start + FCM_MAX_BATCH_SIZE]]
            # send_each blocks on HTTP; keep it off the event loop
            response = await asyncio.to_thread(messaging.send_each, chunk, False, self._app)
            logger.info(
                f"FCM batch sent: {response.success_count} success, {response.failure_count} failure"
            )
            for resp in response.responses:
                if resp.success:
                    results.append(SendResult(success=True, message_id=resp.message_id))
                else:
                    results.append(SendResult(
                        success=False,
                        error_kind=classify_error(resp.exception),
                        error=str(resp.exception),
                    ))
        return results


class NoopPushGateway:
    """Stands in for FCM when no credentials are configured.

    Nothing is delivered and every entry reports UNAVAILABLE, so the
    dispatcher neither prunes nor refreshes any registration.
    """

    async def send_batch(self, messages: List[dict]) -> List[SendResult]:
        logger.warning(f"Push gateway not configured, dropping {len(messages)} messages")
        return [
            SendResult(success=False, error_kind=ErrorKind.UNAVAILABLE, error="gateway not configured")
            for _ in messages
        ]
