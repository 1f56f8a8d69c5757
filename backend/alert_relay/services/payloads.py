"""Builders for per-endpoint push payloads.

Payloads are plain dicts in the FCM v1 JSON shape so the same record can be
logged, asserted on in tests and converted by any gateway. Every value in
the data block is a string.
"""
from datetime import datetime
from typing import Optional

ALERT_TITLE = "🔔 Stability Error Alert"
DEFAULT_CHANNEL_ID = "high_importance_channel_new"
DEFAULT_TTL_SECONDS = 3600
FLUTTER_CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


def _timestamp(now: Optional[datetime]) -> str:
    return (now or datetime.utcnow()).isoformat() + "Z"


def build_alert_payload(
    token: str,
    code: int,
    message: str,
    channel_id: str = DEFAULT_CHANNEL_ID,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: Optional[datetime] = None,
) -> dict:
    """Build the error alert payload for one endpoint."""
    body = f"Error {code}: {message}"
    return {
        "token": token,
        "notification": {
            "title": ALERT_TITLE,
            "body": body,
        },
        "data": {
            "errorCode": str(code),
            "errorMessage": message,
            "type": "error",
            "priority": "high",
            "timestamp": _timestamp(now),
        },
        "android": {
            "priority": "high",
            "ttl": ttl_seconds,
            "notification": {
                "channelId": channel_id,
                "sound": "default",
                "priority": "high",
                "defaultSound": True,
                "defaultVibrateTimings": True,
                "defaultLightSettings": True,
                "notificationCount": 1,
            },
        },
        "apns": {
            "payload": {
                "aps": {
                    "alert": {"title": ALERT_TITLE, "body": body},
                    "sound": "default",
                    "badge": 1,
                    "content-available": 1,
                    "interruption-level": "time-sensitive",
                },
            },
            "headers": {
                "apns-priority": "10",
                "apns-push-type": "alert",
            },
        },
    }


def build_announcement_payload(
    token: str,
    title: str,
    body: str,
    channel_id: str = DEFAULT_CHANNEL_ID,
    now: Optional[datetime] = None,
) -> dict:
    """Build an announcement payload for one endpoint."""
    return {
        "token": token,
        "notification": {
            "title": title,
            "body": body,
        },
        "data": {
            "type": "announcement",
            "timestamp": _timestamp(now),
            "click_action": FLUTTER_CLICK_ACTION,
        },
        "android": {
            "priority": "high",
            "notification": {
                "channelId": channel_id,
                "sound": "default",
                "priority": "high",
                "defaultSound": True,
                "defaultVibrateTimings": True,
            },
        },
        "apns": {
            "payload": {
                "aps": {
                    "alert": {"title": title, "body": body},
                    "sound": "default",
                    "badge": 1,
                    "content-available": 1,
                },
            },
        },
    }
