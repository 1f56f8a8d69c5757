"""Status processor - turns device status payloads into rate-limited alerts."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import MalformedPayloadError, TransientStoreError
from ..models import NOTIFICATION_LOCK_NAME, NotificationLock
from .dispatcher import DispatchReport, FanOutDispatcher
from .registry_store import RegistryStore

logger = logging.getLogger(__name__)

ERROR_CODES = {
    100: "Temperature Sensor Disconnected",
    200: "Humidity Sensor Error",
    201: "Humidity Sensor Over Range",
    300: "Steamer Sensor Error",
    400: "Chamber Overheat Warning",
    401: "Steamer Overheat Warning",
    500: "Over Humidity Warning",
    600: "SD Card Init Failed",
    601: "SD Card Open Failed",
    602: "SD Card Write Failed",
    700: "USB Not Ready",
    701: "USB Transfer Failed",
}

UNKNOWN_ERROR = "Unknown Error"


class RateLimitPolicy(str, Enum):
    """What to do when the cooldown lock cannot be consulted."""
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


def describe_error(code: int) -> str:
    return ERROR_CODES.get(code, UNKNOWN_ERROR)


def coerce_error_code(value: Any) -> Optional[int]:
    """Read an EVT value as an integer code, or None if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class StatusOutcome:
    """Result of processing one status payload."""
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    allowed: bool = False
    dispatch: Optional[DispatchReport] = None


class StatusProcessor:
    """Records every status payload and alerts on error codes at most once per cooldown."""

    def __init__(
        self,
        store: RegistryStore,
        dispatcher: FanOutDispatcher,
        cooldown_window_seconds: float = 10.0,
        policy: RateLimitPolicy = RateLimitPolicy.FAIL_OPEN,
        clock: Callable[[], int] = epoch_millis,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._cooldown_ms = int(cooldown_window_seconds * 1000)
        self._policy = RateLimitPolicy(policy)
        self._clock = clock

    async def should_send(self, code: int) -> bool:
        """Decide whether an alert for this code is due.

        The lock is claimed with one conditional UPDATE, so the check and the
        write are a single statement on every backend and concurrent callers
        admit at most one alert per code per cooldown window. The insert path
        only runs while the lock row does not exist yet.
        """
        now = self._clock()

        async def _decide(session: AsyncSession) -> bool:
            claim = (
                update(NotificationLock)
                .where(NotificationLock.name == NOTIFICATION_LOCK_NAME)
                .where(or_(
                    NotificationLock.last_error_code.is_(None),
                    NotificationLock.last_error_code != code,
                    NotificationLock.last_sent_at.is_(None),
                    NotificationLock.last_sent_at <= now - self._cooldown_ms,
                ))
                .values(last_error_code=code, last_sent_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(claim)
            if result.rowcount:
                return True

            lock = await session.get(NotificationLock, NOTIFICATION_LOCK_NAME)
            if lock is not None:
                return False

            # A concurrent first insert loses on the primary key and is retried
            session.add(NotificationLock(
                name=NOTIFICATION_LOCK_NAME,
                last_error_code=code,
                last_sent_at=now,
            ))
            return True

        try:
            return await self._store.run_transaction(_decide)
        except TransientStoreError as e:
            allow = self._policy is RateLimitPolicy.FAIL_OPEN
            logger.error(
                f"Error checking rate limit for {code}: {e} "
                f"({'allowing' if allow else 'blocking'} notification)"
            )
            return allow

    async def process_status(self, data: Any, source: Optional[str] = None) -> StatusOutcome:
        """Process one device status payload.

        Raises:
            MalformedPayloadError: the payload has no Stability key; nothing is written
        """
        if not isinstance(data, dict) or data.get("Stability") is None:
            raise MalformedPayloadError("Invalid data format")

        outcome = StatusOutcome()
        stability = data["Stability"]
        errors = stability.get("Errors") if isinstance(stability, dict) else None
        if isinstance(errors, dict):
            outcome.error_code = coerce_error_code(errors.get("EVT"))

        code = outcome.error_code
        if code is not None and code > 0:
            message = describe_error(code)
            outcome.error_message = message
            logger.info(f"Detected Error {code}: {message}")

            outcome.allowed = await self.should_send(code)
            if outcome.allowed:
                outcome.dispatch = await self._dispatcher.dispatch_alert(code, message)
            else:
                logger.info(f"Rate limit: notification for Error {code} was sent recently. Skipping.")

        await self._store.record_status(data, source=source or data.get("source"))
        return outcome
