"""Registry store - endpoint registrations, cooldown lock and raw status records.

Every call opens its own session so concurrent dispatches never share
state. Registration writes are last-writer-wins and idempotent; only the
cooldown lock is mutated inside a transaction.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import TransientStoreError
from ..models import DeviceStatus, EndpointRegistration
from ..utils import mask_token
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attempts for a transaction that loses an insert race on the singleton lock
MAX_TRANSACTION_ATTEMPTS = 3


class RegistryStore:
    """Async access to the durable registry tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Registry store call failed: {e}") from e

    async def list_registrations(self) -> List[EndpointRegistration]:
        """Load every registration, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(EndpointRegistration).order_by(
                    EndpointRegistration.created_at, EndpointRegistration.registration_id
                )
            )
            return list(result.scalars().all())

    async def get_registration(self, registration_id: str) -> Optional[EndpointRegistration]:
        async with self._session() as session:
            return await session.get(EndpointRegistration, registration_id)

    async def find_by_device(self, device_id: str) -> List[EndpointRegistration]:
        async with self._session() as session:
            result = await session.execute(
                select(EndpointRegistration).where(EndpointRegistration.device_id == device_id)
            )
            return list(result.scalars().all())

    async def upsert_registration(
        self,
        registration_id: str,
        delivery_token: str,
        device_id: Optional[str] = None,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> EndpointRegistration:
        """Create or merge a registration.

        Fields left as None keep their stored value on update and fall back
        to the column default on creation. created_at never changes once set.
        """
        now = datetime.utcnow()

        async def _write() -> EndpointRegistration:
            async with self._session_factory() as session:
                registration = await session.get(EndpointRegistration, registration_id)
                if registration is None:
                    registration = EndpointRegistration(
                        registration_id=registration_id,
                        delivery_token=delivery_token,
                        device_id=device_id,
                        platform=platform or "android",
                        app_version=app_version or "1.0.0",
                        created_at=now,
                        last_updated=now,
                        active=True,
                    )
                    session.add(registration)
                else:
                    registration.delivery_token = delivery_token
                    if device_id is not None:
                        registration.device_id = device_id
                    if platform is not None:
                        registration.platform = platform
                    if app_version is not None:
                        registration.app_version = app_version
                    registration.last_updated = now
                    registration.active = True
                await session.commit()
                await session.refresh(registration)
                return registration

        try:
            return await retry_on_lock(_write)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Registry store call failed: {e}") from e

    async def delete_registration(self, registration_id: str) -> bool:
        """Delete a registration if it exists. Returns True if a row was removed."""
        async with self._session() as session:
            result = await session.execute(
                delete(EndpointRegistration).where(
                    EndpointRegistration.registration_id == registration_id
                )
            )
            await retry_on_lock(session.commit)
            return result.rowcount > 0

    async def delete_registrations(self, registration_ids: Iterable[str]) -> int:
        """Delete several registrations in one batch."""
        ids = list(registration_ids)
        if not ids:
            return 0
        async with self._session() as session:
            result = await session.execute(
                delete(EndpointRegistration).where(
                    EndpointRegistration.registration_id.in_(ids)
                )
            )
            await retry_on_lock(session.commit)
            return result.rowcount

    async def mark_delivered(self, registration_id: str, at: Optional[datetime] = None) -> bool:
        """Refresh liveness after a successful delivery. Missing rows are left missing."""
        async with self._session() as session:
            registration = await session.get(EndpointRegistration, registration_id)
            if registration is None:
                return False
            registration.last_used = at or datetime.utcnow()
            registration.active = True
            await retry_on_lock(session.commit)
            return True

    async def record_status(self, payload: dict, source: Optional[str] = None) -> DeviceStatus:
        """Append a raw status record."""
        async with self._session() as session:
            record = DeviceStatus(payload=payload, source=source, received_at=datetime.utcnow())
            session.add(record)
            await retry_on_lock(session.commit)
            return record

    async def run_transaction(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run fn inside a single transaction, retrying on conflicts.

        fn writes through the session it is given and should claim rows with
        conditional UPDATE statements rather than read-then-write, since
        SQLite has no row locks. The transaction commits when fn returns. A
        lost race on inserting a new row is retried so fn sees the winner's
        row on the next attempt.
        """

        async def _attempt() -> T:
            async with self._session_factory() as session:
                async with session.begin():
                    return await fn(session)

        last_error: Optional[Exception] = None
        for attempt in range(MAX_TRANSACTION_ATTEMPTS):
            try:
                return await retry_on_lock(_attempt)
            except IntegrityError as e:
                last_error = e
                logger.warning(
                    f"Transaction conflict, retrying (attempt {attempt + 1}/{MAX_TRANSACTION_ATTEMPTS})"
                )
            except SQLAlchemyError as e:
                raise TransientStoreError(f"Transaction failed: {e}") from e
        raise TransientStoreError(f"Transaction failed after retries: {last_error}") from last_error


def registration_summary(registration: EndpointRegistration) -> dict[str, Any]:
    """Describe a registration without exposing its full token."""
    token = registration.delivery_token
    return {
        "id": registration.registration_id,
        "token": mask_token(token, 20) if token else "INVALID",
        "platform": registration.platform,
        "createdAt": registration.created_at.isoformat() if registration.created_at else None,
        "lastUsed": registration.last_used.isoformat() if registration.last_used else None,
        "active": bool(registration.active),
    }
