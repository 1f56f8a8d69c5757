"""Registration hygiene - token upserts and duplicate cleanup."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import ValidationError
from ..models import EndpointRegistration
from ..utils import mask_token
from .registry_store import RegistryStore, registration_summary
from .tasks import PendingTask, TaskOutcome, run_tasks

logger = logging.getLogger(__name__)

# Marker present in well-formed FCM registration tokens
FCM_TOKEN_MARKER = "APA91b"


@dataclass
class RegistrationResult:
    registration: EndpointRegistration
    superseded: List[TaskOutcome] = field(default_factory=list)


@dataclass
class CleanupReport:
    total: int = 0
    duplicates_removed: int = 0
    removed_ids: List[str] = field(default_factory=list)


class RegistrationService:
    """Keeps one registration per device and one per delivery token."""

    def __init__(self, store: RegistryStore):
        self._store = store

    async def register_token(
        self,
        token: Optional[str],
        device_id: Optional[str] = None,
        platform: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> RegistrationResult:
        """Upsert a registration keyed by device id, or by the token without one.

        Older registrations for the same device, or carrying the same token
        under another id, are deleted.

        Raises:
            ValidationError: token is missing
        """
        if not token:
            raise ValidationError("Token is required")

        if FCM_TOKEN_MARKER not in token:
            # Logged only; some valid tokens use other formats
            logger.warning(f"Suspicious token format: {mask_token(token, 50)}")

        registration_id = device_id or token

        stale = {}
        if device_id:
            for existing in await self._store.find_by_device(device_id):
                if existing.registration_id != registration_id:
                    stale[existing.registration_id] = existing
        legacy = await self._store.get_registration(token)
        if legacy is not None and legacy.registration_id != registration_id:
            stale[legacy.registration_id] = legacy

        superseded: List[TaskOutcome] = []
        if stale:
            tasks: List[PendingTask] = [
                ("delete", rid, self._delete_call(rid)) for rid in stale
            ]
            superseded = await run_tasks(tasks)
            removed = sum(1 for o in superseded if o.success)
            logger.info(f"Deleted {removed} old tokens for device {device_id or 'unknown'}")

        registration = await self._store.upsert_registration(
            registration_id,
            token,
            device_id=device_id,
            platform=platform,
            app_version=app_version,
        )
        logger.info(f"Token registered: {mask_token(token, 30)}")
        return RegistrationResult(registration=registration, superseded=superseded)

    def _delete_call(self, registration_id: str):
        return lambda: self._store.delete_registration(registration_id)

    async def clean_duplicate_tokens(self) -> CleanupReport:
        """Delete every registration whose token was already seen, keeping the oldest."""
        registrations = await self._store.list_registrations()
        report = CleanupReport(total=len(registrations))

        seen = {}
        duplicates: List[str] = []
        for registration in registrations:
            token = registration.delivery_token
            if not token:
                continue
            if token in seen:
                duplicates.append(registration.registration_id)
                logger.info(
                    f"Found duplicate for token {mask_token(token, 15)} -> {mask_token(registration.registration_id)}"
                )
            else:
                seen[token] = registration.registration_id

        logger.info(f"Total tokens: {report.total}, duplicates found: {len(duplicates)}")
        if duplicates:
            report.duplicates_removed = await self._store.delete_registrations(duplicates)
            report.removed_ids = duplicates
        return report

    async def list_token_summaries(self) -> List[dict]:
        """Describe every registration with its token truncated."""
        return [registration_summary(r) for r in await self._store.list_registrations()]
