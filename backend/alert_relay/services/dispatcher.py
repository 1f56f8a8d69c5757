"""Fan-out dispatcher - delivers alerts and announcements to every endpoint.

A dispatch loads the registry, drops implausible and duplicate tokens,
sends one batch through the push gateway and then reconciles the registry
against the per-endpoint results.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from ..errors import NotFoundError, TransientStoreError, ValidationError
from .gateway import PERMANENT_ERROR_KINDS, PushGateway, SendResult
from .payloads import (
    DEFAULT_CHANNEL_ID,
    DEFAULT_TTL_SECONDS,
    build_alert_payload,
    build_announcement_payload,
)
from .registry_store import RegistryStore
from ..utils import mask_token
from .tasks import PendingTask, TaskOutcome, run_tasks

logger = logging.getLogger(__name__)


@dataclass
class Target:
    """A token to deliver to. registration_id is None for ad-hoc targets."""
    token: str
    registration_id: Optional[str] = None


@dataclass
class DispatchReport:
    """What a single dispatch did."""
    attempted: int = 0
    success_count: int = 0
    failure_count: int = 0
    invalid_removed: List[str] = field(default_factory=list)
    duplicates_skipped: List[str] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    refreshed: List[str] = field(default_factory=list)
    outcomes: List[TaskOutcome] = field(default_factory=list)
    gateway_error: Optional[str] = None


class FanOutDispatcher:
    """Sends one payload per registered endpoint and keeps the registry clean."""

    def __init__(
        self,
        store: RegistryStore,
        gateway: PushGateway,
        token_min_length: int = 100,
        token_separator: str = ":",
        gateway_timeout_seconds: float = 30.0,
        channel_id: str = DEFAULT_CHANNEL_ID,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._token_min_length = token_min_length
        self._token_separator = token_separator
        self._gateway_timeout = gateway_timeout_seconds
        self._channel_id = channel_id
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def is_plausible_token(self, token: Optional[str]) -> bool:
        """Check the token looks like something the gateway could accept."""
        return (
            isinstance(token, str)
            and len(token) > self._token_min_length
            and self._token_separator in token
        )

    async def _collect_targets(self, report: DispatchReport) -> List[Target]:
        """Load deliverable targets, deleting registrations with corrupt tokens.

        A store failure yields no targets; the dispatch is abandoned.
        """
        try:
            registrations = await self._store.list_registrations()
        except TransientStoreError as e:
            logger.error(f"Failed to load registrations: {e}")
            return []

        targets: List[Target] = []
        seen_tokens = set()
        invalid: List[str] = []

        for registration in registrations:
            token = registration.delivery_token
            if not self.is_plausible_token(token):
                logger.warning(f"Invalid token format, length: {len(token) if token else 0}")
                invalid.append(registration.registration_id)
                continue
            if token in seen_tokens:
                logger.info(
                    f"Skipping duplicate token found in registration "
                    f"{mask_token(registration.registration_id)}"
                )
                report.duplicates_skipped.append(registration.registration_id)
                continue
            seen_tokens.add(token)
            targets.append(Target(token=token, registration_id=registration.registration_id))

        if invalid:
            logger.info(f"Removing {len(invalid)} invalid tokens...")
            tasks: List[PendingTask] = [
                ("delete", registration_id, self._delete_call(registration_id))
                for registration_id in invalid
            ]
            outcomes = await run_tasks(tasks)
            report.outcomes.extend(outcomes)
            report.invalid_removed.extend(o.registration_id for o in outcomes if o.success)

        return targets

    def _delete_call(self, registration_id: str):
        return lambda: self._store.delete_registration(registration_id)

    def _refresh_call(self, registration_id: str, at: datetime):
        return lambda: self._store.mark_delivered(registration_id, at)

    async def _deliver(
        self,
        targets: List[Target],
        messages: List[dict],
        report: DispatchReport,
    ) -> None:
        """Send one batch and reconcile the registry with its results."""
        report.attempted = len(messages)
        logger.info(f"Sending {len(messages)} messages...")

        try:
            results: List[SendResult] = await asyncio.wait_for(
                self._gateway.send_batch(messages),
                timeout=self._gateway_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Push gateway timed out after {self._gateway_timeout}s")
            report.gateway_error = "timeout"
            report.failure_count = len(messages)
            return
        except Exception as e:
            logger.error(f"Error sending notifications: {e}")
            report.gateway_error = str(e)
            report.failure_count = len(messages)
            return

        if len(results) != len(targets):
            logger.warning(
                f"Gateway returned {len(results)} results for {len(targets)} messages"
            )
            report.failure_count += max(len(targets) - len(results), 0)

        now = self._clock()
        tasks: List[PendingTask] = []
        for idx, (target, result) in enumerate(zip(targets, results)):
            if result.success:
                report.success_count += 1
                if target.registration_id:
                    tasks.append(("refresh", target.registration_id,
                                  self._refresh_call(target.registration_id, now)))
                continue

            report.failure_count += 1
            kind = result.error_kind.value if result.error_kind else "unknown"
            logger.warning(
                f"Failed to send to token {idx} ({mask_token(target.token)}): {kind}"
            )
            if result.error_kind in PERMANENT_ERROR_KINDS and target.registration_id:
                logger.info(f"Removing invalid token: {mask_token(target.token, 20)}")
                tasks.append(("delete", target.registration_id,
                              self._delete_call(target.registration_id)))

        logger.info(
            f"Notifications sent: {report.success_count} success, {report.failure_count} failure"
        )

        if tasks:
            outcomes = await run_tasks(tasks)
            report.outcomes.extend(outcomes)
            for outcome in outcomes:
                if not outcome.success:
                    continue
                if outcome.action == "delete":
                    report.pruned.append(outcome.registration_id)
                else:
                    report.refreshed.append(outcome.registration_id)
            logger.info(f"Cleaned up {len(outcomes)} tokens")

    async def dispatch_alert(self, code: int, message: str) -> DispatchReport:
        """Deliver an error alert to every registered endpoint.

        Never raises: the caller treats delivery as fire-and-forget.
        """
        report = DispatchReport()
        try:
            targets = await self._collect_targets(report)
            if not targets:
                logger.info("No valid tokens found.")
                return report

            now = self._clock()
            messages = [
                build_alert_payload(
                    target.token,
                    code,
                    message,
                    channel_id=self._channel_id,
                    ttl_seconds=self._ttl_seconds,
                    now=now,
                )
                for target in targets
            ]
            await self._deliver(targets, messages, report)
        except Exception as e:
            logger.exception(f"Error dispatching alert {code}: {e}")
        return report

    async def send_announcement(
        self,
        title: Optional[str],
        body: Optional[str],
        target_token: Optional[str] = None,
    ) -> DispatchReport:
        """Deliver an announcement to every endpoint, or to one target token.

        Raises:
            ValidationError: title or body is missing
            NotFoundError: there is nothing to deliver to
        """
        if not title or not body:
            raise ValidationError("Title and body are required")

        report = DispatchReport()
        if target_token:
            logger.info(f"Targeting specific token: {mask_token(target_token, 20)}")
            targets = [Target(token=target_token)]
        else:
            targets = await self._collect_targets(report)

        if not targets:
            raise NotFoundError("No devices registered to receive announcements")

        logger.info(f'Sending announcement "{title}" to {len(targets)} devices...')
        now = self._clock()
        messages = [
            build_announcement_payload(target.token, title, body, channel_id=self._channel_id, now=now)
            for target in targets
        ]
        await self._deliver(targets, messages, report)
        return report
