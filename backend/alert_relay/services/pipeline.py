"""Wiring of the alert pipeline components."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import Settings
from .change_feed import ChangeFeed, FirebaseChangeFeed, InMemoryChangeFeed
from .dispatcher import FanOutDispatcher
from .firebase import init_firebase
from .gateway import FcmPushGateway, NoopPushGateway, PushGateway
from .observer import DebouncedChangeObserver
from .processor import RateLimitPolicy, StatusProcessor
from .registration import RegistrationService
from .registry_store import RegistryStore
from .scheduler import SchedulerService, StaticAnnouncementCalendar

logger = logging.getLogger(__name__)


@dataclass
class AlertPipeline:
    store: RegistryStore
    gateway: PushGateway
    feed: ChangeFeed
    dispatcher: FanOutDispatcher
    processor: StatusProcessor
    registration: RegistrationService
    observer: DebouncedChangeObserver
    scheduler: SchedulerService


def build_pipeline(
    settings: Settings,
    session_factory: async_sessionmaker,
    gateway: Optional[PushGateway] = None,
    feed: Optional[ChangeFeed] = None,
) -> AlertPipeline:
    """Build the pipeline, choosing Firebase or no-op collaborators once."""
    if gateway is None or feed is None:
        app = init_firebase(settings) if settings.firebase_configured else None
        if app is not None:
            gateway = gateway or FcmPushGateway(app)
            feed = feed or FirebaseChangeFeed(app)
            logger.info("Using Firebase change feed and FCM gateway")
        else:
            gateway = gateway or NoopPushGateway()
            feed = feed or InMemoryChangeFeed()
            logger.warning("Firebase not configured, using no-op change feed and gateway")

    store = RegistryStore(session_factory)
    dispatcher = FanOutDispatcher(
        store,
        gateway,
        token_min_length=settings.token_min_length,
        token_separator=settings.token_separator,
        gateway_timeout_seconds=settings.gateway_timeout_seconds,
        channel_id=settings.notification_channel_id,
        ttl_seconds=settings.notification_ttl_seconds,
    )
    processor = StatusProcessor(
        store,
        dispatcher,
        cooldown_window_seconds=settings.cooldown_window_seconds,
        policy=RateLimitPolicy(settings.rate_limit_policy),
    )
    observer = DebouncedChangeObserver(
        feed,
        processor,
        path=settings.listener_path,
        debounce_window_seconds=settings.debounce_window_seconds,
    )
    scheduler = SchedulerService(
        dispatcher,
        StaticAnnouncementCalendar(settings.announcements),
        hour=settings.announcement_hour,
        minute=settings.announcement_minute,
    )
    return AlertPipeline(
        store=store,
        gateway=gateway,
        feed=feed,
        dispatcher=dispatcher,
        processor=processor,
        registration=RegistrationService(store),
        observer=observer,
        scheduler=scheduler,
    )
