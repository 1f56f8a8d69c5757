"""Services for change observation, rate limiting, and push delivery."""
from .dispatcher import FanOutDispatcher, DispatchReport
from .observer import DebouncedChangeObserver
from .pipeline import AlertPipeline, build_pipeline
from .processor import StatusProcessor, RateLimitPolicy
from .registration import RegistrationService
from .registry_store import RegistryStore
from .scheduler import SchedulerService

__all__ = [
    "FanOutDispatcher",
    "DispatchReport",
    "DebouncedChangeObserver",
    "AlertPipeline",
    "build_pipeline",
    "StatusProcessor",
    "RateLimitPolicy",
    "RegistrationService",
    "RegistryStore",
    "SchedulerService",
]
