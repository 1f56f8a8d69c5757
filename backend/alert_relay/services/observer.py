"""Debounced change observer - forwards error code changes to the processor.

Each observer owns its own debounce state. Emissions are handled one at a
time, in order, by the task started with start().
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from .change_feed import ChangeFeed
from .processor import StatusProcessor

logger = logging.getLogger(__name__)

LISTENER_SOURCE = "RTDB_LISTENER"

# Delay before re-subscribing after the feed itself fails
RESUBSCRIBE_DELAY_SECONDS = 5.0


def _same_value(a: Any, b: Any) -> bool:
    """Strict equality: 400 and "400" are different emissions."""
    return type(a) is type(b) and a == b


class DebouncedChangeObserver:
    """Watches one path and drops redundant or rapid-fire emissions."""

    def __init__(
        self,
        feed: ChangeFeed,
        processor: StatusProcessor,
        path: str = "Stability/Errors/EVT",
        debounce_window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._feed = feed
        self._processor = processor
        self.path = path
        self._debounce_window = debounce_window_seconds
        self._clock = clock
        self.last_value: Any = None
        self.last_processed_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def handle(self, value: Any) -> bool:
        """Handle one emission. Returns True if it was forwarded.

        Errors are logged and never escape, so the subscription survives a
        bad emission.
        """
        try:
            if value is None:
                return False

            if _same_value(value, self.last_value):
                return False

            now = self._clock()
            if self.last_processed_at is not None:
                elapsed = now - self.last_processed_at
                if elapsed < self._debounce_window:
                    logger.info(f"Rapid update detected ({elapsed * 1000:.0f}ms), ignoring")
                    return False

            logger.info(f"Received update on {self.path}: {value} (changed from {self.last_value})")
            self.last_value = value
            self.last_processed_at = now
        except Exception as e:
            logger.exception(f"Error handling change feed emission: {e}")
            return False

        payload = {
            "Stability": {"Errors": {"EVT": value}},
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "source": LISTENER_SOURCE,
        }
        try:
            await self._processor.process_status(payload, source=LISTENER_SOURCE)
        except Exception as e:
            logger.exception(f"Error processing change feed update: {e}")
        return True

    async def run(self):
        """Consume the feed until stopped, re-subscribing if it fails."""
        self._running = True
        logger.info(f"Starting change feed listener on path: {self.path}")
        while self._running:
            try:
                async for value in self._feed.subscribe(self.path):
                    await self.handle(value)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Change feed subscription failed: {e}. "
                    f"Retrying in {RESUBSCRIBE_DELAY_SECONDS} seconds..."
                )
                await asyncio.sleep(RESUBSCRIBE_DELAY_SECONDS)
            else:
                # The feed ended on its own
                if self._running:
                    await asyncio.sleep(RESUBSCRIBE_DELAY_SECONDS)

    def start(self) -> asyncio.Task:
        """Run the observer as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        """Stop the observer and detach from the feed."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Change feed listener stopped")
