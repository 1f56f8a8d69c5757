"""Change feeds - streams of a single value at a path.

FirebaseChangeFeed listens on the Realtime Database. InMemoryChangeFeed is
the no-op implementation used when Firebase is not configured, and the
drivable one used in tests.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import firebase_admin
from firebase_admin import db

logger = logging.getLogger(__name__)


class ChangeFeed(Protocol):
    def subscribe(self, path: str) -> AsyncIterator[Any]:
        """Yield the value at path each time it is emitted. None means absent."""
        ...

    async def unsubscribe(self, path: str) -> None:
        ...


async def _drain(queue: asyncio.Queue) -> AsyncIterator[Any]:
    while True:
        value = await queue.get()
        try:
            yield value
        finally:
            # Marks the previous value handled once the consumer asks for the next one
            queue.task_done()


class FirebaseChangeFeed:
    """Realtime Database listener bridged onto the event loop.

    firebase-admin delivers events on its own thread; they are handed to
    the loop through a queue so the consumer sees them one at a time.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app
        self._registrations: Dict[str, Any] = {}

    async def subscribe(self, path: str) -> AsyncIterator[Any]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        ref = db.reference(path, app=self._app)

        def _on_event(event: db.Event) -> None:
            if event.path == "/":
                value = event.data
            else:
                # A child changed under a non-scalar value; re-read the whole node
                value = ref.get()
            loop.call_soon_threadsafe(queue.put_nowait, value)

        registration = await asyncio.to_thread(ref.listen, _on_event)
        self._registrations[path] = registration
        logger.info(f"Change feed listener attached on {path}")

        try:
            async for value in _drain(queue):
                yield value
        finally:
            await self.unsubscribe(path)

    async def unsubscribe(self, path: str) -> None:
        registration = self._registrations.pop(path, None)
        if registration is None:
            return
        await asyncio.to_thread(registration.close)
        logger.info(f"Change feed listener detached from {path}")


class InMemoryChangeFeed:
    """Process-local change feed driven by publish()."""

    def __init__(self):
        self._queues: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def subscribe(self, path: str) -> AsyncIterator[Any]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[path].append(queue)
        try:
            async for value in _drain(queue):
                yield value
        finally:
            if queue in self._queues.get(path, []):
                self._queues[path].remove(queue)

    async def unsubscribe(self, path: str) -> None:
        self._queues.pop(path, None)

    def publish(self, path: str, value: Any) -> None:
        """Emit a value to every subscriber of path."""
        for queue in self._queues.get(path, []):
            queue.put_nowait(value)

    def subscriber_count(self, path: str) -> int:
        return len(self._queues.get(path, []))

    async def join(self, path: str) -> None:
        """Wait until every published value on path has been handled."""
        for queue in list(self._queues.get(path, [])):
            await queue.join()
