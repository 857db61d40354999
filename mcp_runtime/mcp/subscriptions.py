"""Resource subscriptions and their periodic update loops."""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_TIMEOUT = 120.0


class Subscription:
    """An active subscription to one resource URI."""

    def __init__(self, uri: str):
        self.uri = uri
        self._stopped = asyncio.Event()
        self.task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def deactivate(self) -> None:
        self._stopped.set()

    async def wait_stopped(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; ``True`` if stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class SubscriptionTable:
    """Subscriptions of one session, keyed by resource URI.

    Each subscription runs a loop that pushes a "resource updated"
    notification every ``interval`` seconds until it is unsubscribed, its
    session closes, or ``timeout`` seconds have elapsed. Subscribing to a URI
    that already has an active loop is a no-op.
    """

    def __init__(
        self,
        send_update: Callable[[str], Awaitable[None]],
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._send_update = send_update
        self._interval = interval
        self._timeout = timeout
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}

    def __contains__(self, uri: str) -> bool:
        return self.is_active(uri)

    def is_active(self, uri: str) -> bool:
        with self._lock:
            subscription = self._subscriptions.get(uri)
            return subscription is not None and subscription.active

    @property
    def active_uris(self) -> list[str]:
        with self._lock:
            return [uri for uri, sub in self._subscriptions.items() if sub.active]

    def subscribe(self, uri: str) -> bool:
        """Start the update loop for ``uri``. Returns ``False`` if already running."""
        with self._lock:
            existing = self._subscriptions.get(uri)
            if existing is not None and existing.active:
                logger.debug(f"Found existing subscription for {uri}")
                return False
            subscription = Subscription(uri)
            self._subscriptions[uri] = subscription

        subscription.task = asyncio.create_task(self._run(subscription))
        logger.debug(f"New subscription for {uri}")
        return True

    def unsubscribe(self, uri: str) -> bool:
        """Stop the update loop for ``uri``. Returns ``False`` if none was active."""
        with self._lock:
            subscription = self._subscriptions.pop(uri, None)
        if subscription is None or not subscription.active:
            logger.debug(f"No subscription found for {uri}")
            return False
        subscription.deactivate()
        logger.debug(f"Removed subscription for {uri}")
        return True

    def close(self) -> None:
        """Stop every loop; used when the owning session goes away."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.deactivate()

    async def _run(self, subscription: Subscription) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        try:
            while subscription.active:
                await self._send_update(subscription.uri)
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.debug(f"Subscription for {subscription.uri} timed out")
                    break
                if await subscription.wait_stopped(min(self._interval, remaining)):
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Subscription loop for {subscription.uri} failed")
        finally:
            subscription.deactivate()
            with self._lock:
                if self._subscriptions.get(subscription.uri) is subscription:
                    del self._subscriptions[subscription.uri]
