"""Per-request cancellation signalled by ``notifications/cancelled``."""

import logging
import threading
from collections.abc import Callable
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

NO_CANCELLATION_REASON = "No cancellation requested"


class CancellationResult(NamedTuple):
    """Snapshot of a cancellation token."""

    is_requested: bool
    reason: str
    payload: Any = None


class Cancellation:
    """One-shot cancel signal for a single in-flight request.

    Cancellation is advisory: handlers poll ``result().is_requested`` at safe
    points, or register a hook. The first ``cancel`` call wins; later calls are
    ignored and hooks fire exactly once, on that first call. A hook registered
    after cancellation never fires.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._result = CancellationResult(False, NO_CANCELLATION_REASON)
        self._hooks: list[Callable[[], Any]] = []

    def result(self) -> CancellationResult:
        return self._result

    @property
    def is_requested(self) -> bool:
        return self._result.is_requested

    def register_cancellation_hook(self, hook: Callable[[], Any]) -> None:
        with self._lock:
            if not self._result.is_requested:
                self._hooks.append(hook)

    def cancel(self, reason: str, payload: Any = None) -> bool:
        """Request cancellation. Returns ``True`` only for the call that took effect."""
        with self._lock:
            if self._result.is_requested:
                return False
            self._result = CancellationResult(True, reason, payload)
            hooks, self._hooks = self._hooks, []

        logger.debug(f"Cancelling request {payload!r}: {reason}")
        for hook in hooks:
            try:
                hook()
            except Exception:
                logger.exception("Cancellation hook failed")
        return True
