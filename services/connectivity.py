from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from core.settings import CONNECTIVITY
from services.log import get_logger


logger = get_logger("connectivity")


class ConnectivityMonitor:
    """Turns reachability samples into "connection restored" callbacks.

    The first online sample after startup counts as a restoration so that
    requests left over from a previous run get drained. A restoration inside
    the debounce window is deferred to the first online sample after it.
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        on_restored: Callable[[], object],
        *,
        debounce_seconds: float = CONNECTIVITY.debounce_sec,
        clock: Callable[[], float] = time.monotonic,
        on_change: Optional[Callable[[bool], object]] = None,
    ) -> None:
        self.probe = probe
        self.on_restored = on_restored
        self.on_change = on_change
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self.online: Optional[bool] = None
        self._last_fired: Optional[float] = None
        # a restoration held back by the debounce window
        self._deferred = False
        self._running = False

    def observe(self, online: bool) -> bool:
        previous = self.online
        self.online = online
        if previous is None or previous != online:
            if self.on_change is not None:
                self.on_change(online)
            if not online:
                self._deferred = False
                logger.info("Connection lost")
                return False
        elif not (online and self._deferred):
            return False

        now = self._clock()
        if self._last_fired is not None and now - self._last_fired < self.debounce_seconds:
            if not self._deferred:
                logger.debug("Connection flapping, sync trigger deferred")
            self._deferred = True
            return False

        self._deferred = False
        self._last_fired = now
        logger.info("Connection restored, triggering sync")
        try:
            self.on_restored()
        except Exception:
            logger.exception("Sync trigger failed")
        return True

    def check(self) -> bool:
        return self.observe(self._safe_probe())

    async def run(self, interval_seconds: float = CONNECTIVITY.poll_interval_sec) -> None:
        self._running = True
        while self._running:
            # probes block on sockets, keep them off the event loop
            online = await asyncio.to_thread(self._safe_probe)
            self.observe(online)
            await asyncio.sleep(interval_seconds)

    def stop(self) -> None:
        self._running = False

    def _safe_probe(self) -> bool:
        try:
            return bool(self.probe())
        except Exception:
            logger.exception("Connectivity probe failed")
            return False


__all__ = ["ConnectivityMonitor"]
