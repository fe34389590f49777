import asyncio
import logging
import os
from functools import partial
from typing import Callable, Iterable, List, Optional

from .connection import Connection

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_S = float(os.getenv("RELAY_HEARTBEAT_INTERVAL_S", "30"))


def ping_all(
    connections: Iterable[Connection],
    acknowledge: Callable[[Connection], None],
) -> List[Connection]:
    """
    One liveness pass:
      - connections still flagged not-alive since the last pass are returned
        for eviction
      - every other connection is flagged not-alive and pinged; the transport
        calls ``acknowledge(conn)`` when the answer arrives, before the next pass
    """
    unresponsive = []
    for conn in connections:
        if not conn.alive:
            unresponsive.append(conn)
            continue
        conn.alive = False
        conn.channel.ping(partial(acknowledge, conn))
    return unresponsive


class LivenessMonitor:
    """Runs ``hub.sweep()`` every *interval* seconds in a background task."""

    def __init__(self, hub, interval: float = HEARTBEAT_INTERVAL_S):
        self.hub = hub
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.hub.sweep()
            except Exception:
                logger.exception("Liveness sweep failed")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
