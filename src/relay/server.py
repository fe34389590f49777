import asyncio
import logging
import os
from contextlib import asynccontextmanager
from functools import partial
from typing import Callable, Optional, Union

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from .hub import RelayHub
from .liveness import HEARTBEAT_INTERVAL_S, LivenessMonitor

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------
HOST = os.getenv("RELAY_HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
HEALTH_PORT = int(os.getenv("RELAY_HEALTH_PORT", "8081"))
STATS_INTERVAL_S = float(os.getenv("RELAY_STATS_INTERVAL_S", "60"))
OUTBOX_LIMIT = int(os.getenv("RELAY_OUTBOX_LIMIT", "256"))
LOG_LEVEL = os.getenv("RELAY_LOG_LEVEL", "INFO").upper()


# ------------------------------------------------------------------------------
# Transport
# ------------------------------------------------------------------------------
def _on_pong(on_ack: Callable[[], None], pong_waiter: "asyncio.Future[float]") -> None:
    if pong_waiter.cancelled() or pong_waiter.exception() is not None:
        return
    on_ack()


class WebSocketChannel:
    """Channel over a ``websockets`` server connection.

    Frames and pings are queued and written by a per-socket task so the hub
    never awaits a peer. A full outbox means the peer stopped reading; the
    socket is then aborted like any other dead transport.
    """

    def __init__(self, ws: ServerConnection, outbox_limit: int = OUTBOX_LIMIT):
        self.ws = ws
        self._outbox: "asyncio.Queue[Union[str, Callable[[], None]]]" = asyncio.Queue(maxsize=outbox_limit)
        self._closing = False
        self._writer = asyncio.create_task(self._drain())

    @property
    def is_open(self) -> bool:
        return not self._closing and self.ws.state is State.OPEN

    def send_text(self, text: str) -> None:
        self._put(text)

    def ping(self, on_ack: Callable[[], None]) -> None:
        self._put(on_ack)

    def _put(self, item) -> None:
        if not self.is_open:
            return
        try:
            self._outbox.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning("Outbox full (%d items), dropping %s", self._outbox.maxsize, self.ws.remote_address)
            self.close()

    def close(self) -> None:
        """Abort the socket; the receive loop then runs the normal teardown."""
        if self._closing:
            return
        self._closing = True
        self.ws.transport.abort()

    async def _drain(self):
        while True:
            item = await self._outbox.get()
            try:
                if callable(item):
                    pong_waiter = await self.ws.ping()
                    pong_waiter.add_done_callback(partial(_on_pong, item))
                else:
                    await self.ws.send(item)
            except ConnectionClosed:
                return

    async def shutdown(self):
        self._closing = True
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass


class RelayServer:
    """WebSocket relay bound to one hub, with its liveness monitor."""

    def __init__(
        self,
        hub: RelayHub,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_S,
        outbox_limit: int = OUTBOX_LIMIT,
    ):
        self.hub = hub
        self.monitor = LivenessMonitor(hub, interval=heartbeat_interval)
        self.outbox_limit = outbox_limit
        self._server: Optional[Server] = None

    @property
    def port(self) -> int:
        return self._server.sockets[0].getsockname()[1]

    async def handle(self, ws: ServerConnection):
        channel = WebSocketChannel(ws, outbox_limit=self.outbox_limit)
        conn = self.hub.open(channel)
        try:
            async for raw in ws:
                self.hub.receive(conn, raw)
        except ConnectionClosedError as exc:
            logger.info("Transport failure on %r: %s", conn, exc)
        except Exception:
            logger.exception("WebSocket error on %r", conn)
        finally:
            self.hub.close(conn)
            await channel.shutdown()

    async def start(self, host: str, port: int):
        # Liveness is driven by the monitor, not by the library's keepalive.
        self._server = await serve(self.handle, host, port, ping_interval=None, max_size=None)
        self.monitor.start()
        logger.info("Relay listening on %s:%d", host, self.port)

    async def stop(self):
        await self.monitor.stop()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None


# ------------------------------------------------------------------------------
# App scaffolding
# ------------------------------------------------------------------------------
HUB = RelayHub()
RELAY = RelayServer(HUB)


def reset_state():
    """Reset in-memory relay state (used by tests)."""
    HUB.reset()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async def _stats():
        while True:
            await asyncio.sleep(STATS_INTERVAL_S)
            stats = HUB.stats()
            logger.info(
                "Stats: %d hosts waiting, %d active sessions",
                stats["waiting_hosts"],
                stats["active_sessions"],
            )

    await RELAY.start(HOST, PORT)
    stats_task = asyncio.create_task(_stats())

    yield

    stats_task.cancel()
    await RELAY.stop()


app = FastAPI(title="Code pairing relay", version="0.1.0", lifespan=lifespan)


# ------------------------------------------------------------------------------
# Health check
# ------------------------------------------------------------------------------
@app.get("/")
@app.get("/health")
async def health():
    return JSONResponse({"status": "ok", **HUB.stats()})


def main():
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Health endpoint on %s:%d", HOST, HEALTH_PORT)
    uvicorn.run(app, host=HOST, port=HEALTH_PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
