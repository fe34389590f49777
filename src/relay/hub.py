"""Coordinator owning the registry, the open connections and the lock."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Union

from . import lifecycle, liveness
from .connection import Channel, Connection
from .messages import MalformedFrame, decode
from .registry import Registry
from .router import CODE_LENGTH, MessageRouter

logger = logging.getLogger(__name__)


class RelayHub:
    """
    Every entry point takes the same lock, so registry mutations and the
    role/session_code/alive fields of every connection are serialised:
      - open / close: transport events
      - receive: one inbound frame
      - sweep: one liveness pass
      - acknowledge: answer to a liveness ping
    """

    def __init__(self, code_length: int = CODE_LENGTH):
        self.registry = Registry()
        self.router = MessageRouter(self.registry, code_length=code_length)
        self.connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def open(self, channel: Channel) -> Connection:
        conn = Connection(channel)
        with self._lock:
            self.connections[conn.conn_id] = conn
        logger.info("New connection %s", conn.conn_id[:8])
        return conn

    def receive(self, conn: Connection, raw: Union[str, bytes]) -> None:
        try:
            msg = decode(raw)
        except MalformedFrame as exc:
            logger.warning("Dropping frame from %r: %s", conn, exc)
            return
        with self._lock:
            self.router.dispatch(conn, msg)

    def acknowledge(self, conn: Connection) -> None:
        """Liveness answer from the transport, outside the message stream."""

        with self._lock:
            conn.alive = True

    def close(self, conn: Connection) -> bool:
        """Run teardown for *conn*; safe to call more than once."""

        with self._lock:
            known = self.connections.pop(conn.conn_id, None) is not None
            removed = lifecycle.teardown(self.registry, conn)
        if known:
            logger.info("Connection closed %s", conn.conn_id[:8])
        return removed

    def sweep(self) -> List[Connection]:
        with self._lock:
            dead = liveness.ping_all(list(self.connections.values()), self.acknowledge)
            for conn in dead:
                self.connections.pop(conn.conn_id, None)
                lifecycle.teardown(self.registry, conn)
        for conn in dead:
            logger.info("Dead connection %s, terminating", conn.conn_id[:8])
            conn.channel.close()
        return dead

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return self.registry.stats()

    def reset(self) -> None:
        with self._lock:
            conns = list(self.connections.values())
            self.connections.clear()
            self.registry.clear()
        for conn in conns:
            conn.channel.close()
