"""Dispatch of decoded protocol messages to their handlers."""

from __future__ import annotations

import logging
import os

from . import messages
from .connection import Connection, Role
from .messages import ConnectToHost, InboundMessage, Ping, RegisterHost, Relay, Unrecognized
from .registry import CodeInUse, HostNotFound, Registry

logger = logging.getLogger(__name__)

# 0 disables the length check; codes then only need to be non-empty.
CODE_LENGTH = int(os.getenv("RELAY_CODE_LENGTH", "9"))

INVALID_CODE = "Invalid code"
CODE_REQUIRED = "Code required"
CODE_IN_USE = "Code already in use"
ALREADY_BOUND = "Connection already bound"
HOST_NOT_FOUND = (
    "No device found with that code. Check that:\n"
    "1. The code is correct\n"
    "2. The other device has access enabled"
)


class MessageRouter:
    """Stateless dispatcher; every handler runs inside the caller's lock."""

    def __init__(self, registry: Registry, code_length: int = CODE_LENGTH):
        self.registry = registry
        self.code_length = code_length

    def dispatch(self, conn: Connection, msg: InboundMessage) -> None:
        logger.debug("Message from %r: %s", conn, msg.type)
        if isinstance(msg, RegisterHost):
            self.register_host(conn, msg)
        elif isinstance(msg, ConnectToHost):
            self.connect_to_host(conn, msg)
        elif isinstance(msg, Relay):
            self.relay(conn, msg)
        elif isinstance(msg, Ping):
            conn.send(messages.pong())
        elif isinstance(msg, Unrecognized):
            logger.info("Unknown message type: %r", msg.type)
        else:
            logger.warning("No handler for %s", type(msg).__name__)

    def _valid_code(self, code: str | None) -> bool:
        if not code:
            return False
        return self.code_length <= 0 or len(code) == self.code_length

    def register_host(self, conn: Connection, msg: RegisterHost) -> None:
        if conn.role is not Role.UNBOUND:
            conn.send(messages.error(ALREADY_BOUND))
            return
        if not self._valid_code(msg.code):
            conn.send(messages.error(INVALID_CODE))
            return
        try:
            code = self.registry.register_host(conn, msg.code, msg.device_id, msg.device_name)
        except CodeInUse:
            conn.send(messages.error(CODE_IN_USE))
            return
        logger.info("Host registered: %s with code %s", conn.device_name, code)
        conn.send(messages.registered(code))

    def connect_to_host(self, conn: Connection, msg: ConnectToHost) -> None:
        if conn.role is not Role.UNBOUND:
            conn.send(messages.error(ALREADY_BOUND))
            return
        if not msg.code:
            conn.send(messages.error(CODE_REQUIRED))
            return
        try:
            host = self.registry.connect_to_host(conn, msg.code, msg.device_id, msg.device_name)
        except HostNotFound:
            conn.send(messages.connection_failed(HOST_NOT_FOUND))
            return
        logger.info("Pairing established: %s -> %s", conn.device_name, host.device_name)
        host.send(messages.peer_connected(conn.device_id, conn.device_name))
        conn.send(messages.connected_to_host(host.device_id, host.device_name))

    def relay(self, conn: Connection, msg: Relay) -> None:
        peer = self.registry.session_peer(conn)
        if peer is None:
            return
        payload = {"data": msg.data} if "data" in msg.model_fields_set else {}
        # Best effort: a closed peer silently drops the payload.
        peer.send(messages.relayed(conn.role.value, **payload))
