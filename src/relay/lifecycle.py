"""Teardown of a connection whose transport has gone away."""

from __future__ import annotations

import logging

from . import messages
from .connection import Connection
from .registry import Registry

logger = logging.getLogger(__name__)


def teardown(registry: Registry, conn: Connection) -> bool:
    """Remove *conn* from whichever registry structure holds it.

    Returns True if anything was removed. Calling it again for the same
    connection is a no-op, and a session that later reused the same code is left
    alone because membership is checked by connection id.
    """

    code = conn.session_code
    if code is None:
        return False

    if registry.is_waiting(conn):
        del registry.waiting_hosts[code]
        logger.info("Host unregistered: %s", code)
        return True

    session = registry.session_of(conn)
    if session is None:
        return False

    peer = session.peer_of(conn)
    if peer is not None:
        peer.send(messages.peer_disconnected())
    del registry.sessions[code]
    logger.info("Session ended: %s (%s left)", code, conn.role.value)
    return True
