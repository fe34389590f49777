"""Waiting hosts and paired sessions, keyed by pairing code."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .connection import Connection, Role


class RegistryError(ValueError):
    """Base class for pairing rule violations."""


class CodeInUse(RegistryError):
    def __init__(self, code: str):
        super().__init__(f"Code {code} already in use")
        self.code = code


class HostNotFound(RegistryError):
    def __init__(self, code: str):
        super().__init__(f"No host waiting under code {code}")
        self.code = code


@dataclass
class Session:
    host: Connection
    client: Connection

    def has_member(self, conn: Connection) -> bool:
        return conn.is_same(self.host) or conn.is_same(self.client)

    def peer_of(self, conn: Connection) -> Optional[Connection]:
        if conn.is_same(self.host):
            return self.client
        if conn.is_same(self.client):
            return self.host
        return None


class Registry:
    """Holds non-owning references to connections.

    A code is present in at most one of ``waiting_hosts`` and ``sessions``.
    Callers serialise access; the registry itself takes no locks.
    """

    def __init__(self):
        self.waiting_hosts: Dict[str, Connection] = {}
        self.sessions: Dict[str, Session] = {}

    def register_host(self, conn: Connection, code: str, device_id: Any, device_name: Any) -> str:
        if code in self.waiting_hosts or code in self.sessions:
            raise CodeInUse(code)
        conn.bind(Role.HOST, code, device_id, device_name)
        self.waiting_hosts[code] = conn
        return code

    def connect_to_host(self, conn: Connection, code: str, device_id: Any, device_name: Any) -> Connection:
        """Pair *conn* with the host waiting under *code* and return the host.

        A waiting entry whose channel has already closed counts as absent.
        """

        host = self.waiting_hosts.get(code)
        if host is None or not host.is_open:
            raise HostNotFound(code)
        conn.bind(Role.CLIENT, code, device_id, device_name)
        del self.waiting_hosts[code]
        self.sessions[code] = Session(host=host, client=conn)
        return host

    def is_waiting(self, conn: Connection) -> bool:
        code = conn.session_code
        return code is not None and conn.is_same(self.waiting_hosts.get(code))

    def session_of(self, conn: Connection) -> Optional[Session]:
        if conn.session_code is None:
            return None
        session = self.sessions.get(conn.session_code)
        if session is None or not session.has_member(conn):
            return None
        return session

    def session_peer(self, conn: Connection) -> Optional[Connection]:
        session = self.session_of(conn)
        return session.peer_of(conn) if session else None

    def stats(self) -> Dict[str, int]:
        return {
            "waiting_hosts": len(self.waiting_hosts),
            "active_sessions": len(self.sessions),
        }

    def clear(self) -> None:
        self.waiting_hosts.clear()
        self.sessions.clear()
