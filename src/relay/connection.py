"""Per-socket connection state for the relay."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from .messages import encode


class Role(Enum):
    UNBOUND = "unbound"
    HOST = "host"
    CLIENT = "client"


class Channel(Protocol):
    """Duplex transport carrying discrete text frames.

    ``send_text`` must not block; implementations queue the frame and deliver it
    asynchronously. ``ping`` sends a transport-level liveness ping and calls
    *on_ack* when the answer arrives.
    """

    @property
    def is_open(self) -> bool: ...

    def send_text(self, text: str) -> None: ...

    def ping(self, on_ack: Callable[[], None]) -> None: ...

    def close(self) -> None: ...


class Connection:
    def __init__(self, channel: Channel):
        self.conn_id = uuid.uuid4().hex
        self.channel = channel
        self.role = Role.UNBOUND
        self.session_code: Optional[str] = None
        self.device_id: Optional[str] = None
        self.device_name: Optional[str] = None
        self.alive = True

    def __repr__(self) -> str:
        return f"Connection({self.conn_id[:8]}, role={self.role.value}, code={self.session_code})"

    def is_same(self, other: Optional["Connection"]) -> bool:
        return other is not None and other.conn_id == self.conn_id

    @property
    def is_open(self) -> bool:
        return self.channel.is_open

    def bind(self, role: Role, code: str, device_id: Any, device_name: Any) -> None:
        self.role = role
        self.session_code = code
        self.device_id = device_id
        self.device_name = device_name

    def send(self, frame: Dict[str, Any]) -> bool:
        """Queue *frame* for delivery; returns False if the channel is closed."""

        if not self.channel.is_open:
            return False
        self.channel.send_text(encode(frame))
        return True
