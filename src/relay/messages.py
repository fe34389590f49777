"""Wire format of the relay protocol.

Inbound frames are JSON objects tagged by ``type``. Each known tag maps to a
pydantic model; anything else decodes to :class:`Unrecognized` so callers never
fall through on a missing branch. Outbound frames are plain dicts built by the
helpers at the bottom of this module.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Type, Union

import orjson
from pydantic import BaseModel, ValidationError


class MalformedFrame(ValueError):
    """Raised when an inbound frame cannot be decoded."""


class RegisterHost(BaseModel):
    type: Literal["register_host"] = "register_host"
    code: Optional[str] = None
    device_id: Any = None
    device_name: Any = None


class ConnectToHost(BaseModel):
    type: Literal["connect_to_host"] = "connect_to_host"
    code: Optional[str] = None
    device_id: Any = None
    device_name: Any = None


class Relay(BaseModel):
    type: Literal["relay"] = "relay"
    data: Any = None


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


class Unrecognized(BaseModel):
    type: Any = None


InboundMessage = Union[RegisterHost, ConnectToHost, Relay, Ping, Unrecognized]

_INBOUND: Dict[str, Type[BaseModel]] = {
    "register_host": RegisterHost,
    "connect_to_host": ConnectToHost,
    "relay": Relay,
    "ping": Ping,
}


def decode(raw: Union[str, bytes]) -> InboundMessage:
    try:
        obj = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MalformedFrame("Frame is not valid JSON") from exc
    if not isinstance(obj, dict):
        raise MalformedFrame("Frame must be a JSON object")

    tag = obj.get("type")
    model = _INBOUND.get(tag) if isinstance(tag, str) else None
    if model is None:
        return Unrecognized(type=tag)
    try:
        return model.model_validate(obj)  # type: ignore[return-value]
    except ValidationError as exc:
        raise MalformedFrame(f"Invalid {tag} frame: {exc.error_count()} error(s)") from exc


def encode(frame: Dict[str, Any]) -> str:
    return orjson.dumps(frame).decode("utf-8")


# ------------------------------------------------------------------------------
# Server -> client frames
# ------------------------------------------------------------------------------
def registered(code: str) -> Dict[str, Any]:
    return {"type": "registered", "code": code}


def error(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


def connection_failed(reason: str) -> Dict[str, Any]:
    return {"type": "connection_failed", "reason": reason}


def peer_connected(peer_id: Any, peer_name: Any) -> Dict[str, Any]:
    return {"type": "peer_connected", "peer_id": peer_id, "peer_name": peer_name}


def connected_to_host(host_id: Any, host_name: Any) -> Dict[str, Any]:
    return {"type": "connected_to_host", "host_id": host_id, "host_name": host_name}


def relayed(sender_role: str, **payload: Any) -> Dict[str, Any]:
    # payload is empty when the inbound relay frame carried no data key
    return {"type": "relayed", "from": sender_role, **payload}


def peer_disconnected() -> Dict[str, Any]:
    return {"type": "peer_disconnected"}


def pong() -> Dict[str, Any]:
    return {"type": "pong"}