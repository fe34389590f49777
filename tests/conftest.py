import json

import pytest

from src.relay.hub import RelayHub


class FakeChannel:
    """In-memory channel recording every frame the relay sends."""

    def __init__(self):
        self.open = True
        self.sent = []
        self.pings = 0
        self.pending_acks = []
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.open

    def send_text(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def ping(self, on_ack) -> None:
        self.pings += 1
        self.pending_acks.append(on_ack)

    def answer_pings(self) -> None:
        acks, self.pending_acks = self.pending_acks, []
        for ack in acks:
            ack()

    def close(self) -> None:
        self.close_calls += 1
        self.open = False

    def types(self):
        return [frame["type"] for frame in self.sent]


def send(hub, conn, **frame):
    """Feed one JSON frame into the hub as if it came off the wire."""
    hub.receive(conn, json.dumps(frame))


def pair(hub, code="ABC123XYZ"):
    """Register a host under *code*, connect a client, clear their outboxes."""
    host = hub.open(FakeChannel())
    client = hub.open(FakeChannel())
    send(hub, host, type="register_host", code=code, device_id="host-1", device_name="Desk PC")
    send(hub, client, type="connect_to_host", code=code, device_id="client-1", device_name="Laptop")
    host.channel.sent.clear()
    client.channel.sent.clear()
    return host, client


@pytest.fixture
def hub():
    return RelayHub(code_length=9)
