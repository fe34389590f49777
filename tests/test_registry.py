import pytest

from src.relay.connection import Connection, Role
from src.relay.registry import CodeInUse, HostNotFound, Registry
from tests.conftest import FakeChannel


def _conn():
    return Connection(FakeChannel())


def test_new_connection_is_unbound_and_alive():
    conn = _conn()
    assert conn.role is Role.UNBOUND
    assert conn.session_code is None
    assert conn.alive is True
    assert conn.conn_id != _conn().conn_id


def test_register_host_binds_and_waits():
    registry = Registry()
    host = _conn()
    assert registry.register_host(host, "ABC123XYZ", "h1", "Desk") == "ABC123XYZ"
    assert host.role is Role.HOST
    assert host.session_code == "ABC123XYZ"
    assert registry.waiting_hosts["ABC123XYZ"] is host
    assert registry.stats() == {"waiting_hosts": 1, "active_sessions": 0}


def test_duplicate_code_rejected_and_original_untouched():
    registry = Registry()
    first, second = _conn(), _conn()
    registry.register_host(first, "ABC123XYZ", "h1", "Desk")
    with pytest.raises(CodeInUse):
        registry.register_host(second, "ABC123XYZ", "h2", "Other")
    assert registry.waiting_hosts["ABC123XYZ"] is first
    assert second.role is Role.UNBOUND


def test_code_in_active_session_cannot_be_registered():
    registry = Registry()
    host, client, late = _conn(), _conn(), _conn()
    registry.register_host(host, "ABC123XYZ", "h1", "Desk")
    registry.connect_to_host(client, "ABC123XYZ", "c1", "Laptop")
    with pytest.raises(CodeInUse):
        registry.register_host(late, "ABC123XYZ", "h2", "Other")
    assert "ABC123XYZ" not in registry.waiting_hosts


def test_connect_unknown_code_mutates_nothing():
    registry = Registry()
    host, client = _conn(), _conn()
    registry.register_host(host, "ABC123XYZ", "h1", "Desk")
    with pytest.raises(HostNotFound):
        registry.connect_to_host(client, "ZZZZZZZZZ", "c1", "Laptop")
    assert client.role is Role.UNBOUND
    assert list(registry.waiting_hosts) == ["ABC123XYZ"]
    assert registry.sessions == {}


def test_connect_to_closed_host_is_not_found():
    registry = Registry()
    host, client = _conn(), _conn()
    registry.register_host(host, "ABC123XYZ", "h1", "Desk")
    host.channel.open = False
    with pytest.raises(HostNotFound):
        registry.connect_to_host(client, "ABC123XYZ", "c1", "Laptop")
    assert registry.sessions == {}


def test_connect_moves_code_from_waiting_to_sessions():
    registry = Registry()
    host, client = _conn(), _conn()
    registry.register_host(host, "ABC123XYZ", "h1", "Desk")
    assert registry.connect_to_host(client, "ABC123XYZ", "c1", "Laptop") is host
    assert "ABC123XYZ" not in registry.waiting_hosts
    session = registry.sessions["ABC123XYZ"]
    assert session.host is host and session.client is client
    assert registry.session_peer(host) is client
    assert registry.session_peer(client) is host


def test_session_peer_ignores_non_members():
    registry = Registry()
    host, client = _conn(), _conn()
    registry.register_host(host, "ABC123XYZ", "h1", "Desk")
    registry.connect_to_host(client, "ABC123XYZ", "c1", "Laptop")
    outsider = _conn()
    outsider.session_code = "ABC123XYZ"
    assert registry.session_peer(outsider) is None
