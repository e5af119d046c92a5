"""Registre des connexions WebSocket."""

from datetime import datetime

from ecopower.messages.realtime import ConnectionRegistry


class FakeSocket:
    def __init__(self, broken=False):
        self.received = []
        self.broken = broken

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("socket fermée")
        self.received.append(data)


class TestConnectionRegistry:
    def test_connect_and_disconnect(self):
        registry = ConnectionRegistry()
        phone, laptop = FakeSocket(), FakeSocket()

        registry.connect("u1", phone)
        registry.connect("u1", laptop)
        assert registry.is_connected("u1")
        assert len(registry) == 2

        registry.disconnect("u1", phone)
        registry.disconnect("u1", laptop)
        assert not registry.is_connected("u1")
        assert len(registry) == 0

    async def test_every_device_receives_payload(self):
        registry = ConnectionRegistry()
        phone, laptop = FakeSocket(), FakeSocket()
        registry.connect("u1", phone)
        registry.connect("u1", laptop)

        sent = await registry.send_to_user("u1", {"type": "new_message", "data": {"at": datetime(2025, 1, 2)}})

        assert sent == 2
        assert phone.received == laptop.received == [
            {"type": "new_message", "data": {"at": "2025-01-02T00:00:00"}}
        ]

    async def test_broken_socket_is_dropped(self):
        registry = ConnectionRegistry()
        healthy, broken = FakeSocket(), FakeSocket(broken=True)
        registry.connect("u1", healthy)
        registry.connect("u2", broken)

        sent = await registry.broadcast(["u1", "u2", "u1"], {"type": "ping"})

        assert sent == 1
        assert not registry.is_connected("u2")
        assert healthy.received == [{"type": "ping"}]

    async def test_unknown_user(self):
        assert await ConnectionRegistry().send_to_user("absent", {"type": "ping"}) == 0
