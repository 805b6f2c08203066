import asyncio
import pytest

from staffchat.websocket.manager import ConnectionManager


class DummyWebSocket:
    def __init__(self, fail_send=False):
        self.accepted = False
        self.sent = []
        self.fail_send = fail_send

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail_send:
            raise RuntimeError("send failed")
        await asyncio.sleep(0)
        self.sent.append(message)


@pytest.mark.asyncio
async def test_connect_push_and_disconnect():
    mgr = ConnectionManager()
    tab1 = DummyWebSocket()
    tab2 = DummyWebSocket()

    await mgr.connect("alice", tab1)
    await mgr.connect("alice", tab2)
    assert tab1.accepted and tab2.accepted
    assert mgr.active_connections["alice"] == {tab1, tab2}

    event = {"type": "typing", "isTyping": True}
    await mgr.send_to_user("alice", event)
    assert tab1.sent == [event]
    assert tab2.sent == [event]

    mgr.disconnect("alice", tab1)
    assert tab1 not in mgr.active_connections["alice"]
    mgr.disconnect("alice", tab2)
    assert "alice" not in mgr.active_connections


@pytest.mark.asyncio
async def test_push_only_reaches_named_users():
    mgr = ConnectionManager()
    alice, bob, carol = DummyWebSocket(), DummyWebSocket(), DummyWebSocket()
    await mgr.connect("alice", alice)
    await mgr.connect("bob", bob)
    await mgr.connect("carol", carol)

    await mgr.send_to_users(["bob", "carol", "nobody"], {"type": "message"})

    assert alice.sent == []
    assert bob.sent == [{"type": "message"}]
    assert carol.sent == [{"type": "message"}]


@pytest.mark.asyncio
async def test_push_drops_failing_sockets():
    mgr = ConnectionManager()
    good = DummyWebSocket()
    bad = DummyWebSocket(fail_send=True)

    await mgr.connect("bob", good)
    await mgr.connect("bob", bad)

    await mgr.send_to_user("bob", {"x": 1})

    assert good.sent and good.sent[0]["x"] == 1
    assert bad not in mgr.active_connections.get("bob", set())
