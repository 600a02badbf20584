import asyncio

import pytest

from storefront.services.broadcast import RoomBroadcaster, room_name


class FakeSocket:
    def __init__(self, dead=False):
        self.dead = dead
        self.received = []

    async def send_json(self, message):
        if self.dead:
            raise RuntimeError("socket closed")
        self.received.append(message)


@pytest.fixture()
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


def _drain(loop):
    loop.run_until_complete(asyncio.sleep(0.01))


def test_room_name():
    assert room_name(7) == "business:7"


def test_emit_without_bound_loop_is_noop():
    broadcaster = RoomBroadcaster()
    ws = FakeSocket()
    broadcaster.join(1, ws)
    broadcaster.emit(1, "new_order", {"id": 1})
    assert ws.received == []


def test_emit_reaches_only_the_tenant_room(loop):
    broadcaster = RoomBroadcaster()
    broadcaster.bind(loop)
    mine, theirs = FakeSocket(), FakeSocket()
    broadcaster.join(1, mine)
    broadcaster.join(2, theirs)

    broadcaster.emit(1, "new_payment", {"amount_cents": 8000})
    _drain(loop)

    assert mine.received == [{"event": "new_payment", "data": {"amount_cents": 8000}}]
    assert theirs.received == []


def test_dead_socket_leaves_room(loop):
    broadcaster = RoomBroadcaster()
    broadcaster.bind(loop)
    alive, dead = FakeSocket(), FakeSocket(dead=True)
    broadcaster.join(1, alive)
    broadcaster.join(1, dead)

    broadcaster.emit(1, "order_status_changed", {"status": "SHIPPED"})
    _drain(loop)

    assert len(alive.received) == 1
    assert broadcaster.session_count(1) == 1


def test_leave_empties_room():
    broadcaster = RoomBroadcaster()
    ws = FakeSocket()
    broadcaster.join(3, ws)
    broadcaster.leave(3, ws)
    assert broadcaster.session_count(3) == 0


def test_failed_send_removes_session_and_completes(loop):
    broadcaster = RoomBroadcaster()
    dead = FakeSocket(dead=True)
    broadcaster.join(1, dead)

    loop.run_until_complete(broadcaster._send(1, dead, {"event": "new_order", "data": {}}))

    assert broadcaster.session_count(1) == 0


def test_emit_from_the_bound_loop_tracks_pending_sends(loop):
    broadcaster = RoomBroadcaster()
    broadcaster.bind(loop)
    ws = FakeSocket()
    broadcaster.join(1, ws)

    async def emit_and_check():
        broadcaster.emit(1, "new_message", {"id": 9})
        pending = len(broadcaster._tasks)
        await asyncio.sleep(0.01)
        return pending

    assert loop.run_until_complete(emit_and_check()) == 1
    assert ws.received == [{"event": "new_message", "data": {"id": 9}}]
    assert broadcaster._tasks == set()
