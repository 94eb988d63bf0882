"""Tests for the local update emitter."""

from __future__ import annotations

import asyncio
import json

from websockets.exceptions import ConnectionClosedError
from websockets.protocol import State

from star_party.client.emitter import LocalUpdateEmitter
from star_party.common.protocol import Vec3


class FakeSocket:
    def __init__(self, state: State = State.OPEN, fail: bool = False) -> None:
        self.state = state
        self.fail = fail
        self.sent: list[str] = []

    async def send(self, frame: str) -> None:
        if self.fail:
            raise ConnectionClosedError(None, None)
        self.sent.append(frame)


class TestTick:
    """Tests for LocalUpdateEmitter.tick."""

    def test_dropped_without_socket(self) -> None:
        emitter = LocalUpdateEmitter()
        assert emitter.tick(Vec3(0.0, 0.0, 0.0)) is False
        assert emitter.dropped == 1

    def test_dropped_while_connecting(self) -> None:
        emitter = LocalUpdateEmitter(FakeSocket(State.CONNECTING))
        assert emitter.tick(Vec3(0.0, 0.0, 0.0)) is False
        assert emitter.dropped == 1

    def test_dropped_when_closed(self) -> None:
        emitter = LocalUpdateEmitter(FakeSocket(State.CLOSED))
        assert emitter.tick(Vec3(0.0, 0.0, 0.0)) is False

    def test_dropped_after_close(self) -> None:
        emitter = LocalUpdateEmitter(FakeSocket())
        emitter.close()
        assert emitter.tick(Vec3(0.0, 0.0, 0.0)) is False

    def test_latest_sample_wins(self) -> None:
        emitter = LocalUpdateEmitter(FakeSocket())
        assert emitter.tick(Vec3(1.0, 0.0, 0.0)) is True
        assert emitter.tick(Vec3(2.0, 0.0, 0.0)) is True
        assert emitter.dropped == 1


class TestRun:
    """Tests for LocalUpdateEmitter.run."""

    def test_sends_latest_only(self) -> None:
        socket = FakeSocket()

        async def scenario() -> None:
            emitter = LocalUpdateEmitter(socket)
            emitter.tick(Vec3(1.0, 0.0, 0.0))
            emitter.tick(Vec3(2.0, 0.0, 0.0))
            task = asyncio.create_task(emitter.run())
            await asyncio.sleep(0.01)
            emitter.tick(Vec3(3.0, 0.0, 0.0))
            await asyncio.sleep(0.01)
            emitter.close()
            await asyncio.wait_for(task, 1.0)
            assert emitter.sent == 2

        asyncio.run(scenario())
        assert [json.loads(f)["position"]["x"] for f in socket.sent] == [2.0, 3.0]
        assert all(json.loads(f)["type"] == "move" for f in socket.sent)
        assert all("id" not in json.loads(f) for f in socket.sent)

    def test_send_failure_stops(self) -> None:
        socket = FakeSocket(fail=True)

        async def scenario() -> LocalUpdateEmitter:
            emitter = LocalUpdateEmitter(socket)
            task = asyncio.create_task(emitter.run())
            emitter.tick(Vec3(1.0, 0.0, 0.0))
            await asyncio.wait_for(task, 1.0)
            return emitter

        emitter = asyncio.run(scenario())
        assert emitter.sent == 0
        assert not emitter.is_ready()
        assert emitter.tick(Vec3(2.0, 0.0, 0.0)) is False
