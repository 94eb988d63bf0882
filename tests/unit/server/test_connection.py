"""Tests for the connection lifecycle state machine and outbox."""

from __future__ import annotations

import asyncio

import pytest

from star_party.common.errors import DeliveryFailure, InvalidTransition
from star_party.server.connection import Connection, ConnectionState


class FakeSocket:
    """Records sent frames; optionally fails on the nth send."""

    def __init__(self, fail_on: int | None = None) -> None:
        self.sent: list[str] = []
        self.fail_on = fail_on

    async def send(self, frame: str) -> None:
        if self.fail_on is not None and len(self.sent) >= self.fail_on:
            raise ConnectionResetError("peer went away")
        self.sent.append(frame)


class TestTransitions:
    """Tests for allowed and forbidden state changes."""

    def test_starts_connecting(self) -> None:
        assert Connection("a").state is ConnectionState.CONNECTING

    def test_normal_path(self) -> None:
        conn = Connection("a")
        conn.transition(ConnectionState.IDENTIFYING)
        conn.transition(ConnectionState.ACTIVE)
        assert conn.is_active
        conn.transition(ConnectionState.CLOSED)
        assert conn.is_closed

    def test_globe_activates_from_connecting(self) -> None:
        conn = Connection("a")
        conn.transition(ConnectionState.ACTIVE)
        assert conn.is_active

    @pytest.mark.parametrize(
        "path",
        [
            [ConnectionState.ACTIVE, ConnectionState.IDENTIFYING],
            [ConnectionState.IDENTIFYING, ConnectionState.CONNECTING],
            [ConnectionState.CLOSED, ConnectionState.ACTIVE],
            [ConnectionState.CLOSED, ConnectionState.CLOSED],
        ],
    )
    def test_forbidden(self, path: list[ConnectionState]) -> None:
        conn = Connection("a")
        conn.transition(path[0])
        with pytest.raises(InvalidTransition):
            conn.transition(path[1])

    def test_close_is_idempotent(self) -> None:
        conn = Connection("a")
        assert conn.close() is True
        assert conn.close() is False
        assert conn.is_closed


class TestOutbox:
    """Tests for enqueueing and the writer task."""

    def test_enqueue_after_close_fails(self) -> None:
        conn = Connection("a")
        conn.close()
        with pytest.raises(DeliveryFailure):
            conn.enqueue("frame")

    def test_full_outbox_fails(self) -> None:
        conn = Connection("a", outbox_limit=2)
        conn.enqueue("1")
        conn.enqueue("2")
        with pytest.raises(DeliveryFailure) as excinfo:
            conn.enqueue("3")
        assert excinfo.value.connection_id == "a"

    def test_close_discards_queued_frames(self) -> None:
        conn = Connection("a")
        conn.enqueue("1")
        conn.close()
        assert conn.outbox.empty()

    def test_writer_sends_in_order(self) -> None:
        async def scenario() -> list[str]:
            socket = FakeSocket()
            conn = Connection("a", socket)
            for frame in ["1", "2", "3"]:
                conn.enqueue(frame)
            task = asyncio.create_task(conn.run_writer())
            await asyncio.sleep(0.01)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return socket.sent

        assert asyncio.run(scenario()) == ["1", "2", "3"]

    def test_writer_failure_reports_once(self) -> None:
        failures: list[Connection] = []

        async def scenario() -> FakeSocket:
            socket = FakeSocket(fail_on=1)
            conn = Connection("a", socket, on_failure=failures.append)
            conn.enqueue("1")
            conn.enqueue("2")
            conn.enqueue("3")
            await asyncio.wait_for(conn.run_writer(), timeout=1.0)
            return socket

        socket = asyncio.run(scenario())
        assert socket.sent == ["1"]
        assert [c.id for c in failures] == ["a"]
