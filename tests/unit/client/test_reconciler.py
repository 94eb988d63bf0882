"""Tests for the client-side reconciler."""

from __future__ import annotations

from typing import Any

from hypothesis import given
from hypothesis import strategies as st

from star_party.client.reconciler import NullRenderer, Reconciler
from star_party.common.protocol import (
    GeoPoint,
    Join,
    Leave,
    PeerState,
    ServerMessage,
    ServerMove,
    State,
    Sync,
    Vec3,
)


class RecordingRenderer:
    """Renderer that keeps live handles and a call log."""

    def __init__(self) -> None:
        self.live: dict[str, State] = {}
        self.calls: list[tuple[str, str]] = []

    def create_proxy(self, peer_id: str, position: State, username: str | None) -> Any:
        assert peer_id not in self.live
        self.live[peer_id] = position
        self.calls.append(("create", peer_id))
        return peer_id

    def move_proxy(self, handle: Any, position: State) -> None:
        assert handle in self.live
        self.live[handle] = position
        self.calls.append(("move", handle))

    def destroy_proxy(self, handle: Any) -> None:
        assert handle in self.live
        del self.live[handle]
        self.calls.append(("destroy", handle))


def peer(peer_id: str, x: float = 0.0) -> PeerState:
    return PeerState(peer_id, Vec3(x, 0.0, 0.0), peer_id.lower())


class TestSync:
    """Tests for sync handling."""

    def test_creates_all(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        created = reconciler.apply(Sync((peer("A"), peer("B"))))
        assert [p.id for p in created] == ["A", "B"]
        assert reconciler.ids() == ["A", "B"]
        assert set(renderer.live) == {"A", "B"}

    def test_existing_proxy_kept(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        reconciler.apply(Join(peer("A", 1.0)))
        created = reconciler.apply(Sync((peer("A", 5.0), peer("B"))))
        assert [p.id for p in created] == ["B"]
        proxy = reconciler.get("A")
        assert proxy is not None and proxy.last_position == Vec3(1.0, 0.0, 0.0)
        assert renderer.calls.count(("create", "A")) == 1

    def test_local_id_skipped(self) -> None:
        reconciler = Reconciler(local_id="me")
        reconciler.apply(Sync((peer("me"), peer("A"))))
        assert reconciler.ids() == ["A"]


class TestJoin:
    """Tests for join handling."""

    def test_duplicate_join_is_noop(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        assert reconciler.apply(Join(peer("A"))) is not None
        assert reconciler.apply(Join(peer("A"))) is None
        assert len(reconciler) == 1
        assert renderer.calls == [("create", "A")]

    def test_username_carried(self) -> None:
        reconciler = Reconciler()
        proxy = reconciler.apply(Join(PeerState("A", Vec3(0.0, 0.0, 0.0), "alice")))
        assert proxy.username == "alice"

    def test_own_join_ignored(self) -> None:
        reconciler = Reconciler(local_id="me")
        assert reconciler.apply(Join(peer("me"))) is None
        assert "me" not in reconciler


class TestMove:
    """Tests for move handling."""

    def test_updates_known(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        reconciler.apply(Join(peer("A")))
        proxy = reconciler.apply(ServerMove("A", Vec3(3.0, 4.0, 5.0)))
        assert proxy.last_position == Vec3(3.0, 4.0, 5.0)
        assert renderer.live["A"] == Vec3(3.0, 4.0, 5.0)

    def test_unknown_id_does_not_create(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        assert reconciler.apply(ServerMove("ghost", Vec3(1.0, 1.0, 1.0))) is None
        assert len(reconciler) == 0
        assert renderer.calls == []

    def test_geo_positions(self) -> None:
        reconciler = Reconciler()
        reconciler.apply(Join(PeerState("A", GeoPoint(0.0, 0.0))))
        reconciler.apply(ServerMove("A", GeoPoint(10.0, 20.0)))
        proxy = reconciler.get("A")
        assert proxy is not None and proxy.last_position == GeoPoint(10.0, 20.0)


class TestLeave:
    """Tests for leave handling."""

    def test_destroys_proxy(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        reconciler.apply(Sync((peer("A"), peer("B"))))
        removed = reconciler.apply(Leave("A"))
        assert removed.id == "A"
        assert reconciler.ids() == ["B"]
        assert "A" not in renderer.live

    def test_unknown_id_is_noop(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        reconciler.apply(Join(peer("A")))
        assert reconciler.apply(Leave("ghost")) is None
        assert reconciler.ids() == ["A"]
        assert renderer.calls == [("create", "A")]

    def test_move_after_leave_ignored(self) -> None:
        reconciler = Reconciler()
        reconciler.apply(Join(peer("A")))
        reconciler.apply(Leave("A"))
        assert reconciler.apply(ServerMove("A", Vec3(1.0, 0.0, 0.0))) is None
        assert "A" not in reconciler

    def test_rejoin_after_leave(self) -> None:
        reconciler = Reconciler()
        reconciler.apply(Join(peer("A")))
        reconciler.apply(Leave("A"))
        assert reconciler.apply(Join(peer("A", 2.0))) is not None
        assert reconciler.ids() == ["A"]


class TestClear:
    def test_destroys_everything(self) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer)
        reconciler.apply(Sync((peer("A"), peer("B"))))
        reconciler.clear()
        assert len(reconciler) == 0
        assert renderer.live == {}


def test_null_renderer_handle_is_id() -> None:
    reconciler = Reconciler(NullRenderer())
    proxy = reconciler.apply(Join(peer("A")))
    assert proxy.handle == "A"


ids = st.sampled_from(["A", "B", "C", "me"])
positions = st.builds(
    Vec3,
    st.floats(-100, 100),
    st.floats(-100, 100),
    st.floats(-100, 100),
)
peers = st.builds(PeerState, ids, positions)
messages = st.one_of(
    st.builds(lambda ps: Sync(tuple(ps)), st.lists(peers, max_size=4)),
    st.builds(Join, peers),
    st.builds(ServerMove, ids, positions),
    st.builds(Leave, ids),
)


class TestReconcilerProperties:
    """Any event sequence keeps the mirror consistent with a simple model."""

    @given(st.lists(messages, max_size=40))
    def test_matches_model(self, sequence: list[ServerMessage]) -> None:
        renderer = RecordingRenderer()
        reconciler = Reconciler(renderer, local_id="me")
        model: dict[str, State] = {}

        for message in sequence:
            reconciler.apply(message)
            if isinstance(message, Sync):
                for p in message.players:
                    if p.id != "me":
                        model.setdefault(p.id, p.position)
            elif isinstance(message, Join):
                if message.player.id != "me":
                    model.setdefault(message.player.id, message.player.position)
            elif isinstance(message, ServerMove):
                if message.id in model:
                    model[message.id] = message.position
            else:
                model.pop(message.id, None)

        assert set(reconciler.ids()) == set(model)
        for proxy in reconciler.proxies():
            assert proxy.last_position == model[proxy.id]
        # One live drawable per proxy, no orphans
        assert set(renderer.live) == set(model)
