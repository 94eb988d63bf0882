"""Wire protocol: message types and JSON (de)serialization.

Every frame is a UTF-8 JSON object with a ``type`` tag. Client and server
speak different subsets, so each direction has its own parser and the
two ``move`` shapes are separate classes: a client never names itself,
the server always names the mover.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .errors import MalformedMessage

MAX_USERNAME_LENGTH = 32


class MessageType(str, Enum):
    IDENTIFY = "identify"
    SYNC = "sync"
    JOIN = "join"
    LEAVE = "leave"
    MOVE = "move"


class RoomKind(Enum):
    """Room variants, keyed by their route prefix."""

    SPACE = "party"
    GLOBE = "globe"


@dataclass(frozen=True)
class Vec3:
    """Position in a star system scene."""

    x: float
    y: float
    z: float


@dataclass(frozen=True)
class GeoPoint:
    """Marker position on the globe."""

    lat: float
    lng: float


State = Union[Vec3, GeoPoint]


@dataclass(frozen=True)
class PeerState:
    """One participant as seen by other participants."""

    id: str
    position: State
    username: str | None = None


@dataclass(frozen=True)
class Identify:
    username: str


@dataclass(frozen=True)
class ClientMove:
    position: State


@dataclass(frozen=True)
class Sync:
    players: tuple[PeerState, ...]


@dataclass(frozen=True)
class Join:
    player: PeerState


@dataclass(frozen=True)
class Leave:
    id: str


@dataclass(frozen=True)
class ServerMove:
    id: str
    position: State


ClientMessage = Union[Identify, ClientMove]
ServerMessage = Union[Sync, Join, Leave, ServerMove]
Message = Union[ClientMessage, ServerMessage]


# Positions


def serialize_position(position: State) -> dict[str, float]:
    if isinstance(position, Vec3):
        return {"x": position.x, "y": position.y, "z": position.z}
    if isinstance(position, GeoPoint):
        return {"lat": position.lat, "lng": position.lng}
    raise TypeError(f"not a position: {position!r}")


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessage(f"field {key!r} must be a number, got {value!r}")
    try:
        number = float(value)
    except OverflowError:
        raise MalformedMessage(f"field {key!r} is out of range") from None
    if not math.isfinite(number):
        raise MalformedMessage(f"field {key!r} must be finite")
    return number


def deserialize_position(data: Any, kind: RoomKind | None = None) -> State:
    """Parse a position object.

    With ``kind`` given the shape must match that room variant; without it
    the shape is inferred from the keys present.
    """
    if not isinstance(data, dict):
        raise MalformedMessage(f"position must be an object, got {data!r}")
    if kind is None:
        kind = RoomKind.GLOBE if "lat" in data or "lng" in data else RoomKind.SPACE
    if kind is RoomKind.SPACE:
        return Vec3(_number(data, "x"), _number(data, "y"), _number(data, "z"))
    lat = _number(data, "lat")
    lng = _number(data, "lng")
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise MalformedMessage(f"coordinates out of range: ({lat}, {lng})")
    return GeoPoint(lat, lng)


def serialize_peer(peer: PeerState) -> dict[str, Any]:
    data: dict[str, Any] = {"id": peer.id, "position": serialize_position(peer.position)}
    if peer.username is not None:
        data["username"] = peer.username
    return data


def deserialize_peer(data: Any, kind: RoomKind | None = None) -> PeerState:
    if not isinstance(data, dict):
        raise MalformedMessage(f"player must be an object, got {data!r}")
    username = data.get("username")
    if username is not None and not isinstance(username, str):
        raise MalformedMessage("field 'username' must be a string")
    return PeerState(
        id=_string(data, "id"),
        position=deserialize_position(data.get("position"), kind),
        username=username,
    )


# Messages


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedMessage(f"field {key!r} must be a non-empty string")
    return value


def _to_dict(message: Message) -> dict[str, Any]:
    if isinstance(message, Identify):
        return {"type": MessageType.IDENTIFY.value, "username": message.username}
    if isinstance(message, ClientMove):
        return {
            "type": MessageType.MOVE.value,
            "position": serialize_position(message.position),
        }
    if isinstance(message, Sync):
        return {
            "type": MessageType.SYNC.value,
            "players": [serialize_peer(p) for p in message.players],
        }
    if isinstance(message, Join):
        return {"type": MessageType.JOIN.value, "player": serialize_peer(message.player)}
    if isinstance(message, Leave):
        return {"type": MessageType.LEAVE.value, "id": message.id}
    if isinstance(message, ServerMove):
        return {
            "type": MessageType.MOVE.value,
            "id": message.id,
            "position": serialize_position(message.position),
        }
    raise TypeError(f"not a protocol message: {message!r}")


def encode_message(message: Message) -> str:
    """Serialize a message to a JSON text frame."""
    return json.dumps(_to_dict(message), separators=(",", ":"))


def _load_frame(frame: str | bytes) -> tuple[MessageType, dict[str, Any]]:
    """Decode a frame into its tag and JSON object."""
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"frame is not valid UTF-8: {e}") from e
    try:
        data = json.loads(frame)
    except ValueError as e:
        raise MalformedMessage(f"frame is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessage("frame must be a JSON object")
    tag = data.get("type")
    try:
        msg_type = MessageType(tag)
    except ValueError:
        raise MalformedMessage(f"unknown message type {tag!r}") from None
    return msg_type, data


def parse_client_message(frame: str | bytes, kind: RoomKind) -> ClientMessage:
    """Parse a frame sent by a client into a room of the given kind.

    Raises:
        MalformedMessage: unknown tag, missing fields, or a tag that only
            the server may send.
    """
    msg_type, data = _load_frame(frame)
    if msg_type is MessageType.IDENTIFY:
        username = _string(data, "username")
        if len(username) > MAX_USERNAME_LENGTH or not username.isprintable():
            raise MalformedMessage(f"invalid username {username!r}")
        return Identify(username)
    if msg_type is MessageType.MOVE:
        # Any "id" the client includes is ignored; the server knows who sent it
        return ClientMove(deserialize_position(data.get("position"), kind))
    raise MalformedMessage(f"clients may not send {msg_type.value!r}")


def parse_server_message(
    frame: str | bytes, kind: RoomKind | None = None
) -> ServerMessage:
    """Parse a frame received from the server.

    Raises:
        MalformedMessage: unknown tag, missing fields, or a client-only tag.
    """
    msg_type, data = _load_frame(frame)
    if msg_type is MessageType.SYNC:
        players = data.get("players")
        if not isinstance(players, list):
            raise MalformedMessage("field 'players' must be a list")
        return Sync(tuple(deserialize_peer(p, kind) for p in players))
    if msg_type is MessageType.JOIN:
        return Join(deserialize_peer(data.get("player"), kind))
    if msg_type is MessageType.LEAVE:
        return Leave(_string(data, "id"))
    if msg_type is MessageType.MOVE:
        return ServerMove(
            _string(data, "id"), deserialize_position(data.get("position"), kind)
        )
    raise MalformedMessage(f"servers do not send {msg_type.value!r}")
