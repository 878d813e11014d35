"""
Presence / room coordinator.

Tracks live WebSocket connections, the house-wide room every connected user
can enter, and one room per party. Each room has its own lock: a membership
change and the broadcast it triggers finish before the next change of that
room is processed. Rooms are independent of each other.

Frames sent to clients are JSON objects: { "event": "...", "data": {...} }.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from houseparty.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

HOUSE_ROOM = "house"


def party_room(party_id: int) -> str:
    return f"party:{party_id}"


class Socket(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class Connection:
    """A single live connection and the identity bound to it at connect time."""
    socket: Socket
    user_id: int
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    rooms: set[str] = field(default_factory=set)


class PresenceCoordinator:
    def __init__(self):
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}  # room -> connection ids
        self._locks = KeyedLocks()

    # ── Connection lifecycle ───────────────────────────

    def connect(self, socket: Socket, user_id: int) -> Connection:
        conn = Connection(socket=socket, user_id=user_id)
        self._connections[conn.connection_id] = conn
        logger.info("Realtime connected: user=%s, conn=%s", user_id, conn.connection_id)
        return conn

    async def disconnect(self, connection_id: str) -> Connection | None:
        """Drop a connection, leaving every room it was in.

        Leaving is broadcast exactly as an explicit leave would be, using the
        user id bound at connect time.
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return None

        for room in sorted(conn.rooms):
            if room == HOUSE_ROOM:
                await self.leave(connection_id)
            else:
                await self._leave_room(conn, room, "user_left")
        self._connections.pop(connection_id, None)
        logger.info("Realtime disconnected: user=%s, conn=%s", conn.user_id, connection_id)
        return conn

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    # ── House ───────────────────────────

    async def enter(self, connection_id: str) -> bool:
        """Put a connection in the house room.

        Returns True when its user was not in the house before; only then is
        ``user_entered`` broadcast to the other members.
        """
        conn = self._require(connection_id)
        async with self._locks.hold(HOUSE_ROOM):
            members = self._rooms.setdefault(HOUSE_ROOM, set())
            if connection_id in members:
                return False
            newly_present = conn.user_id not in self._user_ids(HOUSE_ROOM)
            members.add(connection_id)
            conn.rooms.add(HOUSE_ROOM)
            if newly_present:
                await self._send_to_room(
                    HOUSE_ROOM, "user_entered", {"userId": conn.user_id}, exclude_user=conn.user_id
                )
        logger.info("User %s entered the house", conn.user_id)
        return newly_present

    async def leave(self, connection_id: str) -> bool:
        """Take a connection out of the house room.

        Returns True when this was the user's last connection in the house;
        only then is ``user_left`` broadcast.
        """
        conn = self._require(connection_id)
        async with self._locks.hold(HOUSE_ROOM):
            members = self._rooms.get(HOUSE_ROOM, set())
            if connection_id not in members:
                return False
            members.discard(connection_id)
            conn.rooms.discard(HOUSE_ROOM)
            gone = conn.user_id not in self._user_ids(HOUSE_ROOM)
            if gone:
                await self._send_to_room(HOUSE_ROOM, "user_left", {"userId": conn.user_id})
        logger.info("User %s left the house", conn.user_id)
        return gone

    def list_house_members(self) -> list[int]:
        return sorted(self._user_ids(HOUSE_ROOM))

    def is_in_house(self, user_id: int) -> bool:
        return user_id in self._user_ids(HOUSE_ROOM)

    # ── Party rooms ───────────────────────────

    async def join_party_room(self, connection_id: str, party_id: int) -> None:
        conn = self._require(connection_id)
        room = party_room(party_id)
        async with self._locks.hold(room):
            self._rooms.setdefault(room, set()).add(connection_id)
            conn.rooms.add(room)
        logger.info("User %s joined room %s", conn.user_id, room)

    async def leave_party_room(self, connection_id: str, party_id: int) -> None:
        conn = self._require(connection_id)
        await self._leave_room(conn, party_room(party_id), None)

    async def remove_user_from_party_room(self, user_id: int, party_id: int) -> None:
        """Drop every connection of a user who is no longer a participant."""
        room = party_room(party_id)
        async with self._locks.hold(room):
            members = self._rooms.get(room)
            if not members:
                return
            for connection_id in list(members):
                conn = self._connections.get(connection_id)
                if conn is not None and conn.user_id == user_id:
                    members.discard(connection_id)
                    conn.rooms.discard(room)
            if not members:
                del self._rooms[room]
        logger.info("User %s removed from room %s", user_id, room)

    def party_members(self, party_id: int) -> list[int]:
        return sorted(self._user_ids(party_room(party_id)))

    async def close_party_room(self, party_id: int) -> None:
        room = party_room(party_id)
        async with self._locks.hold(room):
            for connection_id in self._rooms.pop(room, set()):
                conn = self._connections.get(connection_id)
                if conn is not None:
                    conn.rooms.discard(room)

    # ── Broadcasting ───────────────────────────

    async def broadcast_house(self, event: str, data: dict) -> None:
        async with self._locks.hold(HOUSE_ROOM):
            await self._send_to_room(HOUSE_ROOM, event, data)

    async def broadcast_party(self, party_id: int, event: str, data: dict) -> None:
        room = party_room(party_id)
        async with self._locks.hold(room):
            await self._send_to_room(room, event, data)

    async def send(self, connection_id: str, event: str, data: Any) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            await self._send(conn, {"event": event, "data": data})

    # ── Internals ───────────────────────────

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise KeyError(f"Unknown connection {connection_id}")
        return conn

    def _user_ids(self, room: str) -> set[int]:
        return {
            self._connections[cid].user_id
            for cid in self._rooms.get(room, set())
            if cid in self._connections
        }

    async def _leave_room(self, conn: Connection, room: str, event: str | None) -> None:
        async with self._locks.hold(room):
            members = self._rooms.get(room)
            if members is None or conn.connection_id not in members:
                return
            members.discard(conn.connection_id)
            conn.rooms.discard(room)
            if not members:
                del self._rooms[room]
            elif event is not None and conn.user_id not in self._user_ids(room):
                await self._send_to_room(
                    room, event, {"userId": conn.user_id, "partyId": int(room.split(":", 1)[1])}
                )

    async def _send_to_room(self, room: str, event: str, data: dict, exclude_user: int | None = None) -> None:
        frame = {"event": event, "data": data}
        for connection_id in sorted(self._rooms.get(room, set())):
            conn = self._connections.get(connection_id)
            if conn is None or conn.user_id == exclude_user:
                continue
            await self._send(conn, frame)

    async def _send(self, conn: Connection, frame: dict) -> None:
        try:
            await conn.socket.send_json(frame)
        except Exception as exc:
            logger.warning("Send to user=%s conn=%s failed: %s", conn.user_id, conn.connection_id, exc)
