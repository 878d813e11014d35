import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from houseparty.realtime.presence import Connection, PresenceCoordinator
from houseparty.services import party_service, user_service
from houseparty.services.token_service import TokenKind, TokenService

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHORIZED = 4401


class RealtimeError(Exception):
    pass


async def _persist_presence(websocket: WebSocket, user_id: int, in_house: bool) -> None:
    session_factory = websocket.app.state.session_factory
    async with session_factory() as db:
        await user_service.set_presence(db, user_id, in_house)


def _party_id(data: Any) -> int:
    party_id = data.get("partyId") if isinstance(data, dict) else None
    if not isinstance(party_id, int):
        raise RealtimeError("partyId is required")
    return party_id


async def _join_party_room(websocket: WebSocket, presence: PresenceCoordinator, conn: Connection, data: Any):
    party_id = _party_id(data)
    async with websocket.app.state.session_factory() as db:
        party = await party_service.get_party(db, party_id)
        if party is None or not party.is_active:
            raise RealtimeError("Party is no longer active")
        if conn.user_id not in await party_service.get_participant_ids(db, party_id):
            raise RealtimeError("Not in party")
    await presence.join_party_room(conn.connection_id, party_id)
    return {"partyId": party_id}


async def _dispatch(websocket: WebSocket, presence: PresenceCoordinator, conn: Connection, event: str, data: Any):
    """Run one client event and return the payload for its acknowledgement."""
    if event == "enter_house":
        if await presence.enter(conn.connection_id):
            await _persist_presence(websocket, conn.user_id, True)
        return {"userId": conn.user_id}
    if event == "leave_house":
        if await presence.leave(conn.connection_id):
            await _persist_presence(websocket, conn.user_id, False)
        return {"userId": conn.user_id}
    if event == "get_users_in_house":
        return presence.list_house_members()
    if event == "join_party_room":
        return await _join_party_room(websocket, presence, conn, data)
    if event == "leave_party_room":
        party_id = _party_id(data)
        await presence.leave_party_room(conn.connection_id, party_id)
        return {"partyId": party_id}
    raise RealtimeError(f"Unknown event: {event}")


async def _handle_frame(websocket: WebSocket, presence: PresenceCoordinator, conn: Connection, raw: str) -> None:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await presence.send(conn.connection_id, "error", {"message": "Malformed frame"})
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await presence.send(conn.connection_id, "error", {"message": "Malformed frame"})
        return

    ack = frame.get("ack")
    try:
        result = await _dispatch(websocket, presence, conn, frame["event"], frame.get("data"))
    except RealtimeError as exc:
        error = {"message": str(exc)}
        if ack is not None:
            error["ack"] = ack
        await presence.send(conn.connection_id, "error", error)
        return
    if ack is not None:
        await websocket.send_json({"event": "ack", "ack": ack, "data": result})


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Realtime presence endpoint.

    Connect with: ws://host/ws?token=<access token>

    Frames (JSON):
      -> { "event": "enter_house" }
      -> { "event": "get_users_in_house", "ack": 1 }
      -> { "event": "join_party_room", "data": { "partyId": 7 } }
      <- { "event": "user_entered", "data": { "userId": 3 } }
    """
    tokens: TokenService = websocket.app.state.tokens
    presence: PresenceCoordinator = websocket.app.state.presence

    token = websocket.query_params.get("token")
    user_id = tokens.verify(token, TokenKind.access) if token else None
    if user_id is None:
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason="Invalid token")
        return

    await websocket.accept()
    conn = presence.connect(websocket, user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(websocket, presence, conn, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error for user %d: %s", user_id, e)
    finally:
        was_in_house = presence.is_in_house(user_id)
        await presence.disconnect(conn.connection_id)
        if was_in_house and not presence.is_in_house(user_id):
            await _persist_presence(websocket, user_id, False)
