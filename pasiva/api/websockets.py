# pasiva/api/websockets.py
import asyncio
import logging
import random
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from pasiva.api import deps
from pasiva.models.errors import RoomError, RoomResult
from pasiva.services.game_session import GameSession
from pasiva.services.room_service import RoomService

logger = logging.getLogger("pasiva.api.websockets")  # Logger for this module
router = APIRouter()


class RoomConnectionManager:
    def __init__(self):
        # room_id -> player_id -> WebSocket
        self.active_connections: Dict[str, Dict[str, WebSocket]] = {}

    async def connect(self, websocket: WebSocket, room_id: str, player_id: str):
        await websocket.accept()
        room_connections = self.active_connections.setdefault(room_id, {})
        previous = room_connections.get(player_id)
        if previous is not None:
            logger.info(f"Player {player_id} reconnected to room {room_id}, closing old connection.")
            try:
                await previous.close(code=status.WS_1001_GOING_AWAY, reason="New connection established")
            except RuntimeError as e:
                logger.warning(f"Old websocket for {player_id} was already closed: {e}")
        room_connections[player_id] = websocket
        logger.info(f"Player {player_id} connected to room {room_id}. Connected: {list(room_connections.keys())}")

    def disconnect(self, room_id: str, player_id: str, websocket: Optional[WebSocket] = None):
        room_connections = self.active_connections.get(room_id)
        if not room_connections or player_id not in room_connections:
            return
        # A replaced connection must not evict its replacement
        if websocket is not None and room_connections[player_id] is not websocket:
            return
        del room_connections[player_id]
        logger.info(f"Player {player_id} removed from active connections for room {room_id}")
        if not room_connections:
            del self.active_connections[room_id]

    def connection_count(self, room_id: str) -> int:
        return len(self.active_connections.get(room_id, {}))

room_manager = RoomConnectionManager()


async def _send_json_safe(websocket: WebSocket, message: Dict[str, Any], player_id: str, room_id: str) -> bool:
    if websocket.client_state != WebSocketState.CONNECTED:
        logger.debug(f"WS for P:{player_id} R:{room_id} already closed before sending {message.get('type')}.")
        return False
    try:
        await websocket.send_json(message)
        return True
    except (RuntimeError, WebSocketDisconnect) as e:
        logger.warning(f"Error sending {message.get('type')} to P:{player_id} R:{room_id}: {e}")
        return False

def _error_message(error: RoomError) -> Dict[str, Any]:
    return {"type": "error", "payload": {"error": error.kind.value, "message": str(error)}}

async def _forward_room_updates(websocket: WebSocket, session: GameSession, room_service: RoomService):
    """Pushes every observed state of the room to this client as its own view."""
    async for result in room_service.observe_room(session.room_id):
        if result.is_success:
            session.on_room_snapshot(result.value)
            message = {"type": "room_state", "payload": session.view()}
        else:
            message = _error_message(result.error)
        await _send_json_safe(websocket, message, session.player_id, session.room_id)

async def _dispatch_action(session: GameSession, action_type: Optional[str], payload: Dict[str, Any]) -> Optional[RoomResult[bool]]:
    if action_type == "guess_letter":
        return await session.guess_letter(str(payload.get("letter", "")))
    if action_type == "guess_word":
        return await session.guess_word(str(payload.get("word", "")))
    if action_type == "set_secret_word":
        return await session.set_secret_word(str(payload.get("word", "")), payload.get("language"))
    if action_type == "start_game":
        return await session.start_game()
    return None

async def _run_spin(websocket: WebSocket, session: GameSession):
    result = await session.spin()
    if not result.is_success:
        await _send_json_safe(websocket, _error_message(result.error), session.player_id, session.room_id)


@router.websocket("/ws/rooms/{room_id}")
async def room_websocket_endpoint(
    websocket: WebSocket,
    room_id: str,
    player_id: str = Query(..., description="Player id returned by create/join"),
    room_service: RoomService = Depends(deps.get_room_service),
    spin_delay_seconds: float = Depends(deps.get_spin_delay_seconds),
    rng: random.Random = Depends(deps.get_game_rng),
):
    initial = await room_service.get_room(room_id)
    if not initial.is_success:
        logger.warning(f"WS rejected for P:{player_id} R:{room_id}: {initial.error}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(initial.error))
        return
    if initial.value.find_player(player_id) is None:
        logger.warning(f"P:{player_id} is not a member of R:{room_id}. Closing WS.")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Player not in this room")
        return

    await room_manager.connect(websocket, room_id, player_id)
    session = GameSession(room_service, room_id, player_id, rng=rng, spin_delay_seconds=spin_delay_seconds)
    session.on_room_snapshot(initial.value)
    forward_task = asyncio.create_task(_forward_room_updates(websocket, session, room_service))
    spin_tasks: Set[asyncio.Task] = set()

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                data = {}
            action_type = data.get("action_type")
            payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
            logger.debug(f"R:{room_id} - P:{player_id} sent action '{action_type}'")

            if action_type == "spin":
                # Runs alongside the receive loop so a repeated spin hits the in-flight guard
                task = asyncio.create_task(_run_spin(websocket, session))
                spin_tasks.add(task)
                task.add_done_callback(spin_tasks.discard)
                continue

            result = await _dispatch_action(session, action_type, payload)
            if result is None:
                await _send_json_safe(
                    websocket,
                    {"type": "error", "payload": {"error": "unknown_action", "message": f"Unknown action '{action_type}'"}},
                    player_id,
                    room_id,
                )
            elif not result.is_success:
                await _send_json_safe(websocket, _error_message(result.error), player_id, room_id)
    except WebSocketDisconnect:
        logger.info(f"WS Disconnected: P:{player_id} R:{room_id}.")
    except Exception as e:
        logger.exception(f"Unexpected error in WS loop for P:{player_id} R:{room_id}: {e}")
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        forward_task.cancel()
        # A started spin is let finish so the room is never left spinning
        if spin_tasks:
            await asyncio.gather(*spin_tasks, return_exceptions=True)
        await asyncio.gather(forward_task, return_exceptions=True)
        room_manager.disconnect(room_id, player_id, websocket)
        logger.info(f"Cleaned up WS session for P:{player_id} R:{room_id}. Pending points dropped: {session.pending_points}")
