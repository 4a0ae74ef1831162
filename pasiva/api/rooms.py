# pasiva/api/rooms.py
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pasiva.api import deps
from pasiva.models.errors import InvalidRoomId, RoomError, RoomErrorKind, RoomResult
from pasiva.models.room import Room
from pasiva.services.room_code import extract_room_id
from pasiva.services.room_service import CreatedRoom, JoinedRoom, RoomService

logger = logging.getLogger("pasiva.api.rooms")  # Logger for this module
router = APIRouter()

ERROR_STATUS_CODES: Dict[RoomErrorKind, int] = {
    RoomErrorKind.INVALID_ROOM_ID: 422,
    RoomErrorKind.INVALID_INPUT: 422,
    RoomErrorKind.ROOM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RoomErrorKind.ROOM_ID_GENERATION_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    RoomErrorKind.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    RoomErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
}


class NicknameRequest(BaseModel):
    nickname: str

class HostActionRequest(BaseModel):
    player_id: str

class SecretWordRequest(BaseModel):
    player_id: str
    word: str
    language: str = "ENGLISH"

class RoomCodeRequest(BaseModel):
    payload: str

class RoomCodeResponse(BaseModel):
    room_id: str


def raise_for_error(result: RoomResult) -> Any:
    """Unwraps a successful result; a failed one is raised for room_error_handler."""
    if not result.is_success:
        logger.info(f"Room operation failed: {result.error.kind.value} - {result.error}")
    return result.get_or_raise()

async def room_error_handler(request: Request, exc: RoomError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"detail": str(exc), "error": exc.kind.value},
    )

def room_to_public(room: Room, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """Stored document shape, with the secret word only shown to the host."""
    document = room.to_document()
    if viewer_id is None or not room.is_host(viewer_id):
        document.pop("secretWord", None)
    document["displayWord"] = room.display_word(viewer_id)
    return document

async def _require_host(room_service: RoomService, room_id: str, player_id: str) -> Room:
    room = raise_for_error(await room_service.get_room(room_id))
    if not room.is_host(player_id):
        logger.warning(f"P:{player_id} tried a host-only action in room {room_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the host can do this")
    return room


@router.post("/rooms", response_model=CreatedRoom, status_code=status.HTTP_201_CREATED)
async def create_room(body: NicknameRequest, room_service: RoomService = Depends(deps.get_room_service)):
    return raise_for_error(await room_service.create_room(body.nickname))

@router.post("/rooms/{room_id}/players", response_model=JoinedRoom, status_code=status.HTTP_201_CREATED)
async def join_room(room_id: str, body: NicknameRequest, room_service: RoomService = Depends(deps.get_room_service)):
    return raise_for_error(await room_service.join_room(room_id, body.nickname))

@router.get("/rooms/{room_id}")
async def get_room(
    room_id: str,
    player_id: Optional[str] = None,
    room_service: RoomService = Depends(deps.get_room_service),
):
    room = raise_for_error(await room_service.get_room(room_id))
    return room_to_public(room, player_id)

@router.post("/rooms/{room_id}/start")
async def start_game(room_id: str, body: HostActionRequest, room_service: RoomService = Depends(deps.get_room_service)):
    await _require_host(room_service, room_id, body.player_id)
    room = raise_for_error(await room_service.start_game(room_id))
    return room_to_public(room, body.player_id)

@router.put("/rooms/{room_id}/secret-word")
async def set_secret_word(room_id: str, body: SecretWordRequest, room_service: RoomService = Depends(deps.get_room_service)):
    await _require_host(room_service, room_id, body.player_id)
    room = raise_for_error(await room_service.set_secret_word(room_id, body.word, body.language))
    return room_to_public(room, body.player_id)

@router.post("/room-codes/resolve", response_model=RoomCodeResponse)
async def resolve_room_code(body: RoomCodeRequest):
    """Room code from a scanned QR payload (bare code or a link containing it)."""
    room_id = extract_room_id(body.payload)
    if room_id is None:
        raise InvalidRoomId(body.payload)
    return RoomCodeResponse(room_id=room_id)
