# pasiva/services/room_service.py
import logging
import random
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from pydantic import BaseModel, ValidationError

from pasiva.models.errors import (
    InvalidInput,
    InvalidRoomId,
    NetworkError,
    RoomIdGenerationFailed,
    RoomNotFound,
    RoomResult,
)
from pasiva.models.room import Language, Player, Room
from pasiva.services.room_code import generate_player_id, generate_room_id, is_valid_room_id
from pasiva.services.room_store import RoomStore, RoomStoreError
from pasiva.services.wheel_engine import RoomUpdate

logger = logging.getLogger("pasiva.services.room_service")  # Logger for this module

DEFAULT_MAX_ID_ATTEMPTS = 5


class CreatedRoom(BaseModel):
    room_id: str
    player_id: str


class JoinedRoom(BaseModel):
    room_id: str
    player_id: str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RoomService:
    """
    Lifecycle of rooms on top of a RoomStore: creating, joining, reading,
    observing and writing field updates. Every operation returns a RoomResult;
    store failures come back as NetworkError, never as raised exceptions.
    """

    def __init__(
        self,
        store: RoomStore,
        *,
        now: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        max_id_attempts: int = DEFAULT_MAX_ID_ATTEMPTS,
        optimistic_concurrency: bool = False,
    ):
        self.store = store
        self._now = now
        self._rng = rng or random.Random()
        self._max_id_attempts = max_id_attempts
        self.optimistic_concurrency = optimistic_concurrency

    async def create_room(self, host_nickname: str) -> RoomResult[CreatedRoom]:
        nickname = (host_nickname or "").strip()
        if not nickname:
            return RoomResult.fail(InvalidInput("Nickname cannot be empty"))

        for attempt in range(1, self._max_id_attempts + 1):
            room_id = generate_room_id(self._rng)
            try:
                taken = await self.store.exists(room_id)
            except RoomStoreError as e:
                logger.exception(f"Existence check for room {room_id} failed")
                return RoomResult.fail(NetworkError(e))
            if taken:
                logger.warning(f"Room id collision on {room_id} (attempt {attempt}/{self._max_id_attempts})")
                continue

            joined_at = self._now()
            host = Player(id=generate_player_id(joined_at, self._rng), nickname=nickname, joined_at=joined_at)
            room = Room(id=room_id, created_at=joined_at, host_id=host.id, players=[host])
            try:
                await self.store.create(room_id, room.to_document())
            except RoomStoreError as e:
                logger.exception(f"Creating room {room_id} failed")
                return RoomResult.fail(NetworkError(e))
            logger.info(f"Room {room_id} created by host {host.id} ('{nickname}')")
            return RoomResult.ok(CreatedRoom(room_id=room_id, player_id=host.id))

        logger.error(f"Gave up creating a room after {self._max_id_attempts} id collisions")
        return RoomResult.fail(RoomIdGenerationFailed(self._max_id_attempts))

    async def join_room(self, room_id: str, nickname: str) -> RoomResult[JoinedRoom]:
        if not is_valid_room_id(room_id):
            return RoomResult.fail(InvalidRoomId(room_id))
        nickname = (nickname or "").strip()
        if not nickname:
            return RoomResult.fail(InvalidInput("Nickname cannot be empty"))

        try:
            if not await self.store.exists(room_id):
                return RoomResult.fail(RoomNotFound(room_id))
        except RoomStoreError as e:
            logger.exception(f"Existence check for room {room_id} failed")
            return RoomResult.fail(NetworkError(e))

        joined_at = self._now()
        player = Player(id=generate_player_id(joined_at, self._rng), nickname=nickname, joined_at=joined_at)
        # Appends to whatever player list is current at write time; concurrent joins race
        result = await self._read_modify_write(room_id, lambda room: {"players": [*room.players, player]})
        if not result.is_success:
            return RoomResult.fail(result.error)
        logger.info(f"Player {player.id} ('{nickname}') joined room {room_id}")
        return RoomResult.ok(JoinedRoom(room_id=room_id, player_id=player.id))

    async def get_room(self, room_id: str) -> RoomResult[Room]:
        if not is_valid_room_id(room_id):
            return RoomResult.fail(InvalidRoomId(room_id))
        try:
            document = await self.store.get(room_id)
        except RoomStoreError as e:
            logger.exception(f"Reading room {room_id} failed")
            return RoomResult.fail(NetworkError(e))
        if document is None:
            return RoomResult.fail(RoomNotFound(room_id))
        return self._decode(room_id, document)

    async def observe_room(self, room_id: str) -> AsyncIterator[RoomResult[Room]]:
        """
        Live stream of the room: the current state first, then every later write.
        Failures arrive as failed results and the stream keeps going.
        """
        if not is_valid_room_id(room_id):
            yield RoomResult.fail(InvalidRoomId(room_id))
            return
        subscription = self.store.subscribe(room_id)
        try:
            async for item in subscription:
                if isinstance(item, RoomStoreError):
                    logger.warning(f"Observation of room {room_id} hit a store error: {item}")
                    yield RoomResult.fail(NetworkError(item))
                elif item is None:
                    yield RoomResult.fail(RoomNotFound(room_id))
                else:
                    yield self._decode(room_id, item)
        except RoomStoreError as e:
            logger.exception(f"Subscription to room {room_id} failed")
            yield RoomResult.fail(NetworkError(e))
        finally:
            await subscription.aclose()

    async def start_game(self, room_id: str) -> RoomResult[Room]:
        result = await self.update_room(room_id, {"is_game_started": True})
        if result.is_success:
            logger.info(f"Game started in room {room_id}")
        return result

    async def set_secret_word(self, room_id: str, word: str, language: Language | str) -> RoomResult[Room]:
        secret = (word or "").strip()
        if not secret:
            return RoomResult.fail(InvalidInput("Secret word cannot be empty"))
        if not isinstance(language, Language):
            language = Language.from_string(language)
        result = await self.update_room(room_id, {"secret_word": secret.upper(), "language": language})
        if result.is_success:
            logger.info(f"Secret word set in room {room_id} ({len(secret)} chars, {language.value})")
        return result

    async def update_room(
        self, room_id: str, updates: RoomUpdate, based_on: Optional[Room] = None
    ) -> RoomResult[Room]:
        """
        Merges field updates into the current document and writes it back whole.
        `based_on` is the snapshot the updates were decided from; with optimistic
        concurrency on, the write is rejected if the room moved past it.
        """
        if not is_valid_room_id(room_id):
            return RoomResult.fail(InvalidRoomId(room_id))
        return await self._read_modify_write(room_id, lambda room: updates, based_on)

    async def _read_modify_write(
        self,
        room_id: str,
        decide: Callable[[Room], RoomUpdate],
        based_on: Optional[Room] = None,
    ) -> RoomResult[Room]:
        current = await self.get_room(room_id)
        if not current.is_success:
            return current
        room = current.value

        updated = room.apply_updates(decide(room))
        updated = updated.model_copy(update={"version": room.version + 1})

        expected_version = None
        if self.optimistic_concurrency:
            expected_version = based_on.version if based_on is not None else room.version
        try:
            await self.store.set(room_id, updated.to_document(), expected_version=expected_version)
        except RoomStoreError as e:
            logger.warning(f"Write to room {room_id} failed: {e}")
            return RoomResult.fail(NetworkError(e))
        return RoomResult.ok(updated)

    def _decode(self, room_id: str, document: dict) -> RoomResult[Room]:
        try:
            return RoomResult.ok(Room.from_document(document))
        except ValidationError as e:
            logger.error(f"Stored document for room {room_id} is malformed: {e}")
            return RoomResult.fail(NetworkError(e))
