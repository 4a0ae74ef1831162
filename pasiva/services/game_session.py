# pasiva/services/game_session.py
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from pasiva.models.errors import RoomResult
from pasiva.models.room import Language, Room
from pasiva.services import wheel_engine
from pasiva.services.room_service import RoomService

logger = logging.getLogger("pasiva.services.game_session")  # Logger for this module


class GameSession:
    """
    One player's connection to one room. Keeps the last observed snapshot and the
    pending points of a Points spin; decides with the wheel engine and writes the
    result through the room service. Nothing here is persisted.
    """

    def __init__(
        self,
        room_service: RoomService,
        room_id: str,
        player_id: str,
        *,
        rng: Optional[random.Random] = None,
        spin_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.room_service = room_service
        self.room_id = room_id
        self.player_id = player_id
        self.room: Optional[Room] = None
        self.pending_points = 0
        self._rng = rng or random.Random()
        self._spin_delay_seconds = spin_delay_seconds
        self._sleep = sleep
        self._spin_in_flight = False

    @property
    def is_spin_in_flight(self) -> bool:
        return self._spin_in_flight

    def on_room_snapshot(self, room: Room) -> None:
        # Our own write results and the subscription echo can arrive in either order
        if self.room is None or room.version >= self.room.version:
            self.room = room

    async def spin(self) -> RoomResult[bool]:
        snapshot = self.room
        if snapshot is None or self._spin_in_flight:
            return RoomResult.ok(False)
        updates = wheel_engine.begin_spin(snapshot, self.player_id)
        if not updates:
            return RoomResult.ok(False)

        self._spin_in_flight = True
        self.pending_points = 0
        try:
            started = await self.room_service.update_room(self.room_id, updates, based_on=snapshot)
            if not started.is_success:
                return RoomResult.fail(started.error)
            self.on_room_snapshot(started.value)

            try:
                if self._spin_delay_seconds > 0:
                    await self._sleep(self._spin_delay_seconds)
            except asyncio.CancelledError:
                await asyncio.shield(self._release_wheel())
                raise

            slice_index = wheel_engine.draw_slice_index(self._rng)
            # Outcome is decided from the snapshot the spin started from
            resolution = wheel_engine.resolve_spin(snapshot, self.player_id, slice_index)
            resolved = await self.room_service.update_room(self.room_id, resolution.updates, based_on=started.value)
            if not resolved.is_success:
                logger.warning(
                    f"R:{self.room_id} - P:{self.player_id} could not resolve spin: {resolved.error}. Releasing the wheel."
                )
                await self._release_wheel()
                return RoomResult.fail(resolved.error)
            self.pending_points = resolution.pending_points
            self.on_room_snapshot(resolved.value)
            logger.debug(f"R:{self.room_id} - P:{self.player_id} spin resolved to slice {slice_index}")
            return RoomResult.ok(True)
        finally:
            self._spin_in_flight = False

    async def _release_wheel(self) -> None:
        """Clear is_spinning on the latest stored room after a spin that never resolved."""
        released = await self.room_service.update_room(self.room_id, {"is_spinning": False})
        if released.is_success:
            self.on_room_snapshot(released.value)
        else:
            logger.error(f"R:{self.room_id} - P:{self.player_id} failed to release the wheel: {released.error}")

    async def guess_letter(self, letter: str) -> RoomResult[bool]:
        snapshot = self.room
        if snapshot is None or self._spin_in_flight:
            return RoomResult.ok(False)
        updates = wheel_engine.guess_letter(snapshot, self.player_id, letter, self.pending_points)
        return await self._write_guess(snapshot, updates)

    async def guess_word(self, word: str) -> RoomResult[bool]:
        snapshot = self.room
        if snapshot is None or self._spin_in_flight:
            return RoomResult.ok(False)
        updates = wheel_engine.guess_word(snapshot, self.player_id, word, self.pending_points)
        return await self._write_guess(snapshot, updates)

    async def _write_guess(self, snapshot: Room, updates: wheel_engine.RoomUpdate) -> RoomResult[bool]:
        if not updates:
            return RoomResult.ok(False)
        # Consumed whatever the outcome of the guess or the write
        self.pending_points = 0
        result = await self.room_service.update_room(self.room_id, updates, based_on=snapshot)
        if not result.is_success:
            return RoomResult.fail(result.error)
        self.on_room_snapshot(result.value)
        return RoomResult.ok(True)

    async def set_secret_word(self, word: str, language: Language | str) -> RoomResult[bool]:
        if not self._is_host():
            logger.debug(f"R:{self.room_id} - P:{self.player_id} is not the host, cannot set the secret word. Ignoring.")
            return RoomResult.ok(False)
        result = await self.room_service.set_secret_word(self.room_id, word, language)
        if not result.is_success:
            return RoomResult.fail(result.error)
        self.on_room_snapshot(result.value)
        return RoomResult.ok(True)

    async def start_game(self) -> RoomResult[bool]:
        if not self._is_host():
            logger.debug(f"R:{self.room_id} - P:{self.player_id} is not the host, cannot start the game. Ignoring.")
            return RoomResult.ok(False)
        result = await self.room_service.start_game(self.room_id)
        if not result.is_success:
            return RoomResult.fail(result.error)
        self.on_room_snapshot(result.value)
        return RoomResult.ok(True)

    def _is_host(self) -> bool:
        return self.room is not None and self.room.is_host(self.player_id)

    def view(self) -> Optional[Dict[str, Any]]:
        """Snapshot as this player sees it; None until the first snapshot arrives."""
        room = self.room
        if room is None:
            return None
        current = room.current_turn_player
        is_my_turn = room.is_current_turn(self.player_id)
        has_word = room.normalized_secret_word is not None
        last_slice = room.last_slice
        return {
            "room_id": room.id,
            "player_id": self.player_id,
            "host_id": room.host_id,
            "is_host": room.is_host(self.player_id),
            "players": [
                {
                    "id": player.id,
                    "nickname": player.nickname,
                    "score": room.score_of(player.id),
                    "is_current_turn": current is not None and current.id == player.id,
                }
                for player in room.playing_players
            ],
            "is_game_started": room.is_game_started,
            "is_game_over": room.is_game_over,
            "is_spinning": room.is_spinning,
            "has_secret_word": has_word,
            "display_word": room.display_word(self.player_id),
            "language": room.language.value,
            "language_name": room.language.display_name,
            "alphabet": room.language.alphabet,
            "revealed_letters": sorted(room.revealed_letters),
            "current_turn_player_id": current.id if current else None,
            "is_my_turn": is_my_turn,
            "can_spin": (
                is_my_turn
                and has_word
                and room.is_game_started
                and not room.is_game_over
                and not room.is_spinning
                and not room.is_guess_pending
                and not self._spin_in_flight
            ),
            "can_guess": is_my_turn and has_word and room.is_guess_pending,
            "last_slice_index": room.last_slice_index,
            "last_slice_text": last_slice.display_text if last_slice else None,
            "has_extra_turn": room.has_extra_turn,
            "pending_points": self.pending_points,
            "winner_id": room.winner_id,
            "winner_nickname": room.winner_nickname,
        }
