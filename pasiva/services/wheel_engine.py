# pasiva/services/wheel_engine.py
"""
Pure turn/wheel decisions. Every function takes the room snapshot the caller
last observed plus an action, and returns the field updates to write back
(snake_case Room field names). An empty update means the action was refused.
No I/O happens here; randomness comes in through the caller.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from pasiva.models.room import Language, Room
from pasiva.models.wheel import SLICE_COUNT, BankruptSlice, ExtraTurnSlice, PointsSlice, WheelSlice, slice_at

logger = logging.getLogger("pasiva.services.wheel_engine")  # Logger for this module

RoomUpdate = Dict[str, Any]


@dataclass(frozen=True)
class SpinResolution:
    updates: RoomUpdate = field(default_factory=dict)
    slice: Optional[WheelSlice] = None
    slice_index: Optional[int] = None
    # Points value the caller holds until the next guess; 0 for Bankrupt/ExtraTurn
    pending_points: int = 0


def draw_slice_index(rng: random.Random) -> int:
    return rng.randrange(SLICE_COUNT)


def advance_turn_index(current_index: int, playing_count: int) -> Optional[int]:
    if playing_count <= 0:
        return None
    return (current_index + 1) % playing_count


def normalize_word_letters(word: str, language: Language) -> List[str]:
    """Letters of the word as they are matched against guesses; whitespace dropped."""
    return [language.normalize_letter(ch) for ch in word if not ch.isspace()]


def is_word_complete(word: str, language: Language, revealed_letters: FrozenSet[str]) -> bool:
    return all(ch in revealed_letters for ch in normalize_word_letters(word, language))


def _can_take_turn_action(room: Room, player_id: str, action: str) -> bool:
    if room.is_host(player_id):
        logger.debug(f"R:{room.id} - Host {player_id} tried to {action}. Ignoring.")
        return False
    if room.is_game_over:
        logger.debug(f"R:{room.id} - P:{player_id} tried to {action} after game over. Ignoring.")
        return False
    if not room.playing_players:
        logger.debug(f"R:{room.id} - P:{player_id} tried to {action} with no playing players. Ignoring.")
        return False
    if not room.is_current_turn(player_id):
        logger.debug(f"R:{room.id} - P:{player_id} tried to {action} but it's not their turn. Ignoring.")
        return False
    return True


def _next_turn_index(room: Room) -> int:
    # _can_take_turn_action already guaranteed a non-empty playing subset
    return advance_turn_index(room.safe_turn_index, len(room.playing_players))


def begin_spin(room: Room, player_id: str) -> RoomUpdate:
    """First half of a spin: flag the wheel as spinning and clear the last outcome."""
    if not _can_take_turn_action(room, player_id, "spin"):
        return {}
    if not room.is_game_started or room.normalized_secret_word is None:
        logger.debug(f"R:{room.id} - P:{player_id} tried to spin before the game and word were set. Ignoring.")
        return {}
    if room.is_spinning:
        logger.debug(f"R:{room.id} - P:{player_id} tried to spin while the wheel is spinning. Ignoring.")
        return {}
    if room.is_guess_pending:
        logger.debug(f"R:{room.id} - P:{player_id} tried to spin with a guess pending. Ignoring.")
        return {}
    return {"is_spinning": True, "last_slice_index": None, "has_extra_turn": False}


def resolve_spin(room: Room, player_id: str, slice_index: int) -> SpinResolution:
    """
    Second half of a spin, applied after the animation delay.
    `room` is the snapshot the spin was started from.
    """
    if room.is_host(player_id) or not room.playing_players:
        return SpinResolution()

    slice_index = slice_index % SLICE_COUNT
    wheel_slice = slice_at(slice_index)

    if isinstance(wheel_slice, BankruptSlice):
        scores = dict(room.player_scores)
        scores[player_id] = 0
        updates = {
            "is_spinning": False,
            "last_slice_index": slice_index,
            "player_scores": scores,
            "current_turn_index": _next_turn_index(room),
            "has_extra_turn": False,
        }
        logger.info(f"R:{room.id} - P:{player_id} hit BANKRUPT. Turn passes to index {updates['current_turn_index']}.")
        return SpinResolution(updates=updates, slice=wheel_slice, slice_index=slice_index)

    if isinstance(wheel_slice, ExtraTurnSlice):
        updates = {"is_spinning": False, "last_slice_index": slice_index, "has_extra_turn": True}
        logger.info(f"R:{room.id} - P:{player_id} won an EXTRA TURN.")
        return SpinResolution(updates=updates, slice=wheel_slice, slice_index=slice_index)

    if isinstance(wheel_slice, PointsSlice):
        updates = {"is_spinning": False, "last_slice_index": slice_index, "has_extra_turn": False}
        logger.info(f"R:{room.id} - P:{player_id} landed on {wheel_slice.value} points. Waiting for a guess.")
        return SpinResolution(updates=updates, slice=wheel_slice, slice_index=slice_index, pending_points=wheel_slice.value)

    raise ValueError(f"Unhandled wheel slice: {wheel_slice!r}")


def guess_letter(room: Room, player_id: str, letter: str, pending_points: int) -> RoomUpdate:
    """
    Reveals `letter` and scores pending_points per occurrence when it is in the word.
    A letter that completes the word ends the game without passing the turn.
    """
    if not _can_take_turn_action(room, player_id, "guess a letter"):
        return {}
    word = room.normalized_secret_word
    if word is None:
        logger.debug(f"R:{room.id} - P:{player_id} guessed a letter before a secret word was set. Ignoring.")
        return {}

    candidate = (letter or "").strip()
    if len(candidate) != 1:
        logger.debug(f"R:{room.id} - P:{player_id} sent an invalid letter '{letter}'. Ignoring.")
        return {}
    guessed = room.language.normalize_letter(candidate)
    if guessed not in room.language.alphabet:
        logger.debug(f"R:{room.id} - P:{player_id} guessed '{guessed}', not in the {room.language.value} alphabet. Ignoring.")
        return {}
    if guessed in room.revealed_letters:
        logger.debug(f"R:{room.id} - P:{player_id} guessed already revealed letter '{guessed}'. Ignoring.")
        return {}

    revealed = room.revealed_letters | {guessed}
    occurrences = normalize_word_letters(word, room.language).count(guessed)
    updates: RoomUpdate = {"revealed_letters": revealed, "last_slice_index": None, "has_extra_turn": False}

    if occurrences > 0:
        scores = dict(room.player_scores)
        scores[player_id] = room.score_of(player_id) + pending_points * occurrences
        updates["player_scores"] = scores
        logger.info(f"R:{room.id} - P:{player_id} revealed '{guessed}' x{occurrences} for {pending_points * occurrences} points.")

        if is_word_complete(word, room.language, revealed):
            updates["is_game_over"] = True
            updates["winner_id"] = player_id
            logger.info(f"R:{room.id} - Word fully revealed by P:{player_id}. Game over.")
            return updates
    else:
        logger.info(f"R:{room.id} - P:{player_id} guessed '{guessed}', not in the word.")

    updates["current_turn_index"] = _next_turn_index(room)
    return updates


def guess_word(room: Room, player_id: str, guess: str, pending_points: int) -> RoomUpdate:
    """
    Whole-word guess. A match doubles the guesser's score, reveals every letter and
    ends the game; anything else passes the turn. `pending_points` is not scored here,
    the caller drops it either way.
    """
    if not _can_take_turn_action(room, player_id, "guess the word"):
        return {}
    word = room.normalized_secret_word
    if word is None:
        logger.debug(f"R:{room.id} - P:{player_id} guessed the word before it was set. Ignoring.")
        return {}
    guessed_word = (guess or "").strip().upper()
    if not guessed_word:
        logger.debug(f"R:{room.id} - P:{player_id} sent an empty word guess. Ignoring.")
        return {}

    if guessed_word == word:
        scores = dict(room.player_scores)
        scores[player_id] = room.score_of(player_id) * 2
        alphabet = set(room.language.alphabet)
        word_letters = {ch for ch in normalize_word_letters(word, room.language) if ch in alphabet}
        logger.info(f"R:{room.id} - P:{player_id} guessed the word. Score doubled to {scores[player_id]}. Game over.")
        return {
            "revealed_letters": room.revealed_letters | word_letters,
            "player_scores": scores,
            "is_game_over": True,
            "winner_id": player_id,
            "last_slice_index": None,
            "has_extra_turn": False,
        }

    logger.info(f"R:{room.id} - P:{player_id} guessed the wrong word.")
    return {
        "current_turn_index": _next_turn_index(room),
        "last_slice_index": None,
        "has_extra_turn": False,
    }
