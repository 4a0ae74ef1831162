# pasiva/models/room.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from pasiva.models.wheel import PointsSlice, WheelSlice, slice_at

_HEBREW_ALPHABET = [
    "א", "ב", "ג", "ד", "ה", "ו", "ז", "ח", "ט",
    "י", "כ", "ל", "מ", "נ", "ס", "ע", "פ", "צ",
    "ק", "ר", "ש", "ת",
]
_ENGLISH_ALPHABET = [chr(code) for code in range(ord("A"), ord("Z") + 1)]
# Word-final Hebrew forms count as their base letter
_HEBREW_FINAL_FORMS = {"ך": "כ", "ם": "מ", "ן": "נ", "ף": "פ", "ץ": "צ"}


class Language(str, Enum):
    ENGLISH = "ENGLISH"
    HEBREW = "HEBREW"

    @classmethod
    def from_string(cls, value: str | None) -> "Language":
        """Unknown or missing values fall back to English."""
        if value and value.strip().upper() == "HEBREW":
            return cls.HEBREW
        return cls.ENGLISH

    @property
    def display_name(self) -> str:
        return "עברית" if self is Language.HEBREW else "English"

    @property
    def alphabet(self) -> List[str]:
        return list(_HEBREW_ALPHABET) if self is Language.HEBREW else list(_ENGLISH_ALPHABET)

    def normalize_letter(self, ch: str) -> str:
        upper = ch.upper()
        if self is Language.HEBREW:
            return _HEBREW_FINAL_FORMS.get(upper, upper)
        return upper


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _parse_timestamp(value: Any) -> Any:
    # Documents carry epoch milliseconds; models carry aware datetimes
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


class Player(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    nickname: str
    joined_at: datetime = Field(alias="joinedAt")

    @field_validator("joined_at", mode="before")
    @classmethod
    def parse_joined_at(cls, value: Any) -> Any:
        return _parse_timestamp(value)

    @field_serializer("joined_at")
    def serialize_joined_at(self, value: datetime) -> int:
        return epoch_ms(value)


class Room(BaseModel):
    """
    Shared record of one game room, the shape of the document kept in the room store.
    Field names are snake_case here and camelCase in the stored document.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: datetime = Field(alias="createdAt")
    host_id: str = Field(alias="hostId")
    players: List[Player] = Field(default_factory=list) # join order, host included
    is_game_started: bool = Field(default=False, alias="isGameStarted")
    current_turn_index: int = Field(default=0, alias="currentTurnIndex") # index into playing_players
    is_spinning: bool = Field(default=False, alias="isSpinning")
    secret_word: Optional[str] = Field(default=None, alias="secretWord")
    language: Language = Language.ENGLISH
    player_scores: Dict[str, int] = Field(default_factory=dict, alias="playerScores")
    revealed_letters: FrozenSet[str] = Field(default_factory=frozenset, alias="revealedLetters")
    last_slice_index: Optional[int] = Field(default=None, alias="lastSliceIndex", ge=0, le=7)
    has_extra_turn: bool = Field(default=False, alias="hasExtraTurn")
    is_game_over: bool = Field(default=False, alias="isGameOver")
    winner_id: Optional[str] = Field(default=None, alias="winnerId")
    version: int = 0 # write counter, enforced only with optimistic concurrency on

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: Any) -> Any:
        return _parse_timestamp(value)

    @field_validator("language", mode="before")
    @classmethod
    def parse_language(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return Language.from_string(value)
        return value

    @field_validator("revealed_letters", mode="before")
    @classmethod
    def parse_revealed_letters(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        # Stored as a plain string of characters
        return frozenset(ch.upper() for ch in value if not ch.isspace())

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> int:
        return epoch_ms(value)

    @field_serializer("revealed_letters")
    def serialize_revealed_letters(self, value: FrozenSet[str]) -> str:
        return "".join(sorted(value))

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Room":
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def apply_updates(self, updates: Dict[str, Any]) -> "Room":
        """Returns a copy with the given field updates merged in (snake_case keys)."""
        unknown = set(updates) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown room fields in update: {sorted(unknown)}")
        return self.model_copy(update=updates)

    # --- Derived views -------------------------------------------------

    @property
    def playing_players(self) -> List[Player]:
        """Players that take turns: everybody except the host, in join order."""
        return [p for p in self.players if p.id != self.host_id]

    @property
    def safe_turn_index(self) -> Optional[int]:
        playing_count = len(self.playing_players)
        if playing_count == 0:
            return None
        return min(max(self.current_turn_index, 0), playing_count - 1)

    @property
    def current_turn_player(self) -> Optional[Player]:
        index = self.safe_turn_index
        if index is None:
            return None
        return self.playing_players[index]

    @property
    def normalized_secret_word(self) -> Optional[str]:
        if not self.secret_word or not self.secret_word.strip():
            return None
        return self.secret_word.upper()

    @property
    def last_slice(self) -> Optional[WheelSlice]:
        if self.last_slice_index is None:
            return None
        return slice_at(self.last_slice_index)

    @property
    def is_guess_pending(self) -> bool:
        """A Points outcome is showing and the spinner still has to guess."""
        return (
            isinstance(self.last_slice, PointsSlice)
            and not self.has_extra_turn
            and not self.is_spinning
            and not self.is_game_over
        )

    @property
    def winner_nickname(self) -> Optional[str]:
        if self.winner_id is None:
            return None
        player = self.find_player(self.winner_id)
        return player.nickname if player else None

    def find_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def is_host(self, player_id: str) -> bool:
        return player_id == self.host_id

    def is_current_turn(self, player_id: str) -> bool:
        current = self.current_turn_player
        return current is not None and current.id == player_id and not self.is_host(player_id)

    def score_of(self, player_id: str) -> int:
        return self.player_scores.get(player_id, 0)

    def display_word(self, viewer_id: str | None = None) -> str:
        """
        One token per character of the secret word, joined by single spaces.
        Whitespace stays a space, unrevealed letters become "_". The host sees everything.
        """
        word = self.normalized_secret_word
        if word is None:
            return ""
        reveal_all = self.is_game_over or (viewer_id is not None and self.is_host(viewer_id))
        tokens = []
        for ch in word:
            if ch.isspace():
                tokens.append(" ")
            elif reveal_all or self.language.normalize_letter(ch) in self.revealed_letters:
                tokens.append(ch)
            else:
                tokens.append("_")
        return " ".join(tokens)
