# pasiva/services/room_code.py
import random
import re
from datetime import datetime
from typing import Optional

from pasiva.models.room import epoch_ms

ROOM_ID_PATTERN = re.compile(r"\d{6}", re.ASCII)

ROOM_ID_MIN = 100000
ROOM_ID_MAX = 999999

def is_valid_room_id(room_id: str | None) -> bool:
    return bool(room_id) and ROOM_ID_PATTERN.fullmatch(room_id) is not None

def generate_room_id(rng: random.Random) -> str:
    return str(rng.randint(ROOM_ID_MIN, ROOM_ID_MAX))

def generate_player_id(now: datetime, rng: random.Random) -> str:
    """Time-based id with a random suffix, e.g. "1718000000000_4821"."""
    return f"{epoch_ms(now)}_{rng.randint(1000, 9999)}"

def extract_room_id(scanned_payload: str | None) -> Optional[str]:
    """
    Pulls a room code out of a scanned QR payload: either the bare 6 digits
    or any text (usually a URL) containing them. The first 6-digit run wins.
    """
    if not scanned_payload:
        return None
    payload = scanned_payload.strip()
    if is_valid_room_id(payload):
        return payload
    match = ROOM_ID_PATTERN.search(payload)
    return match.group(0) if match else None
