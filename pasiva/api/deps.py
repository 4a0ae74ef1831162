# pasiva/api/deps.py
import logging
import random
from typing import Optional

from pasiva.core.config import settings
from pasiva.db.session import SessionLocal
from pasiva.services.room_service import RoomService
from pasiva.services.room_store import InMemoryRoomStore, RoomStore, SqlRoomStore

logger = logging.getLogger("pasiva.api.deps")  # Logger for this module

_room_service: Optional[RoomService] = None

def build_room_store() -> RoomStore:
    if settings.ROOM_STORE_BACKEND == "sql":
        logger.info(f"Using SQL room store (poll every {settings.STORE_POLL_INTERVAL_SECONDS}s)")
        return SqlRoomStore(SessionLocal, poll_interval_seconds=settings.STORE_POLL_INTERVAL_SECONDS)
    logger.info("Using in-memory room store")
    return InMemoryRoomStore()

def get_room_service() -> RoomService:
    """One room service per process, built lazily from settings."""
    global _room_service
    if _room_service is None:
        _room_service = RoomService(
            build_room_store(),
            max_id_attempts=settings.ROOM_ID_MAX_ATTEMPTS,
            optimistic_concurrency=settings.OPTIMISTIC_CONCURRENCY,
        )
    return _room_service

def get_spin_delay_seconds() -> float:
    return settings.SPIN_DELAY_SECONDS

def get_game_rng() -> random.Random:
    # Fresh source per connection; tests override this with a seeded one
    return random.Random()
