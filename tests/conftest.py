# tests/conftest.py
import pytest
import logging
import random
from datetime import datetime, timezone
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pasiva.main import app
from pasiva.db.base import Base
from pasiva.api import deps
from pasiva.api.websockets import room_manager
from pasiva.models.room import Player, Room
from pasiva.services.room_service import RoomService
from pasiva.services.room_store import InMemoryRoomStore

SQLALCHEMY_DATABASE_URL_TEST = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL_TEST,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


class FixedSliceRng(random.Random):
    """Random source whose wheel draws always land on one slice index."""
    def __init__(self, slice_index: int):
        super().__init__(0)
        self.slice_index = slice_index

    def randrange(self, *args, **kwargs):
        return self.slice_index


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create tables once for the entire test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """
    Provides a clean, isolated database session for each test function
    by using transactions and rollbacks.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()

@pytest.fixture
def fixed_rng():
    """Factory: fixed_rng(3) always draws slice 3."""
    return FixedSliceRng

@pytest.fixture
def memory_store() -> InMemoryRoomStore:
    return InMemoryRoomStore()

@pytest.fixture
def room_service(memory_store) -> RoomService:
    return RoomService(memory_store, now=lambda: FIXED_NOW, rng=random.Random(1234))

@pytest.fixture
def make_room():
    """Builds a Room with a host "h" and playing players "p1".."pN"."""
    def _make_room(playing: int = 3, **fields) -> Room:
        host = Player(id="h", nickname="Host", joined_at=FIXED_NOW)
        players = [host] + [
            Player(id=f"p{i}", nickname=f"Player {i}", joined_at=FIXED_NOW) for i in range(1, playing + 1)
        ]
        base = {
            "id": "123456",
            "created_at": FIXED_NOW,
            "host_id": "h",
            "players": players,
            "is_game_started": True,
            "secret_word": "CAT DOG",
        }
        base.update(fields)
        return Room(**base)
    return _make_room

@pytest.fixture
def client(room_service) -> TestClient:
    """TestClient on one event loop for the whole test, so in-memory subscriptions see every write."""
    app.dependency_overrides[deps.get_room_service] = lambda: room_service
    app.dependency_overrides[deps.get_spin_delay_seconds] = lambda: 0.0
    app.dependency_overrides[deps.get_game_rng] = lambda: FixedSliceRng(0)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Clears in-memory state before each test."""
    room_manager.active_connections.clear()
    deps._room_service = None
    yield

def pytest_configure(config):
    """
    Hook to configure logging levels before tests are run.
    This silences noisy third-party libraries.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
