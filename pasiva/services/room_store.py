# pasiva/services/room_store.py
"""
Document store collaborators for room records.

A store keeps one document per room id and offers: existence check, create,
whole-document read, whole-document replace, and a subscription that yields the
current document first and then every later version (None while the room is
absent). A subscription may also yield a RoomStoreError instance for a failed
read; the subscription itself keeps going.
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Optional, Set, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from pasiva.crud import crud_room

logger = logging.getLogger("pasiva.services.room_store")  # Logger for this module

RoomDocumentData = Dict[str, Any]
SubscriptionItem = Union[RoomDocumentData, None, "RoomStoreError"]


class RoomStoreError(Exception):
    """Any failure talking to the backing store."""


class RoomAlreadyExists(RoomStoreError):
    def __init__(self, room_id: str):
        super().__init__(f"Room document {room_id} already exists")
        self.room_id = room_id


class StaleRoomVersion(RoomStoreError):
    """A conditional write found a newer document than the one the caller decided from."""

    def __init__(self, room_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Room {room_id} changed underneath the write: expected version {expected_version}, found {actual_version}"
        )
        self.room_id = room_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class RoomStore(ABC):
    @abstractmethod
    async def exists(self, room_id: str) -> bool: ...

    @abstractmethod
    async def create(self, room_id: str, document: RoomDocumentData) -> None: ...

    @abstractmethod
    async def get(self, room_id: str) -> Optional[RoomDocumentData]: ...

    @abstractmethod
    async def set(self, room_id: str, document: RoomDocumentData, expected_version: Optional[int] = None) -> None:
        """Replaces the whole document. With expected_version, raises StaleRoomVersion on mismatch."""

    @abstractmethod
    def subscribe(self, room_id: str) -> AsyncIterator[SubscriptionItem]: ...


class InMemoryRoomStore(RoomStore):
    """Process-local store. Subscribers get every write pushed through a queue."""

    def __init__(self):
        self._documents: Dict[str, RoomDocumentData] = {}
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    async def exists(self, room_id: str) -> bool:
        return room_id in self._documents

    async def create(self, room_id: str, document: RoomDocumentData) -> None:
        if room_id in self._documents:
            raise RoomAlreadyExists(room_id)
        self._documents[room_id] = copy.deepcopy(document)
        logger.debug(f"Created room document {room_id}")
        self._publish(room_id)

    async def get(self, room_id: str) -> Optional[RoomDocumentData]:
        document = self._documents.get(room_id)
        return copy.deepcopy(document) if document is not None else None

    async def set(self, room_id: str, document: RoomDocumentData, expected_version: Optional[int] = None) -> None:
        if expected_version is not None:
            current = self._documents.get(room_id)
            actual_version = current.get("version", 0) if current is not None else None
            if actual_version != expected_version:
                raise StaleRoomVersion(room_id, expected_version, actual_version)
        self._documents[room_id] = copy.deepcopy(document)
        self._publish(room_id)

    async def subscribe(self, room_id: str) -> AsyncIterator[SubscriptionItem]:
        queue: asyncio.Queue = asyncio.Queue()
        # Registered before the first read so no write between the two is lost
        self._subscribers.setdefault(room_id, set()).add(queue)
        logger.debug(f"Subscriber added for room {room_id}. Total: {len(self._subscribers[room_id])}")
        try:
            yield await self.get(room_id)
            while True:
                yield await queue.get()
        finally:
            subscribers = self._subscribers.get(room_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[room_id]
            logger.debug(f"Subscriber removed for room {room_id}")

    def subscriber_count(self, room_id: str) -> int:
        return len(self._subscribers.get(room_id, ()))

    def clear(self) -> None:
        self._documents.clear()

    def _publish(self, room_id: str) -> None:
        document = self._documents.get(room_id)
        for queue in self._subscribers.get(room_id, ()):
            queue.put_nowait(copy.deepcopy(document))


class SqlRoomStore(RoomStore):
    """
    Stores each room as one JSON row through the crud layer. Blocking session
    work runs in the threadpool; subscriptions poll for a changed version.
    """

    def __init__(self, session_factory: Callable[[], Session], poll_interval_seconds: float = 0.5):
        self._session_factory = session_factory
        self._poll_interval_seconds = poll_interval_seconds

    def _run(self, operation: Callable[..., Any], *args: Any) -> Any:
        db = self._session_factory()
        try:
            return operation(db, *args)
        finally:
            db.close()

    async def _call(self, operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return await run_in_threadpool(self._run, operation, *args)
        except RoomStoreError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Room store operation {operation.__name__} failed: {e}")
            raise RoomStoreError(str(e)) from e

    async def exists(self, room_id: str) -> bool:
        return await self._call(crud_room.room_document_exists, room_id)

    async def create(self, room_id: str, document: RoomDocumentData) -> None:
        try:
            await run_in_threadpool(self._run, crud_room.create_room_document, room_id, document)
        except IntegrityError as e:
            raise RoomAlreadyExists(room_id) from e
        except SQLAlchemyError as e:
            logger.error(f"Creating room document {room_id} failed: {e}")
            raise RoomStoreError(str(e)) from e

    async def get(self, room_id: str) -> Optional[RoomDocumentData]:
        return await self._call(_read_document, room_id)

    async def set(self, room_id: str, document: RoomDocumentData, expected_version: Optional[int] = None) -> None:
        written = await self._call(crud_room.replace_room_document, room_id, document, expected_version)
        if not written:
            current = await self.get(room_id)
            actual_version = current.get("version", 0) if current is not None else None
            raise StaleRoomVersion(room_id, expected_version, actual_version)

    async def subscribe(self, room_id: str) -> AsyncIterator[SubscriptionItem]:
        missing = object()
        last_seen: Any = missing
        while True:
            try:
                document = await self.get(room_id)
            except RoomStoreError as e:
                yield e
                last_seen = missing
            else:
                # Every write through the room service bumps version
                marker = None if document is None else document.get("version", 0)
                if last_seen is missing or marker != last_seen:
                    last_seen = marker
                    yield document
            await asyncio.sleep(self._poll_interval_seconds)


def _read_document(db: Session, room_id: str) -> Optional[RoomDocumentData]:
    row = crud_room.get_room_document(db, room_id)
    return dict(row.document) if row is not None else None
