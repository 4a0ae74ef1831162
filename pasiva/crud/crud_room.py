# pasiva/crud/crud_room.py
import logging
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from pasiva.schemas.room_document import RoomDocument

logger = logging.getLogger("pasiva.crud.room")

def get_room_document(db: Session, room_id: str) -> Optional[RoomDocument]:
    return db.query(RoomDocument).filter(RoomDocument.id == room_id).first()

def room_document_exists(db: Session, room_id: str) -> bool:
    return db.query(RoomDocument.id).filter(RoomDocument.id == room_id).first() is not None

def create_room_document(db: Session, room_id: str, document: Dict[str, Any]) -> RoomDocument:
    """Inserts a new room row. A duplicate id surfaces as IntegrityError from commit."""
    row = RoomDocument(id=room_id, document=document, version=document.get("version", 0))
    db.add(row)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    logger.info(f"Created room document {room_id}")
    return row

def replace_room_document(
    db: Session,
    room_id: str,
    document: Dict[str, Any],
    expected_version: Optional[int] = None,
) -> bool:
    """
    Replaces the whole stored document. Without expected_version the write is
    unconditional (and creates the row if it is missing). With it, the row is only
    replaced while its stored version still equals expected_version.
    Returns False when the conditional write matched no row.
    """
    new_version = document.get("version", 0)
    if expected_version is None:
        row = get_room_document(db, room_id)
        if row is None:
            create_room_document(db, room_id, document)
            return True
        row.document = document
        row.version = new_version
        db.commit()
        return True

    statement = (
        update(RoomDocument)
        .where(RoomDocument.id == room_id, RoomDocument.version == expected_version)
        .values(document=document, version=new_version)
    )
    result = db.execute(statement)
    db.commit()
    if result.rowcount == 0:
        logger.warning(f"Conditional write to room {room_id} rejected: expected version {expected_version}")
        return False
    return True
