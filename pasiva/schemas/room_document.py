from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.sql import func

from pasiva.db.base_class import Base

class RoomDocument(Base):
    __tablename__ = "room_documents" # Explicitly set table name

    # The 6-digit room code doubles as the primary key
    id = Column(String(6), primary_key=True, index=True)
    # Whole room record in its stored (camelCase) shape, replaced on every write
    document = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
