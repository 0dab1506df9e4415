"""
SQLAlchemy ORM models for the court rotation system.
"""

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from courtside.database.db import Base


class RotationSnapshot(Base):
    """Latest persisted snapshot of a rotation, stored as JSON text."""

    __tablename__ = "rotation_snapshots"

    key = Column(String, primary_key=True)
    payload = Column(Text, nullable=False)  # JSON snapshot, camelCase keys
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
