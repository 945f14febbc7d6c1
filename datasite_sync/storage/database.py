"""
DatasiteSync Client - Snapshot Database Model

SQLAlchemy models for the durable snapshot store. One row per (owner, path)
in each table.
"""

from sqlalchemy import Boolean, Column, Integer, String, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SnapshotRecord(Base):
    """
    snapshot_records table - the node's believed metadata for each file
    """
    __tablename__ = "snapshot_records"

    record_id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String, nullable=False)
    path = Column(String, nullable=False)
    content_hash = Column(String, nullable=False)
    signature = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    # ISO-8601 text keeps the UTC offset that SQLite DateTime columns drop
    modified_at = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint('owner', 'path', name='uq_snapshot_owner_path'),
        Index('idx_snapshot_owner', 'owner'),
    )


class PendingChangeRecord(Base):
    """
    pending_changes table - local edits and deletions of the own datasite not yet pushed
    """
    __tablename__ = "pending_changes"

    change_id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String, nullable=False)
    path = Column(String, nullable=False)
    base_hash = Column(String, nullable=True)  # last synced server hash
    deleted = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint('owner', 'path', name='uq_pending_owner_path'),
    )

