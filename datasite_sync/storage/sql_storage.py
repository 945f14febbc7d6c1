"""
DatasiteSync Client - SQL Storage Engine

Durable storage engine backed by SQLite through SQLAlchemy. The state
survives process restarts and is reloaded on startup.

Author: DatasiteSync Project
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..models import FileMetadata, PendingChange, Snapshot, State
from .database import Base, PendingChangeRecord, SnapshotRecord
from .storage_engine import StorageEngine

# Configure logging
logger = logging.getLogger(__name__)

# Stay well below SQLite's bound-parameter limit in IN clauses
MAX_PATHS_PER_STATEMENT = 500


class SQLStorage(StorageEngine):
    """
    Storage engine persisting snapshots in a SQLite database.
    """

    def __init__(self, db_path: str = "state/datasite_sync.db"):
        """
        Initialize the storage engine and create tables if needed.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path

        if db_path != ":memory:":
            # Ensure database directory exists
            db_dir = Path(db_path).parent
            if db_dir and str(db_dir) != '.':
                db_dir.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(f"sqlite:///{db_path}", echo=False)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)
        logger.debug(f"Opened snapshot database at {db_path}")

    def close(self) -> None:
        self.engine.dispose()

    def get_state(self) -> State:
        session = self.SessionLocal()
        try:
            state: State = {}
            for row in session.query(SnapshotRecord).all():
                state.setdefault(row.owner, set()).add(self._to_metadata(row))
            return state
        finally:
            session.close()

    def read_snapshot(self, owner: str) -> Snapshot:
        session = self.SessionLocal()
        try:
            rows = session.query(SnapshotRecord).filter(SnapshotRecord.owner == owner).all()
            return {self._to_metadata(row) for row in rows}
        finally:
            session.close()

    def union_merge(self, owner: str, records: Iterable[FileMetadata]) -> None:
        session = self.SessionLocal()
        try:
            for record in records:
                row = session.query(SnapshotRecord).filter(
                    SnapshotRecord.owner == owner,
                    SnapshotRecord.path == record.path
                ).first()
                if row is None:
                    row = SnapshotRecord(owner=owner, path=record.path)
                    session.add(row)
                row.content_hash = record.content_hash
                row.signature = record.signature
                row.size = record.size
                row.modified_at = record.modified_at.isoformat()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def remove_by_path(self, owner: str, paths: Iterable[str]) -> None:
        self._delete_paths(SnapshotRecord, owner, paths)

    def read_pending(self, owner: str) -> Dict[str, PendingChange]:
        session = self.SessionLocal()
        try:
            rows = session.query(PendingChangeRecord).filter(PendingChangeRecord.owner == owner).all()
            return {
                row.path: PendingChange(path=row.path, base_hash=row.base_hash, deleted=row.deleted)
                for row in rows
            }
        finally:
            session.close()

    def mark_pending(self, owner: str, changes: Iterable[PendingChange]) -> None:
        session = self.SessionLocal()
        try:
            for change in changes:
                row = session.query(PendingChangeRecord).filter(
                    PendingChangeRecord.owner == owner,
                    PendingChangeRecord.path == change.path
                ).first()
                if row is None:
                    row = PendingChangeRecord(owner=owner, path=change.path)
                    session.add(row)
                row.base_hash = change.base_hash
                row.deleted = change.deleted
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def clear_pending(self, owner: str, paths: Iterable[str]) -> None:
        self._delete_paths(PendingChangeRecord, owner, paths)

    def _delete_paths(self, model, owner: str, paths: Iterable[str]) -> None:
        paths = list(paths)
        if not paths:
            return
        session = self.SessionLocal()
        try:
            for chunk in _chunks(paths, MAX_PATHS_PER_STATEMENT):
                session.query(model).filter(
                    model.owner == owner,
                    model.path.in_(chunk)
                ).delete(synchronize_session=False)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _to_metadata(row: SnapshotRecord) -> FileMetadata:
        return FileMetadata(
            path=row.path,
            content_hash=row.content_hash,
            signature=row.signature,
            size=row.size,
            modified_at=row.modified_at
        )


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
