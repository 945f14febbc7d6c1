"""
DatasiteSync Client - In-Memory Storage Engine

Keeps the state in a dict for the lifetime of the process. Nothing is
persisted; use SQLStorage when the state must survive restarts.

Author: DatasiteSync Project
"""

import logging
from typing import Dict, Iterable, Optional

from ..models import FileMetadata, PendingChange, Snapshot, State
from .storage_engine import StorageEngine

# Configure logging
logger = logging.getLogger(__name__)


class InMemoryStorage(StorageEngine):
    """Storage engine backed by a dict of owner -> {path: record}."""

    def __init__(self, initial: Optional[State] = None):
        self._state: Dict[str, Dict[str, FileMetadata]] = {}
        self._pending: Dict[str, Dict[str, PendingChange]] = {}
        if initial:
            self.update_state(initial)

    def get_state(self) -> State:
        return {owner: set(records.values()) for owner, records in self._state.items()}

    def read_snapshot(self, owner: str) -> Snapshot:
        return set(self._state.get(owner, {}).values())

    def union_merge(self, owner: str, records: Iterable[FileMetadata]) -> None:
        snapshot = self._state.setdefault(owner, {})
        for record in records:
            snapshot[record.path] = record
        if not snapshot:
            del self._state[owner]
        logger.debug(f"Merged records into {owner}: {len(snapshot)} tracked")

    def remove_by_path(self, owner: str, paths: Iterable[str]) -> None:
        snapshot = self._state.get(owner)
        if snapshot is None:
            return
        for path in paths:
            snapshot.pop(path, None)
        if not snapshot:
            del self._state[owner]

    def read_pending(self, owner: str) -> Dict[str, PendingChange]:
        return dict(self._pending.get(owner, {}))

    def mark_pending(self, owner: str, changes: Iterable[PendingChange]) -> None:
        pending = self._pending.setdefault(owner, {})
        for change in changes:
            pending[change.path] = change
        if not pending:
            del self._pending[owner]

    def clear_pending(self, owner: str, paths: Iterable[str]) -> None:
        pending = self._pending.get(owner)
        if pending is None:
            return
        for path in paths:
            pending.pop(path, None)
        if not pending:
            del self._pending[owner]

