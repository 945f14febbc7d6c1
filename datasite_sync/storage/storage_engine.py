"""
DatasiteSync Client - Storage Engine Interface

Defines the capability interface for the node's believed state of all
datasites. Implementations differ only in where the snapshots live.

Author: DatasiteSync Project
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable

from ..models import FileMetadata, PendingChange, Snapshot, State


class StorageEngine(ABC):
    """
    Holds one snapshot per owner and applies additive/subtractive updates.

    Updates are never destructive replacements: union_merge keeps every
    record whose path is not among the incoming records, and a record at an
    existing path supersedes only the record at that path. Owners left with
    no records are dropped.

    Engines also keep the pending changes of the own datasite: local edits
    and deletions (tombstones) that have not been pushed yet.
    """

    @abstractmethod
    def get_state(self) -> State:
        """Return a copy of the full state (owner -> snapshot)."""

    @abstractmethod
    def read_snapshot(self, owner: str) -> Snapshot:
        """Return a copy of one owner's snapshot (empty if unknown)."""

    @abstractmethod
    def union_merge(self, owner: str, records: Iterable[FileMetadata]) -> None:
        """Add records to an owner's snapshot, superseding records at the same paths."""

    @abstractmethod
    def remove_by_path(self, owner: str, paths: Iterable[str]) -> None:
        """Remove the records at the given paths from an owner's snapshot."""

    @abstractmethod
    def read_pending(self, owner: str) -> Dict[str, PendingChange]:
        """Return the pending changes of an owner keyed by path."""

    @abstractmethod
    def mark_pending(self, owner: str, changes: Iterable[PendingChange]) -> None:
        """Add or replace pending changes, one per path."""

    @abstractmethod
    def clear_pending(self, owner: str, paths: Iterable[str]) -> None:
        """Forget the pending changes at the given paths."""

    def update_state(self, new: State) -> None:
        """Union-merge every owner of a state into storage."""
        for owner, records in new.items():
            if records:
                self.union_merge(owner, records)

    def delete_state(self, state: State) -> None:
        """Remove every path listed in a state from storage."""
        for owner, records in state.items():
            self.remove_by_path(owner, [record.path for record in records])

    def close(self) -> None:
        """Release resources held by the engine."""
