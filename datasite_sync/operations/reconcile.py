"""
DatasiteSync Client - Reconciliation Engine

Compares two point-in-time states (local vs. remote) and works out which
records to pull, push, or purge on each side. Pure functions only; nothing
here touches the network or storage.

Author: DatasiteSync Project
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set

from ..models import FileMetadata, PendingChange, Snapshot, State

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    """Sets of records each side is missing, keyed by owner."""

    to_pull: State = field(default_factory=dict)
    to_push: State = field(default_factory=dict)
    to_delete_local: State = field(default_factory=dict)
    to_delete_remote: State = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.to_pull or self.to_push or self.to_delete_local or self.to_delete_remote)

    def summary(self) -> str:
        parts = []
        for label, state in (
            ("to pull", self.to_pull),
            ("to push", self.to_push),
            ("to delete locally", self.to_delete_local),
            ("to delete remotely", self.to_delete_remote),
        ):
            count = count_records(state)
            if count:
                parts.append(f"{count} {label}")
        return ", ".join(parts) if parts else "no changes"

    def filtered(self, keep: Callable[[str, FileMetadata], bool]) -> "ReconcilePlan":
        """Return a copy holding only the records for which keep(owner, record) is true."""
        return ReconcilePlan(
            to_pull=filter_state(self.to_pull, keep),
            to_push=filter_state(self.to_push, keep),
            to_delete_local=filter_state(self.to_delete_local, keep),
            to_delete_remote=filter_state(self.to_delete_remote, keep),
        )


def diff_states(lhs: State, rhs: State) -> State:
    """
    Records in lhs that are absent from rhs, compared on the full record.

    A changed file (same path, different content) counts as absent, so
    it shows up here as the new version to transfer.
    """
    result: State = {}
    for owner, records in lhs.items():
        other = rhs.get(owner, set())
        missing = {record for record in records if record not in other}
        if missing:
            result[owner] = missing
    return result


def removed_paths(lhs: State, rhs: State) -> State:
    """
    Records in lhs whose path does not appear in rhs at all.

    Only a path-level absence counts; a record whose content differs but
    whose path still exists on the other side is never reported here.
    """
    result: State = {}
    for owner, records in lhs.items():
        other_paths = {record.path for record in rhs.get(owner, set())}
        gone = {record for record in records if record.path not in other_paths}
        if gone:
            result[owner] = gone
    return result


def reconcile(local: State, remote: State,
              tombstones: Optional[Dict[str, Set[str]]] = None) -> ReconcilePlan:
    """
    Compare the local and remote states.

    Remote deletions are never inferred from absence: a remote record is
    only scheduled for remote deletion when its path carries a tombstone,
    i.e. this node deleted the file locally. Tombstoned paths are never pulled.

    Args:
        local: State held by the local storage engine
        remote: State reported by the server
        tombstones: Paths deleted locally and not yet pushed, keyed by owner

    Returns:
        ReconcilePlan with to_pull, to_push, to_delete_local, to_delete_remote
    """
    tombstones = tombstones or {}
    plan = ReconcilePlan(
        to_pull=filter_state(diff_states(remote, local),
                             lambda owner, record: record.path not in tombstones.get(owner, ())),
        to_push=diff_states(local, remote),
        to_delete_local=removed_paths(local, remote),
        to_delete_remote=filter_state(remote,
                                      lambda owner, record: record.path in tombstones.get(owner, ())),
    )
    logger.debug(f"Reconciled {len(local)} local and {len(remote)} remote datasites: {plan.summary()}")
    return plan


def reconcile_own_datasite(owner: str, local: Snapshot, remote: Snapshot,
                           pending: Dict[str, PendingChange]) -> ReconcilePlan:
    """
    Three-way comparison for the datasite this node writes to.

    For each path the local record, the remote record and the pending
    change (if any) decide the direction:

    - Deleted locally: delete remotely if the server still holds the synced
      version, otherwise keep and pull the server's newer copy.
    - Changed locally: push. The push is guarded by the pending base hash,
      so a file also changed on the server is rejected, not overwritten.
    - Unchanged locally: follow the server (pull new and changed files,
      delete files the server no longer has).

    Args:
        owner: Email of the own datasite
        local: The node's snapshot of its own datasite
        remote: The server's snapshot of the same datasite
        pending: Pending local changes keyed by path

    Returns:
        ReconcilePlan keyed by owner (empty maps when in sync)
    """
    local_by_path = {record.path: record for record in local}
    remote_by_path = {record.path: record for record in remote}
    to_pull: Snapshot = set()
    to_push: Snapshot = set()
    to_delete_local: Snapshot = set()
    to_delete_remote: Snapshot = set()

    for path in set(local_by_path) | set(remote_by_path) | set(pending):
        ours = local_by_path.get(path)
        theirs = remote_by_path.get(path)
        change = pending.get(path)

        if change is not None and change.deleted:
            if theirs is None:
                continue
            if change.base_hash is not None and theirs.content_hash == change.base_hash:
                to_delete_remote.add(theirs)
            else:
                to_pull.add(theirs)
        elif change is not None and ours is not None:
            if theirs is not None and theirs.content_hash == ours.content_hash:
                to_pull.add(theirs)
            else:
                to_push.add(ours)
        elif ours == theirs:
            continue
        elif theirs is None:
            if ours is not None:
                to_delete_local.add(ours)
        else:
            to_pull.add(theirs)

    def keyed(records: Snapshot) -> State:
        return {owner: records} if records else {}

    return ReconcilePlan(
        to_pull=keyed(to_pull),
        to_push=keyed(to_push),
        to_delete_local=keyed(to_delete_local),
        to_delete_remote=keyed(to_delete_remote),
    )


def settled_pending(local: Snapshot, remote: Snapshot, pending: Dict[str, PendingChange]) -> Set[str]:
    """
    Pending paths with nothing left to transfer: a tombstone for a file the
    server no longer has, or a change whose local record is gone.
    """
    local_paths = {record.path for record in local}
    remote_paths = {record.path for record in remote}
    return {
        path for path, change in pending.items()
        if path not in remote_paths and (change.deleted or path not in local_paths)
    }


def union_snapshot(base: Snapshot, additions: Snapshot) -> Snapshot:
    """
    Union two snapshots, keeping one record per path.

    A record in additions supersedes the record at the same path in base;
    every other record of base is kept.
    """
    by_path: Dict[str, FileMetadata] = {record.path: record for record in base}
    for record in additions:
        by_path[record.path] = record
    return set(by_path.values())


def union_states(base: State, additions: State) -> State:
    """Apply union_snapshot owner by owner."""
    result: State = {owner: set(records) for owner, records in base.items()}
    for owner, records in additions.items():
        result[owner] = union_snapshot(result.get(owner, set()), records)
    return result


def filter_state(state: State, keep: Callable[[str, FileMetadata], bool]) -> State:
    result: State = {}
    for owner, records in state.items():
        kept: Set[FileMetadata] = {record for record in records if keep(owner, record)}
        if kept:
            result[owner] = kept
    return result


def count_records(state: State) -> int:
    return sum(len(records) for records in state.values())
