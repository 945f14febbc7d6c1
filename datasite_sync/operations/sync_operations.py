"""
DatasiteSync Client - Sync Operations Module

Drives one synchronization cycle between the local node and the server:
fetch the remote state, reconcile it with the storage engine's state,
transfer every differing file, and commit each success to storage.

Author: DatasiteSync Project
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional, Callable, List, Dict, Any, Tuple

from ..api import extract_bulk_bundle
from ..exceptions import (
    DatasiteSyncAPIError,
    DatasiteSyncAuthError,
    DatasiteSyncNotFoundError,
    DatasiteSyncTransportError
)
from ..models import FileMetadata, PendingChange, TransferState
from .delta_codec import DeltaCodec
from .delta_transfer import DeltaTransfer, TransferOutcome
from .reconcile import ReconcilePlan, reconcile, reconcile_own_datasite, settled_pending

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Aggregated outcome of one sync cycle."""

    success: bool = True
    pulled: int = 0
    pushed: int = 0
    deleted_local: int = 0
    deleted_remote: int = 0
    rejected: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "pulled": self.pulled,
            "pushed": self.pushed,
            "deleted_local": self.deleted_local,
            "deleted_remote": self.deleted_remote,
            "rejected": self.rejected,
            "errors": dict(self.errors),
            "message": self.message,
        }


class SyncOperations:
    """
    Handles file synchronization cycles with the server.

    Responsibilities:
    - Fetch the remote state and reconcile it with local storage
    - Pull other datasites' changes and deletions into the local folder
    - Push the own datasite's recorded changes and deletions to the server
    - Follow the server for own files with no pending local change
    - Fan per-file transfers out over a bounded worker pool
    - Retry transport failures with exponential backoff
    - Commit each successful transfer to the storage engine
    - Report progress via callbacks
    """

    def __init__(self, api_client, storage, folder_manager, config_manager,
                 codec: Optional[DeltaCodec] = None, ignore_patterns=None):
        """
        Initialize sync operations handler.

        Args:
            api_client: DatasiteSyncAPI instance (the authenticated session)
            storage: StorageEngine holding the local state
            folder_manager: FolderManager instance for the local sync folder
            config_manager: ConfigManager instance for tuning values
            codec: Signature/diff provider passed to DeltaTransfer
            ignore_patterns: Optional IgnorePatterns applied to every plan
        """
        self.api = api_client
        self.storage = storage
        self.folder_mgr = folder_manager
        self.config = config_manager
        self.ignore_patterns = ignore_patterns

        self.max_workers = max(1, int(self.config.get("max_workers", 8)))
        self.bulk_download_threshold = int(self.config.get("bulk_download_threshold", 16))
        self.transport_retries = int(self.config.get("transport_retries", 3))
        self.retry_backoff_seconds = float(self.config.get("retry_backoff_seconds", 1.0))

        self.transfer = DeltaTransfer(
            api_client,
            folder_manager,
            codec=codec,
            max_apply_retries=int(self.config.get("max_apply_retries", 3))
        )
        self.cancel_requested: bool = False
        # One cycle at a time per storage engine
        self._cycle_lock = threading.Lock()

    def sync(self, pull: bool = True, push: bool = True,
             progress_callback: Optional[Callable] = None) -> SyncResult:
        """
        Run one synchronization cycle.

        Process:
        1. Fetch the remote state (transport errors retried)
        2. Reconcile with the storage engine's state and the pending local
           changes of the own datasite, drop ignored paths
        3. Delete locally what the server removed (pull)
        4. Transfer changed files in parallel (pull and/or push)
        5. Commit each successful transfer to storage

        Args:
            pull: Bring server changes and deletions into the local folder
            push: Send the own datasite's recorded changes to the server
            progress_callback: Optional callback for progress updates
                             Called with (message: str, current: int, total: int)

        Returns:
            SyncResult; success is False if any file failed

        Raises:
            DatasiteSyncAuthError: If the session has no identity or the token is rejected
            DatasiteSyncAPIError: If the remote state cannot be fetched
        """
        with self._cycle_lock:
            self.cancel_requested = False
            result = SyncResult()
            owner = self.api.email
            if not owner:
                raise DatasiteSyncAuthError("Session has no identity - call whoami() first")

            logger.info(f"Starting sync for {owner} (pull={pull}, push={push})")
            self._report(progress_callback, "Fetching remote state...", 0, 100)

            remote_state = self._retry_transport("Fetching remote state", self.api.fetch_all_states)
            local_state = self.storage.get_state()
            pending = self.storage.read_pending(owner)
            own_local = local_state.get(owner, set())
            own_remote = remote_state.get(owner, set())

            settled = settled_pending(own_local, own_remote, pending)
            if settled:
                self.storage.clear_pending(owner, settled)
                pending = {path: change for path, change in pending.items() if path not in settled}

            tombstones = {owner: {path for path, change in pending.items() if change.deleted}}
            plan = self._merge_own_plan(
                reconcile(local_state, remote_state, tombstones),
                reconcile_own_datasite(owner, own_local, own_remote, pending),
                owner
            )
            if self.ignore_patterns is not None:
                plan = plan.filtered(lambda _owner, record: not self.ignore_patterns.should_ignore(record.path))
            logger.info(f"Reconcile plan: {plan.summary()}")

            # The server only accepts writes to the own datasite
            pulls = self._select(plan.to_pull) if pull else []
            local_deletes = self._select(plan.to_delete_local) if pull else []
            pushes = self._select(plan.to_push, owner) if push else []
            remote_deletes = self._select(plan.to_delete_remote, owner) if push else []

            total_operations = len(pulls) + len(local_deletes) + len(pushes) + len(remote_deletes)
            if total_operations == 0:
                logger.info("No files need to be synchronized")
                result.message = "Already synchronized"
                self._report(progress_callback, result.message, 100, 100)
                return result

            logger.info(
                f"Need to pull {len(pulls)}, delete locally {len(local_deletes)}, "
                f"push {len(pushes)}, delete remotely {len(remote_deletes)} files"
            )

            for record_owner, record in local_deletes:
                self._delete_local(record_owner, record, result, check_local=(record_owner == owner))

            remote_by_path = {record.path: record for record in own_remote}
            bundle = self._bulk_download(pulls)

            completed = len(local_deletes)
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {}
                for record_owner, record in pulls:
                    if record.path in bundle:
                        future = pool.submit(self._run, f"Storing {record.path}", self.transfer.store_download,
                                             record_owner, record, bundle[record.path])
                    else:
                        future = pool.submit(self._run, f"Pulling {record.path}", self.transfer.pull,
                                             record_owner, record)
                    futures[future] = ("pull", record_owner, record)
                for record_owner, record in pushes:
                    change = pending.get(record.path)
                    future = pool.submit(self._run, f"Pushing {record.path}", self.transfer.push,
                                         record_owner, record, remote_by_path.get(record.path),
                                         change.base_hash if change else None)
                    futures[future] = ("push", record_owner, record)
                for record_owner, record in remote_deletes:
                    future = pool.submit(self._run, f"Deleting {record.path}", self._delete_remote, record)
                    futures[future] = ("delete_remote", record_owner, record)

                for future in as_completed(futures):
                    kind, record_owner, record = futures[future]
                    completed += 1
                    try:
                        outcome = future.result()
                    except DatasiteSyncAuthError:
                        raise
                    except Exception as e:
                        logger.error(f"{kind} of {record.path} failed: {e}")
                        result.errors[record.path] = str(e)
                    else:
                        self._commit(kind, record_owner, record, outcome, result)
                    self._report(progress_callback, f"Synchronized {record.path}", completed, total_operations)

            result.success = not result.errors
            result.message = (
                f"{result.pulled} pulled, {result.pushed} pushed, "
                f"{result.deleted_local} deleted locally, {result.deleted_remote} deleted remotely"
            )
            if result.errors:
                result.message += f", {len(result.errors)} failed"
                logger.error(f"Sync finished with errors: {result.message}")
            else:
                logger.info(f"Sync completed: {result.message}")
            self._report(progress_callback, result.message, total_operations, total_operations)
            return result

    def record_local_change(self, path: str) -> FileMetadata:
        """
        Register a created or modified file of the own datasite for the next push.

        The server hash last synced for the path is kept as the base of the
        change; the push only goes through while the server still holds it.

        Args:
            path: Server path of the file, starting with the own email

        Returns:
            The metadata record stored for the file
        """
        owner = self._own_datasite(path)
        with self._cycle_lock:
            record = self.transfer.describe_local(path)
            base_hash = self._base_hash(owner, record.path)
            self.storage.union_merge(owner, [record])
            self.storage.mark_pending(owner, [PendingChange(path=record.path, base_hash=base_hash)])
        logger.info(f"Recorded local change: {path}")
        return record

    def record_local_deletion(self, path: str):
        """
        Register a deleted file of the own datasite so the next push removes it remotely.
        """
        owner = self._own_datasite(path)
        path = path.lstrip("/")
        with self._cycle_lock:
            base_hash = self._base_hash(owner, path)
            self.storage.remove_by_path(owner, [path])
            self.storage.mark_pending(owner, [PendingChange(path=path, base_hash=base_hash, deleted=True)])
        logger.info(f"Recorded local deletion: {path}")

    def cancel_operation(self):
        """
        Stop starting new file transfers in the current cycle.

        Transfers already in flight finish; files not started are reported as failed.
        """
        logger.info("Cancel requested for current sync cycle")
        self.cancel_requested = True

    # ==================== Internals ====================

    def _own_datasite(self, path: str) -> str:
        owner = self.api.email
        if not owner:
            raise DatasiteSyncAuthError("Session has no identity - call whoami() first")
        if not path.lstrip("/").startswith(f"{owner}/"):
            raise ValueError(f"{path} is not inside the datasite of {owner}")
        return owner

    def _base_hash(self, owner: str, path: str) -> Optional[str]:
        """Server hash a local change of path is based on, None if never synced."""
        change = self.storage.read_pending(owner).get(path)
        if change is not None:
            return change.base_hash
        for record in self.storage.read_snapshot(owner):
            if record.path == path:
                return record.content_hash
        return None

    @staticmethod
    def _select(state, owner: Optional[str] = None) -> List[Tuple[str, FileMetadata]]:
        selected = []
        for record_owner, records in sorted(state.items()):
            if owner is None or record_owner == owner:
                selected.extend((record_owner, record) for record in sorted(records, key=lambda r: r.path))
        return selected

    @staticmethod
    def _merge_own_plan(plan: ReconcilePlan, own_plan: ReconcilePlan, owner: str) -> ReconcilePlan:
        """
        Replace the own datasite's entries of plan with those of own_plan.
        """
        def merged(theirs, ours):
            combined = {key: records for key, records in theirs.items() if key != owner}
            if ours.get(owner):
                combined[owner] = set(ours[owner])
            return combined

        return ReconcilePlan(
            to_pull=merged(plan.to_pull, own_plan.to_pull),
            to_delete_local=merged(plan.to_delete_local, own_plan.to_delete_local),
            to_push=merged(plan.to_push, own_plan.to_push),
            to_delete_remote=merged(plan.to_delete_remote, own_plan.to_delete_remote)
        )

    def _run(self, description: str, func: Callable, *args):
        if self.cancel_requested:
            raise DatasiteSyncAPIError("Operation cancelled by user")
        return self._retry_transport(description, func, *args)

    def _retry_transport(self, description: str, func: Callable, *args):
        """
        Call func, retrying transport failures with exponential backoff.
        """
        attempt = 0
        while True:
            try:
                return func(*args)
            except DatasiteSyncTransportError as e:
                attempt += 1
                if attempt > self.transport_retries:
                    logger.error(f"{description} failed after {attempt} attempts: {e}")
                    raise
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"{description} failed ({e}), retrying in {delay:.1f}s "
                               f"({attempt}/{self.transport_retries})")
                time.sleep(delay)

    def _bulk_download(self, pulls: List[Tuple[str, FileMetadata]]) -> Dict[str, bytes]:
        """
        Fetch files without a local copy in one request when there are enough of them.

        Returns:
            Mapping of path to content; empty when bulk download is not used or fails
        """
        missing = [record.path for _owner, record in pulls if not self.folder_mgr.exists(record.path)]
        if not missing or len(missing) < self.bulk_download_threshold:
            return {}

        logger.info(f"Downloading {len(missing)} files in bulk")
        try:
            bundle = self._retry_transport("Bulk download", self.api.download_bulk, missing)
            files = extract_bulk_bundle(bundle)
        except DatasiteSyncAuthError:
            raise
        except DatasiteSyncAPIError as e:
            logger.warning(f"Bulk download failed, falling back to single downloads: {e}")
            return {}
        wanted = set(missing)
        return {path: data for path, data in files.items() if path in wanted}

    def _delete_local(self, owner: str, record: FileMetadata, result: SyncResult, check_local: bool = False):
        if check_local:
            current_hash = self.folder_mgr.file_hash(record.path)
            if current_hash is not None and current_hash != record.content_hash:
                logger.warning(f"Not deleting {record.path}: changed locally since last sync")
                result.errors[record.path] = f"{record.path} changed locally, record it to push it again"
                return
        try:
            self.folder_mgr.delete(record.path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to delete local file {record.path}: {e}")
            result.errors[record.path] = str(e)
            return
        self.storage.remove_by_path(owner, [record.path])
        self.storage.clear_pending(owner, [record.path])
        result.deleted_local += 1
        logger.info(f"Deleted local file: {record.path}")

    def _delete_remote(self, record: FileMetadata) -> None:
        try:
            self.api.delete(record.path)
        except DatasiteSyncNotFoundError:
            logger.debug(f"{record.path} already absent on server")

    def _commit(self, kind: str, owner: str, record: FileMetadata,
                outcome: Optional[TransferOutcome], result: SyncResult):
        if kind == "delete_remote":
            self.storage.clear_pending(owner, [record.path])
            result.deleted_remote += 1
            logger.info(f"Deleted remote file: {record.path}")
            return

        if outcome.state == TransferState.REJECTED:
            result.rejected += 1
            result.errors[record.path] = outcome.error or "Transfer rejected"
            logger.warning(f"Gave up on {record.path}: {result.errors[record.path]}")
            return

        self.storage.union_merge(owner, [outcome.record])
        self.storage.clear_pending(owner, [record.path])
        if kind == "pull":
            result.pulled += 1
        else:
            result.pushed += 1
        logger.info(f"Successfully {'pulled' if kind == 'pull' else 'pushed'} {record.path}"
                    f"{' (delta)' if outcome.used_delta else ''}")

    @staticmethod
    def _report(progress_callback: Optional[Callable], message: str, current: int, total: int):
        if progress_callback:
            progress_callback(message, current, total)
