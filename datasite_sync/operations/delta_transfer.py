"""
DatasiteSync Client - Delta Transfer Module

Moves one file's content between the local folder and the server, using
binary deltas where a base copy exists and whole-file transfers otherwise.

Pull of a changed file:
    signature of the local copy -> fetch_delta -> patch locally -> verify hash -> write
Push of a changed file:
    signature of the server copy -> diff local bytes -> apply_delta guarded by the
    last synced server hash -> record the server's new metadata

The steps for one path always run in this order. A push rejected by the
server's hash guard is retried only while the server still holds the synced
content; once it holds anything else the push is a conflict.

Author: DatasiteSync Project
"""

import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import (
    DatasiteSyncHashMismatchError,
    DatasiteSyncNotFoundError,
    DatasiteSyncServerError
)
from ..managers.folder_manager import compute_hash
from ..models import FileMetadata, TransferState, get_transfer_message
from .delta_codec import DeltaCodec, FastRsyncCodec

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class TransferOutcome:
    """Final state of one file transfer within a sync cycle."""

    owner: str
    path: str
    direction: str  # "pull" or "push"
    state: TransferState
    record: Optional[FileMetadata] = None  # metadata to commit locally on success
    used_delta: bool = False
    attempts: int = 1
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == TransferState.DELTA_APPLIED


class DeltaTransfer:
    """
    Runs the per-file transfer state machine.

    Responsibilities:
    - Pull changed files with fetch_delta, falling back to full downloads
    - Push changed files with apply_delta, creating files the server lacks
    - Restart a pull when the local copy changes under it
    - Retry a push rejected by the hash guard
    """

    def __init__(self, api_client, folder_manager, codec: Optional[DeltaCodec] = None,
                 max_apply_retries: int = 3, max_restarts: int = 3):
        """
        Initialize delta transfer handler.

        Args:
            api_client: DatasiteSyncAPI instance for server communication
            folder_manager: FolderManager instance for local file access
            codec: Signature/diff provider (defaults to FastRsyncCodec)
            max_apply_retries: Attempts at apply_delta before giving up on a push
            max_restarts: Attempts at a pull whose local copy keeps changing
        """
        self.api = api_client
        self.folder_mgr = folder_manager
        self.codec = codec or FastRsyncCodec()
        self.max_apply_retries = max(1, max_apply_retries)
        self.max_restarts = max(1, max_restarts)

    # ==================== Pull ====================

    def pull(self, owner: str, record: FileMetadata) -> TransferOutcome:
        """
        Bring the local copy of a file up to the remote record.

        Args:
            owner: Datasite the file belongs to
            record: Remote metadata the local copy should match

        Returns:
            TransferOutcome with the record to commit
        """
        path = record.path
        for attempt in range(1, self.max_restarts + 1):
            state = TransferState.UNKNOWN
            base = self.folder_mgr.read(path)
            if base is None:
                logger.debug(f"No local copy of {path}, downloading in full")
                return self.store_download(owner, record, self.api.download(path))

            base_hash = compute_hash(base)
            if base_hash == record.content_hash:
                # Content already matches, only metadata moved
                return TransferOutcome(owner, path, "pull", TransferState.DELTA_APPLIED,
                                       record=record, attempts=attempt)

            signature = self.codec.signature(base)
            state = self._advance(path, TransferState.SIGNATURE_COMPUTED)

            delta = self.api.fetch_delta(path, signature)
            state = self._advance(path, TransferState.DELTA_FETCHED)

            new_data = self.codec.apply(base, delta.diff_bytes)
            if compute_hash(new_data) != delta.server_content_hash:
                logger.warning(f"Patched content of {path} does not match server hash, downloading in full")
                return self.store_download(owner, record, self.api.download(path))

            if self.folder_mgr.file_hash(path) != base_hash:
                logger.info(f"Local copy of {path} changed during transfer, restarting ({attempt}/{self.max_restarts})")
                continue

            self.folder_mgr.write(path, new_data)
            state = self._advance(path, TransferState.DELTA_APPLIED)
            logger.debug(f"Pulled {path} with a {len(delta.diff_bytes)} byte delta")

            committed = record
            if delta.server_content_hash != record.content_hash:
                # Server moved on since the state was fetched
                committed = self.api.fetch_metadata(path)
            return TransferOutcome(owner, path, "pull", state, record=committed,
                                   used_delta=True, attempts=attempt)

        return TransferOutcome(owner, path, "pull", TransferState.REJECTED, attempts=self.max_restarts,
                               error=f"Local copy of {path} kept changing during transfer")

    def store_download(self, owner: str, record: FileMetadata, data: bytes) -> TransferOutcome:
        """
        Verify and write a fully downloaded file.

        Args:
            owner: Datasite the file belongs to
            record: Remote metadata the content is expected to match
            data: Downloaded content

        Returns:
            TransferOutcome with the record to commit

        Raises:
            DatasiteSyncServerError: If the content matches neither the record nor the server's current metadata
        """
        path = record.path
        downloaded_hash = compute_hash(data)
        committed = record
        if downloaded_hash != record.content_hash:
            committed = self.api.fetch_metadata(path)
            if downloaded_hash != committed.content_hash:
                logger.error(f"Hash mismatch for {path}: expected {committed.content_hash}, got {downloaded_hash}")
                raise DatasiteSyncServerError(f"Hash verification failed for {path}")

        self.folder_mgr.write(path, data)
        logger.debug(f"Downloaded {path} ({len(data)} bytes)")
        return TransferOutcome(owner, path, "pull", TransferState.DELTA_APPLIED, record=committed)

    # ==================== Push ====================

    def push(self, owner: str, record: FileMetadata,
             remote_record: Optional[FileMetadata] = None,
             base_hash: Optional[str] = None) -> TransferOutcome:
        """
        Bring the server copy of a file up to the local content.

        The delta is applied only if the server still holds base_hash, the
        content this node last synced. A server copy that moved on since then
        is a conflict: the push ends REJECTED and nothing is overwritten.

        Args:
            owner: Datasite the file belongs to
            record: Local metadata of the file
            remote_record: Server metadata for the same path, None if the server lacks it
            base_hash: Server hash at the last sync of this path, None if never synced

        Returns:
            TransferOutcome with the server's metadata to commit

        Raises:
            FileNotFoundError: If the local file is gone
        """
        path = record.path
        data = self.folder_mgr.read(path)
        if data is None:
            raise FileNotFoundError(f"Local file not found: {path}")
        local_hash = compute_hash(data)

        for attempt in range(1, self.max_apply_retries + 1):
            state = TransferState.UNKNOWN

            if remote_record is None:
                logger.debug(f"Creating {path} on server")
                self.api.create(path, data)
                return TransferOutcome(owner, path, "push", TransferState.DELTA_APPLIED,
                                       record=self.api.fetch_metadata(path), attempts=attempt)

            if remote_record.content_hash == local_hash:
                return TransferOutcome(owner, path, "push", TransferState.DELTA_APPLIED,
                                       record=remote_record, attempts=attempt)

            if base_hash is None or remote_record.content_hash != base_hash:
                self._advance(path, TransferState.REJECTED)
                return TransferOutcome(owner, path, "push", TransferState.REJECTED, attempts=attempt,
                                       error=f"{path} changed on server since last sync")

            signature = remote_record.signature_bytes
            state = self._advance(path, TransferState.SIGNATURE_COMPUTED)

            diff = self.codec.diff(signature, data)
            state = self._advance(path, TransferState.DELTA_FETCHED)

            try:
                result = self.api.apply_delta(path, diff, expected_hash=base_hash)
            except DatasiteSyncHashMismatchError:
                state = self._advance(path, TransferState.REJECTED)
                logger.info(f"Refetching metadata for {path} ({attempt}/{self.max_apply_retries})")
                remote_record = self._current_metadata(path)
                continue

            state = self._advance(path, TransferState.DELTA_APPLIED)
            if result.current_hash != local_hash:
                logger.warning(f"Server reports hash {result.current_hash} for {path}, local content is {local_hash}")
            return TransferOutcome(owner, path, "push", state, record=self.api.fetch_metadata(path),
                                   used_delta=True, attempts=attempt)

        return TransferOutcome(owner, path, "push", TransferState.REJECTED, attempts=self.max_apply_retries,
                               error=f"Server kept rejecting delta for {path}")

    # ==================== Local metadata ====================

    def describe_local(self, path: str) -> FileMetadata:
        """
        Build the metadata record of a local file.

        Raises:
            FileNotFoundError: If the file does not exist locally
        """
        data = self.folder_mgr.read(path)
        if data is None:
            raise FileNotFoundError(f"Local file not found: {path}")
        mtime = self.folder_mgr.local_path(path).stat().st_mtime
        return FileMetadata(
            path=path,
            content_hash=compute_hash(data),
            signature=base64.b64encode(self.codec.signature(data)).decode("ascii"),
            size=len(data),
            modified_at=datetime.fromtimestamp(mtime, tz=timezone.utc)
        )

    def _current_metadata(self, path: str) -> Optional[FileMetadata]:
        try:
            return self.api.fetch_metadata(path)
        except DatasiteSyncNotFoundError:
            return None

    @staticmethod
    def _advance(path: str, state: TransferState) -> TransferState:
        logger.debug(get_transfer_message(state, path))
        return state
