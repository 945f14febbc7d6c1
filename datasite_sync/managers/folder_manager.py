"""
DatasiteSync Client - Folder Manager

Handles the local sync folder: reading, writing and deleting the files of
every datasite by their server path. Writes go through a temporary file
and an atomic rename so a partially written file is never visible.

Author: DatasiteSync Project
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional

# Configure logging
logger = logging.getLogger(__name__)


def compute_hash(data: bytes) -> str:
    """
    Calculate SHA-256 hash from bytes.

    Args:
        data: Binary data

    Returns:
        Hex string of SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


class FolderManager:
    """
    Manages the local sync folder.

    Responsibilities:
    - Map server paths (e.g. "alice@example.org/public/a.txt") to local files
    - Read file contents for signatures and uploads
    - Atomically write pulled contents
    - Delete files removed remotely and prune empty directories
    """

    def __init__(self, sync_folder: str):
        """
        Initialize folder manager.

        Args:
            sync_folder: Root folder holding one subfolder per datasite
        """
        self.sync_folder = Path(sync_folder).expanduser()

    def ensure_exists(self):
        self.sync_folder.mkdir(parents=True, exist_ok=True)

    def local_path(self, path: str) -> Path:
        """
        Resolve a server path inside the sync folder.

        Raises:
            ValueError: If the path would escape the sync folder
        """
        relative = PurePosixPath(path.replace("\\", "/").lstrip("/"))
        if not relative.parts or ".." in relative.parts:
            raise ValueError(f"Invalid sync path: {path!r}")
        return self.sync_folder.joinpath(*relative.parts)

    def exists(self, path: str) -> bool:
        return self.local_path(path).is_file()

    def read(self, path: str) -> Optional[bytes]:
        """
        Read a file's contents.

        Returns:
            File bytes, or None if the file does not exist locally
        """
        local_file = self.local_path(path)
        try:
            return local_file.read_bytes()
        except FileNotFoundError:
            return None

    def file_hash(self, path: str) -> Optional[str]:
        """
        Calculate SHA-256 hash of a local file.

        Returns:
            Hex string of SHA-256 hash, None if the file does not exist
        """
        local_file = self.local_path(path)
        if not local_file.is_file():
            return None

        sha256_hash = hashlib.sha256()
        with open(local_file, "rb") as f:
            # Read file in chunks to handle large files
            for byte_block in iter(lambda: f.read(65536), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()

    def write(self, path: str, data: bytes):
        """
        Atomically replace a file's contents.

        Args:
            path: Server path of the file
            data: New contents
        """
        local_file = self.local_path(path)
        local_file.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=local_file.parent, prefix=f".{local_file.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, local_file)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def delete(self, path: str) -> bool:
        """
        Delete a local file and any directories it leaves empty.

        Returns:
            True if a file was removed
        """
        local_file = self.local_path(path)
        if not local_file.is_file():
            return False

        local_file.unlink()
        parent = local_file.parent
        while parent != self.sync_folder and parent.is_relative_to(self.sync_folder):
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent
        logger.debug(f"Deleted local file {path}")
        return True
