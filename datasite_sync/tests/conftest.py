"""
Shared fixtures for DatasiteSync Client tests

Provides an in-process fake of the sync server and a trivial delta codec
so the transfer and sync logic can be exercised without a network.
"""

import base64
import hashlib
import io
import threading
import zipfile
from datetime import datetime, timedelta, timezone

import pytest

from datasite_sync.exceptions import (
    DatasiteSyncAuthError,
    DatasiteSyncHashMismatchError,
    DatasiteSyncNotFoundError,
    DatasiteSyncTransportError
)
from datasite_sync.managers import FolderManager, compute_hash
from datasite_sync.models import ApplyDiffResponse, DiffResponse, FileMetadata
from datasite_sync.operations import DeltaCodec

ALICE = "alice@example.org"
BOB = "bob@example.org"

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_record(path, content=b"content", minutes=0, signature=None):
    """Build a FileMetadata record for the given content."""
    return FileMetadata(
        path=path,
        content_hash=compute_hash(content),
        signature=signature or base64.b64encode(FakeCodec().signature(content)).decode("ascii"),
        size=len(content),
        modified_at=BASE_TIME + timedelta(minutes=minutes)
    )


class FakeCodec(DeltaCodec):
    """Signature is the content hash, a diff is the full new content."""

    def signature(self, data):
        return hashlib.sha256(data).digest()

    def diff(self, signature, data):
        return b"D" + data

    def apply(self, base, diff):
        assert diff.startswith(b"D")
        return diff[1:]


class FakeConfig:
    """Stands in for ConfigManager with a plain dict."""

    def __init__(self, **values):
        self.values = {
            "max_workers": 4,
            "bulk_download_threshold": 100,
            "max_apply_retries": 3,
            "transport_retries": 2,
            "retry_backoff_seconds": 0,
        }
        self.values.update(values)

    def get(self, key, default=None):
        return self.values.get(key, default)


class FakeServer:
    """
    In-memory sync server with the same method set as DatasiteSyncAPI.

    Files are keyed by their full path; the owner is the first path component.
    Tests inject failures through fail_download, transport_failures,
    hash_mismatches and reject_auth.
    """

    def __init__(self, email=ALICE):
        self.email = email
        self.files = {}
        self.records = {}
        self.calls = []
        self.clock = 0
        self.fail_download = set()
        self.transport_failures = {}
        self.hash_mismatches = {}
        self.reject_auth = False
        self._lock = threading.Lock()

    def put(self, path, content):
        """Store content on the server as if another client uploaded it."""
        with self._lock:
            self.clock += 1
            self.files[path] = content
            self.records[path] = make_record(path, content, minutes=self.clock)
            return self.records[path]

    def _call(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)
            if self.reject_auth:
                raise DatasiteSyncAuthError("Unauthorized")
            remaining = self.transport_failures.get(name, 0)
            if remaining:
                self.transport_failures[name] = remaining - 1
                raise DatasiteSyncTransportError(f"{name} timed out")

    def call_names(self):
        return [call[0] for call in self.calls]

    def fetch_all_states(self):
        self._call("fetch_all_states")
        state = {}
        for path, record in self.records.items():
            state.setdefault(path.split("/", 1)[0], set()).add(record)
        return state

    def fetch_metadata(self, path):
        self._call("fetch_metadata", path)
        if path not in self.records:
            raise DatasiteSyncNotFoundError(f"File not found on server: {path}", path=path)
        return self.records[path]

    def fetch_delta(self, path, signature):
        self._call("fetch_delta", path)
        content = self.files[path]
        return DiffResponse(
            path=path,
            server_content_hash=compute_hash(content),
            diff=base64.b64encode(FakeCodec().diff(signature, content)).decode("ascii")
        )

    def apply_delta(self, path, diff, expected_hash):
        self._call("apply_delta", path, expected_hash)
        pending = self.hash_mismatches.get(path, 0)
        if pending:
            self.hash_mismatches[path] = pending - 1
            raise DatasiteSyncHashMismatchError(f"Server content of {path} changed", path=path,
                                                expected_hash=expected_hash)
        previous = self.records[path].content_hash
        if previous != expected_hash:
            raise DatasiteSyncHashMismatchError(f"Server content of {path} changed", path=path,
                                                expected_hash=expected_hash)
        new_content = FakeCodec().apply(self.files[path], diff)
        record = self.put(path, new_content)
        return ApplyDiffResponse(path=path, current_hash=record.content_hash, previous_hash=previous)

    def create(self, path, data):
        self._call("create", path)
        self.put(path, data)
        return {"path": path}

    def delete(self, path):
        self._call("delete", path)
        if path not in self.files:
            raise DatasiteSyncNotFoundError(f"File not found on server: {path}", path=path)
        del self.files[path]
        del self.records[path]

    def download(self, path):
        self._call("download", path)
        if path in self.fail_download:
            raise DatasiteSyncNotFoundError(f"File not found on server: {path}", path=path)
        return self.files[path]

    def download_bulk(self, paths):
        self._call("download_bulk", tuple(paths))
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for path in paths:
                archive.writestr(path, self.files[path])
        return buffer.getvalue()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def folder(tmp_path):
    manager = FolderManager(str(tmp_path / "sync"))
    manager.ensure_exists()
    return manager


@pytest.fixture
def codec():
    return FakeCodec()
