"""
Tests for the API client in DatasiteSync Client

The HTTP session is replaced with a scripted fake so status mapping,
payload encoding and response parsing can be checked without a server.
"""

import base64
import io
import json
import zipfile

import pytest
import requests

from datasite_sync.api import DatasiteSyncAPI, extract_bulk_bundle
from datasite_sync.exceptions import (
    DatasiteSyncAuthError,
    DatasiteSyncHashMismatchError,
    DatasiteSyncNotFoundError,
    DatasiteSyncServerError,
    DatasiteSyncTransportError
)

RECORD = {
    "path": "alice@example.org/a.txt",
    "hash": "h1",
    "signature": base64.b64encode(b"sig").decode("ascii"),
    "file_size": 3,
    "last_modified": "2025-01-01T00:00:00Z",
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if content is None:
            content = json.dumps(payload).encode() if payload is not None else b""
        self.content = content
        self.text = text if text is not None else content.decode(errors="replace")

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class ScriptedSession:
    """Returns queued responses and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, **kwargs):
        self.requests.append({"method": method, "url": url, "headers": headers, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


def make_api(*responses, token="tok"):
    api = DatasiteSyncAPI("https://sync.example.org/", access_token=token)
    api.session = ScriptedSession(*responses)
    return api


def test_get_access_token_two_steps():
    """Email token is sent as the bearer credential of the second request"""
    api = make_api(
        FakeResponse(payload={"email_token": "one-time"}),
        FakeResponse(payload={"access_token": "access"}),
        token=None
    )

    assert api.get_access_token("alice@example.org") == "access"
    first, second = api.session.requests
    assert first["url"] == "https://sync.example.org/auth/request_email_token"
    assert first["json"] == {"email": "alice@example.org"}
    assert "Authorization" not in first["headers"]
    assert second["headers"]["Authorization"] == "Bearer one-time"
    assert api.token == "access"
    assert api.email == "alice@example.org"


def test_whoami_sets_identity():
    api = make_api(FakeResponse(payload={"email": "alice@example.org"}))

    assert api.whoami() == "alice@example.org"
    assert api.email == "alice@example.org"
    assert api.session.requests[0]["headers"]["Authorization"] == "Bearer tok"


def test_unauthorized_clears_token():
    api = make_api(FakeResponse(status_code=401, payload={"detail": "expired"}))

    with pytest.raises(DatasiteSyncAuthError):
        api.whoami()
    assert api.token is None


def test_request_without_token_fails_fast():
    api = make_api(token=None)

    with pytest.raises(DatasiteSyncAuthError):
        api.fetch_all_states()
    assert api.session.requests == []


def test_fetch_all_states_parses_records():
    api = make_api(FakeResponse(payload={"alice@example.org": [RECORD], "bob@example.org": []}))

    state = api.fetch_all_states()

    assert set(state) == {"alice@example.org", "bob@example.org"}
    record = next(iter(state["alice@example.org"]))
    assert record.content_hash == "h1"
    assert record.size == 3
    assert record.signature_bytes == b"sig"
    assert state["bob@example.org"] == set()


def test_fetch_snapshot_sends_directory():
    api = make_api(FakeResponse(payload=[RECORD]), FakeResponse(payload={"not": "a list"}))

    snapshot = api.fetch_snapshot("alice@example.org")

    assert {record.path for record in snapshot} == {"alice@example.org/a.txt"}
    assert api.session.requests[0]["json"] == {"dir": "alice@example.org"}
    assert api.session.requests[0]["url"].endswith("/sync/dir_state")

    with pytest.raises(DatasiteSyncServerError):
        api.fetch_snapshot("alice@example.org")


def test_fetch_metadata_not_found():
    api = make_api(FakeResponse(status_code=404, payload={"detail": "missing"}), FakeResponse(payload=[]))

    with pytest.raises(DatasiteSyncNotFoundError) as exc_info:
        api.fetch_metadata("alice@example.org/a.txt")
    assert exc_info.value.path == "alice@example.org/a.txt"

    # An empty list also means the path is unknown
    with pytest.raises(DatasiteSyncNotFoundError):
        api.fetch_metadata("alice@example.org/a.txt")


def test_fetch_metadata_accepts_list():
    api = make_api(FakeResponse(payload=[RECORD]))

    record = api.fetch_metadata("alice@example.org/a.txt")
    assert record.path == "alice@example.org/a.txt"
    assert api.session.requests[0]["json"] == {"path_like": "alice@example.org/a.txt"}


def test_fetch_delta_encodes_signature():
    diff = b"\x00\x01binary\xff"
    api = make_api(FakeResponse(payload={
        "path": "alice@example.org/a.txt",
        "hash": "h2",
        "diff": base64.b64encode(diff).decode("ascii"),
    }))

    response = api.fetch_delta("alice@example.org/a.txt", b"\x10sig")

    sent = api.session.requests[0]["json"]
    assert base64.b64decode(sent["signature"]) == b"\x10sig"
    assert response.server_content_hash == "h2"
    assert response.diff_bytes == diff


def test_apply_delta_success():
    api = make_api(FakeResponse(payload={
        "path": "alice@example.org/a.txt", "current_hash": "h2", "previous_hash": "h1"
    }))

    result = api.apply_delta("alice@example.org/a.txt", b"diff", expected_hash="h1")

    sent = api.session.requests[0]["json"]
    assert sent["expected_hash"] == "h1"
    assert base64.b64decode(sent["diff"]) == b"diff"
    assert result.current_hash == "h2"
    assert result.previous_hash == "h1"


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=409, payload={"detail": "conflict"}),
    FakeResponse(status_code=400, payload={"detail": "expected_hash does not match"}),
])
def test_apply_delta_hash_guard(response):
    """A stale expected hash is reported as a hash mismatch"""
    api = make_api(response)

    with pytest.raises(DatasiteSyncHashMismatchError) as exc_info:
        api.apply_delta("alice@example.org/a.txt", b"diff", expected_hash="H1")
    assert exc_info.value.expected_hash == "H1"


def test_server_errors():
    api = make_api(
        FakeResponse(status_code=500, text="boom", content=b"boom"),
        FakeResponse(status_code=400, payload={"detail": "bad path"}),
        FakeResponse(status_code=200, content=b"not json", text="not json"),
    )

    with pytest.raises(DatasiteSyncServerError) as exc_info:
        api.fetch_all_states()
    assert exc_info.value.status_code == 500

    with pytest.raises(DatasiteSyncServerError) as exc_info:
        api.apply_delta("alice@example.org/a.txt", b"diff", expected_hash="h1")
    assert not isinstance(exc_info.value, DatasiteSyncHashMismatchError)
    assert "bad path" in str(exc_info.value)

    with pytest.raises(DatasiteSyncServerError):
        api.whoami()


def test_malformed_record_is_server_error():
    api = make_api(FakeResponse(payload={"alice@example.org": [{"path": "x"}]}))

    with pytest.raises(DatasiteSyncServerError):
        api.fetch_all_states()


@pytest.mark.parametrize("error", [
    requests.exceptions.ConnectionError("refused"),
    requests.exceptions.Timeout("slow"),
    requests.exceptions.RequestException("other"),
])
def test_transport_errors(error):
    api = make_api(error)

    with pytest.raises(DatasiteSyncTransportError):
        api.download("alice@example.org/a.txt")


def test_create_delete_download():
    api = make_api(
        FakeResponse(payload={"ok": True}),
        FakeResponse(status_code=200),
        FakeResponse(content=b"raw bytes"),
    )

    api.create("alice@example.org/a.txt", b"data")
    assert api.delete("alice@example.org/a.txt") is None
    assert api.download("alice@example.org/a.txt") == b"raw bytes"

    create, delete, download = api.session.requests
    assert create["url"].endswith("/sync/create")
    assert create["files"] == {"file": ("alice@example.org/a.txt", b"data")}
    assert delete["json"] == {"path": "alice@example.org/a.txt"}
    assert download["url"].endswith("/sync/download")


def test_download_bulk_uses_bulk_timeout():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("alice@example.org/a.txt", b"A")
        archive.writestr("bob@example.org/dir/b.txt", b"B")
    api = make_api(FakeResponse(content=buffer.getvalue()))

    bundle = api.download_bulk(["alice@example.org/a.txt", "bob@example.org/dir/b.txt"])

    assert api.session.requests[0]["timeout"] == 30
    assert extract_bulk_bundle(bundle) == {
        "alice@example.org/a.txt": b"A",
        "bob@example.org/dir/b.txt": b"B",
    }


def test_extract_bulk_bundle_rejects_garbage():
    with pytest.raises(DatasiteSyncServerError):
        extract_bulk_bundle(b"not a zip")


def test_close_is_idempotent():
    api = make_api()
    with api:
        pass
    api.close()
    assert api.session is None
