"""
Tests for the command-line mode of DatasiteSync Client
"""

import json

import pytest

from conftest import ALICE, BOB, FakeCodec, FakeServer

from datasite_sync import cli
from datasite_sync.client import main
from datasite_sync.exceptions import DatasiteSyncAuthError


class FakeConfig:
    def __init__(self, email=ALICE, token=None):
        self.values = {"email": email}
        self.token = token
        self.cleared = False

    def get(self, key, default=None):
        return self.values.get(key, default)

    def get_access_token(self):
        return self.token

    def store_access_token(self, email, token):
        self.values["email"] = email
        self.token = token

    def clear_access_token(self):
        self.cleared = True
        self.token = None


class FakeAuthAPI:
    def __init__(self, valid_tokens=("fresh",)):
        self.valid_tokens = valid_tokens
        self.token = None
        self.email = None
        self.requested = []

    def whoami(self):
        if self.token not in self.valid_tokens:
            raise DatasiteSyncAuthError("Unauthorized")
        self.email = ALICE
        return ALICE

    def get_access_token(self, email):
        self.requested.append(email)
        self.token = "fresh"
        return "fresh"


def test_authenticate_with_stored_token():
    api = FakeAuthAPI(valid_tokens=("stored",))
    config = FakeConfig(token="stored")

    assert cli.authenticate(api, config) == ALICE
    assert api.requested == []


def test_authenticate_replaces_rejected_token():
    api = FakeAuthAPI()
    config = FakeConfig(token="expired")

    assert cli.authenticate(api, config) == ALICE
    assert config.cleared
    assert config.token == "fresh"
    assert api.requested == [ALICE]


def test_authenticate_without_email():
    with pytest.raises(DatasiteSyncAuthError):
        cli.authenticate(FakeAuthAPI(), FakeConfig(email=None))


def write_config(tmp_path, **values):
    config = {
        "server_url": "https://sync.example.org",
        "email": ALICE,
        "sync_folder": str(tmp_path / "sync"),
        "storage_backend": "memory",
        "retry_backoff_seconds": 0,
    }
    config.update(values)
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(config))
    return str(config_file)


@pytest.fixture
def fake_session(monkeypatch):
    """Route the CLI's API client to a FakeServer that accepts any token"""
    server = FakeServer(email=None)
    server.closed = False

    class SessionFactory:
        def __init__(self, server_url, verify_ssl=True, timeout=30):
            self.server_url = server_url

        def __getattr__(self, name):
            return getattr(server, name)

        @property
        def email(self):
            return server.email

        def whoami(self):
            server.email = ALICE
            return ALICE

        def close(self):
            server.closed = True

    monkeypatch.setattr(cli, "DatasiteSyncAPI", SessionFactory)
    monkeypatch.setattr(cli.ConfigManager, "get_access_token", lambda self: "token")
    return server


def test_run_sync(tmp_path, fake_session):
    fake_session.put(f"{BOB}/a.txt", b"A")

    exit_code = cli.run_cli_operation("sync", write_config(tmp_path))

    assert exit_code == cli.EXIT_SUCCESS
    assert (tmp_path / "sync" / BOB / "a.txt").read_bytes() == b"A"
    assert fake_session.closed
    assert list((tmp_path / "logs").glob("datasite-sync-*.log"))


def test_run_sync_reports_failures(tmp_path, fake_session):
    fake_session.put(f"{BOB}/a.txt", b"A")
    fake_session.fail_download.add(f"{BOB}/a.txt")

    assert cli.run_cli_operation("pull", write_config(tmp_path)) == cli.EXIT_FAILURE


def test_unknown_storage_backend(tmp_path, fake_session):
    config_path = write_config(tmp_path, storage_backend="cassandra")

    assert cli.run_cli_operation("sync", config_path) == cli.EXIT_CONFIG_ERROR


def test_track_requires_paths(tmp_path, fake_session):
    assert cli.run_cli_operation("track", write_config(tmp_path), []) == cli.EXIT_CONFIG_ERROR


def test_track_and_push(tmp_path, fake_session, monkeypatch):
    config_path = write_config(tmp_path, storage_backend="sqlite", state_db_path=str(tmp_path / "state.db"))
    own_folder = tmp_path / "sync" / ALICE
    own_folder.mkdir(parents=True)
    (own_folder / "mine.txt").write_bytes(b"mine")
    original_init = cli.SyncOperations.__init__

    def init_with_fake_codec(self, *args, **kwargs):
        kwargs["codec"] = FakeCodec()
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(cli.SyncOperations, "__init__", init_with_fake_codec)

    assert cli.run_cli_operation("track", config_path, [f"{ALICE}/mine.txt"]) == cli.EXIT_SUCCESS
    assert cli.run_cli_operation("push", config_path) == cli.EXIT_SUCCESS
    assert fake_session.files[f"{ALICE}/mine.txt"] == b"mine"


def test_main_parses_arguments(monkeypatch):
    seen = {}

    def fake_run(operation, config_path, paths):
        seen.update(operation=operation, config_path=config_path, paths=paths)
        return 0

    monkeypatch.setattr(cli, "run_cli_operation", fake_run)

    assert main(["track", f"{ALICE}/a.txt", "--config", "/tmp/c.json"]) == 0
    assert seen == {"operation": "track", "config_path": "/tmp/c.json", "paths": [f"{ALICE}/a.txt"]}

    with pytest.raises(SystemExit):
        main(["explode"])
