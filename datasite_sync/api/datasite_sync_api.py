"""
DatasiteSync Client - API Communication Module

Handles all communication with the sync server via its REST API.
Holds the HTTP session, the bearer access token and the identity it
belongs to. Every call is a plain request/response with no retries;
retry policy belongs to the sync orchestrator.

Author: DatasiteSync Project
"""

import base64
import io
import json
import logging
import zipfile
from typing import Optional, Dict, Any, List

import requests

from ..exceptions import (
    DatasiteSyncAuthError,
    DatasiteSyncServerError,
    DatasiteSyncNotFoundError,
    DatasiteSyncTransportError,
    DatasiteSyncHashMismatchError
)
from ..models import FileMetadata, DiffResponse, ApplyDiffResponse, Snapshot, State

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
BULK_DOWNLOAD_TIMEOUT = 30


class DatasiteSyncAPI:
    """
    API client for communicating with the sync server.

    Responsibilities:
    - Obtain a bearer access token (two-step email token exchange)
    - Check identity/liveness (whoami)
    - Fetch datasite states and per-file metadata
    - Fetch and apply binary deltas
    - Create, delete and download whole files

    One instance is the session object for the process: construct it at
    startup, call close() (or use it as a context manager) at exit.
    """

    def __init__(self, server_url: str, verify_ssl: bool = True,
                 access_token: Optional[str] = None, email: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 bulk_timeout: float = BULK_DOWNLOAD_TIMEOUT):
        """
        Initialize API client.

        Args:
            server_url: Base URL of server (e.g., "https://syncserver.example.org")
            verify_ssl: Whether to verify SSL certificates
            access_token: Previously stored bearer token, if any
            email: Identity the token belongs to, if known
            timeout: Default request timeout in seconds
            bulk_timeout: Timeout for bulk downloads in seconds
        """
        self.base_url = server_url.rstrip("/")
        self.verify_ssl = verify_ssl
        self.token: Optional[str] = access_token
        self.email: Optional[str] = email
        self.timeout = timeout
        self.bulk_timeout = bulk_timeout
        # Use session for connection pooling to avoid TCP handshake overhead on each request
        self.session = requests.Session()
        logger.debug(f"Initialized API client for {self.base_url} (SSL verification: {self.verify_ssl})")

    def close(self):
        """
        Close the session and release resources.

        Should be called when done using the API client.
        """
        if getattr(self, 'session', None):
            self.session.close()
            self.session = None
            logger.debug("API client session closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ==================== Authentication ====================

    def get_access_token(self, email: str) -> str:
        """
        Obtain an access token for an identity.

        Two steps: request a one-time email token bound to the identity,
        then exchange it (sent as the bearer credential) for an access token.
        The token and identity are kept on this session.

        Args:
            email: Identity to authenticate as

        Returns:
            The access token

        Raises:
            DatasiteSyncAuthError: If the server rejects the email token
            DatasiteSyncServerError: If the server response is unusable
        """
        logger.info(f"Requesting access token for {email}")
        data = self._make_request(
            "/auth/request_email_token",
            authenticated=False,
            json={"email": email}
        )
        email_token = data.get("email_token") if isinstance(data, dict) else None
        if not email_token:
            raise DatasiteSyncServerError("[/auth/request_email_token] response has no email_token")

        data = self._make_request(
            "/auth/validate_email_token",
            authenticated=False,
            headers={"Authorization": f"Bearer {email_token}"}
        )
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise DatasiteSyncServerError("[/auth/validate_email_token] response has no access_token")

        self.token = access_token
        self.email = email
        logger.info(f"Access token obtained for {email}")
        return access_token

    def whoami(self) -> str:
        """
        Ask the server which identity the current token belongs to.

        Returns:
            Email address of the authenticated identity

        Raises:
            DatasiteSyncAuthError: If the token is missing, invalid or expired
            DatasiteSyncServerError: For any other failure
        """
        data = self._make_request("/auth/whoami")
        email = data.get("email") if isinstance(data, dict) else None
        if not email:
            raise DatasiteSyncServerError("[/auth/whoami] response has no email")
        self.email = email
        return email

    # ==================== State Endpoints ====================

    def fetch_all_states(self) -> State:
        """
        Fetch the snapshot of every datasite known to the server.

        Returns:
            Mapping of owner email to its set of file metadata records
        """
        data = self._make_request("/sync/datasite_states")
        if not isinstance(data, dict):
            raise DatasiteSyncServerError("[/sync/datasite_states] expected an object of datasites")

        state: State = {}
        for owner, items in data.items():
            state[owner] = self._parse_records("/sync/datasite_states", items)
        logger.debug(f"Fetched state for {len(state)} datasites")
        return state

    def fetch_snapshot(self, dir_path: str) -> Snapshot:
        """
        Fetch the server's view of one directory (e.g. a datasite or a subtree).

        Args:
            dir_path: Directory relative to the datasites root

        Returns:
            Set of file metadata records under that directory
        """
        data = self._make_request("/sync/dir_state", json={"dir": dir_path})
        return self._parse_records("/sync/dir_state", data)

    def fetch_metadata(self, path: str) -> FileMetadata:
        """
        Fetch the metadata of a single file.

        Args:
            path: File path relative to the datasites root

        Returns:
            The server's current metadata record

        Raises:
            DatasiteSyncNotFoundError: If the path does not exist on the server
        """
        data = self._make_request("/sync/get_metadata", path=path, json={"path_like": path})
        if isinstance(data, list):
            if not data:
                raise DatasiteSyncNotFoundError(f"File not found on server: {path}", path=path)
            data = data[0]
        return self._parse_model("/sync/get_metadata", FileMetadata, data)

    # ==================== Delta Endpoints ====================

    def fetch_delta(self, path: str, signature: bytes) -> DiffResponse:
        """
        Ask the server for the diff from the content described by a signature
        to the server's current content.

        Args:
            path: File path relative to the datasites root
            signature: Signature of the client's base content

        Returns:
            DiffResponse with the server hash and the diff bytes
        """
        payload = {
            "path": path,
            "signature": base64.b64encode(signature).decode("ascii")
        }
        data = self._make_request("/sync/get_diff", path=path, json=payload)
        return self._parse_model("/sync/get_diff", DiffResponse, data)

    def apply_delta(self, path: str, diff: bytes, expected_hash: str) -> ApplyDiffResponse:
        """
        Apply a diff to the server's copy of a file.

        The server applies the diff only if expected_hash still matches its
        stored hash for the path.

        Args:
            path: File path relative to the datasites root
            diff: Diff from the server's content to the new content
            expected_hash: Hash the client believes the server currently holds

        Returns:
            ApplyDiffResponse with previous and current hashes

        Raises:
            DatasiteSyncHashMismatchError: If the server content changed meanwhile
        """
        payload = {
            "path": path,
            "diff": base64.b64encode(diff).decode("ascii"),
            "expected_hash": expected_hash
        }
        try:
            data = self._make_request("/sync/apply_diff", path=path, json=payload)
        except DatasiteSyncServerError as e:
            if e.status_code == 409 or (e.status_code == 400 and "expected_hash" in str(e)):
                logger.warning(f"Hash guard rejected delta for {path} (expected {expected_hash})")
                raise DatasiteSyncHashMismatchError(
                    f"Server content of {path} no longer matches {expected_hash}",
                    path=path,
                    expected_hash=expected_hash
                ) from e
            raise
        return self._parse_model("/sync/apply_diff", ApplyDiffResponse, data)

    # ==================== File Operations ====================

    def create(self, path: str, data: bytes) -> Any:
        """
        Upload a file that does not exist on the server yet.

        Args:
            path: File path relative to the datasites root
            data: File contents

        Returns:
            Parsed server response
        """
        files = {"file": (path, data)}
        return self._make_request("/sync/create", path=path, files=files)

    def delete(self, path: str) -> None:
        """
        Delete a file on the server.

        Args:
            path: File path relative to the datasites root
        """
        self._make_request("/sync/delete", path=path, expect="none", json={"path": path})

    def download(self, path: str) -> bytes:
        """
        Download a file's full contents.

        Args:
            path: File path relative to the datasites root

        Returns:
            File binary data

        Raises:
            DatasiteSyncNotFoundError: If the file is not on the server
        """
        return self._make_request("/sync/download", path=path, expect="bytes", json={"path": path})

    def download_bulk(self, paths: List[str]) -> bytes:
        """
        Download several files in one request.

        Args:
            paths: File paths relative to the datasites root

        Returns:
            Zip archive bytes (see extract_bulk_bundle)
        """
        return self._make_request(
            "/sync/download_bulk",
            expect="bytes",
            timeout=self.bulk_timeout,
            json={"paths": list(paths)}
        )

    # ==================== Internals ====================

    def _make_request(self, endpoint: str, path: Optional[str] = None,
                      authenticated: bool = True, expect: str = "json", **kwargs) -> Any:
        """
        Make an API request (always POST).

        Args:
            endpoint: API endpoint (e.g., "/sync/get_diff")
            path: File path the request is about, for error reporting
            authenticated: Whether to send the stored bearer token
            expect: "json", "bytes" or "none"
            **kwargs: Additional arguments for requests

        Returns:
            Parsed JSON, raw bytes or None depending on expect

        Raises:
            DatasiteSyncAuthError: If authentication fails (token invalid/expired)
            DatasiteSyncNotFoundError: If the server answers 404
            DatasiteSyncServerError: For other error statuses or malformed JSON
            DatasiteSyncTransportError: On connection errors and timeouts
        """
        headers = kwargs.pop("headers", {})
        if authenticated:
            if not self.token:
                logger.error("Attempted API request without authentication")
                raise DatasiteSyncAuthError("Not authenticated - call get_access_token() first")
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}{endpoint}"
        logger.debug(f"API request: POST {endpoint}")

        if "verify" not in kwargs:
            kwargs["verify"] = self.verify_ssl
        if "timeout" not in kwargs:
            kwargs["timeout"] = self.timeout

        try:
            response = self.session.request("POST", url, headers=headers, **kwargs)
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Cannot connect to server at {self.base_url}: {e}")
            raise DatasiteSyncTransportError(f"Cannot connect to server at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"[{endpoint}] request timed out")
            raise DatasiteSyncTransportError(f"[{endpoint}] request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: {str(e)}")
            raise DatasiteSyncTransportError(f"Request error: {str(e)}") from e

        if response.status_code == 401:
            # Token expired or invalid
            if authenticated:
                self.token = None
            logger.warning(f"[{endpoint}] unauthorized")
            raise DatasiteSyncAuthError("Unauthorized")

        if response.status_code == 404:
            target = path or endpoint
            raise DatasiteSyncNotFoundError(f"File not found on server: {target}", path=path or "")

        if response.status_code >= 400:
            error_message = self._error_detail(response)
            logger.error(f"[{endpoint}] call failed with status {response.status_code}: {error_message}")
            raise DatasiteSyncServerError(
                f"[{endpoint}] call failed with status {response.status_code}: {error_message}",
                status_code=response.status_code
            )

        if expect == "bytes":
            return response.content
        if expect == "none":
            return None

        try:
            return response.json()
        except ValueError:
            raise DatasiteSyncServerError(f"[{endpoint}] failed to deserialize JSON",
                                          status_code=response.status_code)

    @staticmethod
    def _error_detail(response) -> str:
        error_message = response.text
        try:
            error_data = response.json()
        except ValueError:
            return error_message
        if isinstance(error_data, dict):
            detail = error_data.get("detail", error_data.get("message"))
            if detail is not None:
                return detail if isinstance(detail, str) else json.dumps(detail)
        return error_message

    @staticmethod
    def _parse_model(endpoint: str, model, data: Any):
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise DatasiteSyncServerError(f"[{endpoint}] malformed response: {e}")

    def _parse_records(self, endpoint: str, items: Any) -> Snapshot:
        if not isinstance(items, list):
            raise DatasiteSyncServerError(f"[{endpoint}] expected a list of file metadata")
        return {self._parse_model(endpoint, FileMetadata, item) for item in items}


def extract_bulk_bundle(bundle: bytes) -> Dict[str, bytes]:
    """
    Unpack the zip archive returned by download_bulk.

    Args:
        bundle: Archive bytes

    Returns:
        Mapping of file path to file contents

    Raises:
        DatasiteSyncServerError: If the bundle is not a valid archive
    """
    try:
        with zipfile.ZipFile(io.BytesIO(bundle)) as archive:
            return {
                info.filename: archive.read(info)
                for info in archive.infolist()
                if not info.is_dir()
            }
    except zipfile.BadZipFile as e:
        raise DatasiteSyncServerError(f"Bulk download returned an invalid archive: {e}")
