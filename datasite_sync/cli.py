"""
DatasiteSync Client - CLI Mode Module

Implements the command-line interface for headless/automated operations.
Uses the stored access token, runs one operation and logs to a timestamped file.

Author: DatasiteSync Project
"""

import sys
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List

from .api import DatasiteSyncAPI
from .exceptions import DatasiteSyncAPIError, DatasiteSyncAuthError
from .ignore_patterns import IgnorePatterns
from .managers import ConfigManager, FolderManager
from .operations import SyncOperations
from .storage import InMemoryStorage, SQLStorage


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3


def setup_cli_logging(config_manager: ConfigManager) -> Path:
    """
    Setup logging for CLI mode with timestamped log file.

    Creates log file with format: datasite-sync-YYYY-MM-DD-HH-MM-SS.log
    in the "logs" subdirectory of the configuration directory.

    Args:
        config_manager: ConfigManager instance for log settings

    Returns:
        Path to the created log file
    """
    log_level = config_manager.get("log_level", "INFO")

    timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    log_dir = config_manager.log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"datasite-sync-{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)  # Also output to console
        ]
    )

    logger = logging.getLogger(__name__)
    logger.info(f"DatasiteSync CLI Mode - Log file: {log_file}")
    logger.info(f"Log level: {log_level}")

    return log_file


def cleanup_old_logs(config_manager: ConfigManager, current_log: Path):
    """
    Delete log files older than retention period.

    Args:
        config_manager: ConfigManager instance for retention settings
        current_log: Path to current log file (don't delete this)
    """
    logger = logging.getLogger(__name__)
    retention_days = config_manager.get("log_retention_days", 30)

    if retention_days <= 0:
        return  # Retention disabled

    cutoff_time = datetime.now().timestamp() - (retention_days * 86400)

    deleted_count = 0
    for log_file in current_log.parent.glob("datasite-sync-*.log"):
        if log_file == current_log:
            continue

        try:
            if log_file.stat().st_mtime < cutoff_time:
                log_file.unlink()
                deleted_count += 1
        except OSError as e:
            logger.warning(f"Failed to delete old log file {log_file}: {e}")

    if deleted_count > 0:
        logger.info(f"Deleted {deleted_count} old log file(s)")


def create_storage(config_manager: ConfigManager):
    """
    Build the storage engine selected by the storage_backend setting.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = config_manager.get("storage_backend", "sqlite")
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLStorage(str(config_manager.state_db_path()))
    raise ValueError(f"Unknown storage backend: {backend}")


def authenticate(api_client: DatasiteSyncAPI, config_manager: ConfigManager) -> str:
    """
    Make sure the session holds a working access token.

    Tries the stored token first; if there is none or the server rejects
    it, requests a new one for the configured email and stores it.

    Returns:
        The authenticated email

    Raises:
        DatasiteSyncAuthError: If no email is configured or a new token cannot be obtained
    """
    logger = logging.getLogger(__name__)
    email = config_manager.get("email")
    if not email:
        raise DatasiteSyncAuthError("No email configured. Set 'email' in the configuration file.")

    token = config_manager.get_access_token()
    if token:
        api_client.token = token
        try:
            identity = api_client.whoami()
            logger.info(f"Authenticated as {identity}")
            return identity
        except DatasiteSyncAuthError:
            logger.warning("Stored access token was rejected, requesting a new one")
            config_manager.clear_access_token()

    token = api_client.get_access_token(email)
    config_manager.store_access_token(email, token)
    identity = api_client.whoami()
    logger.info(f"Authenticated as {identity}")
    return identity


def run_cli_operation(operation: str, config_path: Optional[str] = None,
                      paths: Optional[List[str]] = None) -> int:
    """
    Execute a CLI operation.

    Process:
    1. Load configuration and setup logging
    2. Open the session and authenticate
    3. Open the storage engine and the sync folder
    4. Execute requested operation
    5. Return appropriate exit code

    Args:
        operation: "sync", "pull", "push", "whoami", "track" or "untrack"
        config_path: Optional path to config.json
        paths: File paths for track/untrack

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logger = None
    api_client = None
    storage = None

    try:
        config_mgr = ConfigManager(Path(config_path) if config_path else None)
        config_mgr.load_config()
        log_file = setup_cli_logging(config_mgr)
        logger = logging.getLogger(__name__)

        cleanup_old_logs(config_mgr, log_file)

        logger.info("=" * 60)
        logger.info(f"Starting DatasiteSync CLI: {operation.upper()}")
        logger.info("=" * 60)

        server_url = config_mgr.get("server_url")
        if not server_url:
            logger.error("server_url is not set in the configuration")
            return EXIT_CONFIG_ERROR

        api_client = DatasiteSyncAPI(
            server_url,
            verify_ssl=config_mgr.get("verify_ssl", True),
            timeout=config_mgr.get("request_timeout", 30)
        )

        try:
            authenticate(api_client, config_mgr)
        except DatasiteSyncAuthError as e:
            logger.error(f"Authentication failed: {e}")
            return EXIT_AUTH_ERROR

        if operation == "whoami":
            print(api_client.email)
            return EXIT_SUCCESS

        try:
            storage = create_storage(config_mgr)
        except ValueError as e:
            logger.error(str(e))
            return EXIT_CONFIG_ERROR

        folder_mgr = FolderManager(str(config_mgr.sync_folder()))
        folder_mgr.ensure_exists()
        sync_ops = SyncOperations(
            api_client,
            storage,
            folder_mgr,
            config_mgr,
            ignore_patterns=IgnorePatterns.load(folder_mgr.sync_folder)
        )

        if operation in ("track", "untrack"):
            if not paths:
                logger.error(f"{operation} needs at least one path")
                return EXIT_CONFIG_ERROR
            for path in paths:
                if operation == "track":
                    sync_ops.record_local_change(path)
                else:
                    sync_ops.record_local_deletion(path)
            return EXIT_SUCCESS

        def cli_progress_callback(message: str, current: int, total: int):
            if total > 0:
                percentage = (current / total) * 100
                logger.info(f"[{percentage:5.1f}%] {message}")
            else:
                logger.info(message)

        if operation == "sync":
            result = sync_ops.sync(pull=True, push=True, progress_callback=cli_progress_callback)
        elif operation == "pull":
            result = sync_ops.sync(pull=True, push=False, progress_callback=cli_progress_callback)
        elif operation == "push":
            result = sync_ops.sync(pull=False, push=True, progress_callback=cli_progress_callback)
        else:
            logger.error(f"Unknown operation: {operation}")
            return EXIT_FAILURE

        if result.success:
            logger.info("=" * 60)
            logger.info(f"{operation.upper()} COMPLETED SUCCESSFULLY: {result.message}")
            logger.info("=" * 60)
            return EXIT_SUCCESS

        for path, error in sorted(result.errors.items()):
            logger.error(f"  {path}: {error}")
        logger.error("=" * 60)
        logger.error(f"{operation.upper()} FAILED: {result.message}")
        logger.error("=" * 60)
        return EXIT_FAILURE

    except DatasiteSyncAuthError as e:
        if logger:
            logger.error(f"Authentication error: {e}")
        else:
            print(f"Authentication error: {e}", file=sys.stderr)
        return EXIT_AUTH_ERROR

    except DatasiteSyncAPIError as e:
        if logger:
            logger.error(f"API Error: {e}")
        else:
            print(f"API Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    except KeyboardInterrupt:
        if logger:
            logger.warning("Operation cancelled by user (Ctrl+C)")
        else:
            print("\nOperation cancelled by user", file=sys.stderr)
        return EXIT_FAILURE

    except Exception as e:
        if logger:
            logger.exception(f"Unexpected error: {e}")
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    finally:
        if storage is not None:
            storage.close()
        if api_client is not None:
            api_client.close()
