"""
DatasiteSync Client - Configuration Manager

Handles loading and saving client configuration from/to config.json.
Keeps the server access token in the OS credential store.

Author: DatasiteSync Project
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any

# Configure logging
logger = logging.getLogger(__name__)

KEYRING_SERVICE = "DatasiteSync"

DEFAULT_CONFIG_DIR = Path.home() / ".datasite_sync"

# Default configuration values
DEFAULT_CONFIG = {
    "server_url": "http://localhost:5001",
    "email": None,  # Identity; the access token lives in the OS credential store
    "sync_folder": None,  # None means <home>/DatasiteSync
    "verify_ssl": True,
    "storage_backend": "sqlite",  # "sqlite" or "memory"
    "state_db_path": None,  # None means <config dir>/state.db
    "max_workers": 8,
    "bulk_download_threshold": 16,
    "max_apply_retries": 3,
    "transport_retries": 3,
    "retry_backoff_seconds": 1.0,
    "request_timeout": 30,
    "log_level": "INFO",
    "log_retention_days": 30
}


class ConfigManager:
    """
    Manages client configuration and credentials.

    Responsibilities:
    - Load/save config.json (created with defaults on first run)
    - Store/retrieve the access token via keyring
    - Provide configuration values and derived paths to other modules
    """

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config.json (defaults to ~/.datasite_sync/config.json)
        """
        self.config_file = Path(config_file) if config_file else DEFAULT_CONFIG_DIR / "config.json"
        self.config: Dict[str, Any] = {}

    @property
    def config_dir(self) -> Path:
        return self.config_file.parent

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from config.json.
        Creates default config if file doesn't exist.

        Returns:
            Configuration dictionary
        """
        if self.config_file.exists():
            logger.debug(f"Loading configuration from {self.config_file}")
            with open(self.config_file, 'r') as f:
                self.config = json.load(f)
            # Merge with defaults for any missing keys
            for key, value in DEFAULT_CONFIG.items():
                if key not in self.config:
                    self.config[key] = value
            logger.info("Configuration loaded successfully")
        else:
            logger.info(f"Configuration file not found, creating default at {self.config_file}")
            self.config = DEFAULT_CONFIG.copy()
            self.save_config()

        return self.config

    def save_config(self):
        """Save current configuration to config.json."""
        logger.debug(f"Saving configuration to {self.config_file}")
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump(self.config, f, indent=2)

    def get(self, key: str, default=None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found or unset

        Returns:
            Configuration value
        """
        value = self.config.get(key)
        if value is None:
            return DEFAULT_CONFIG.get(key) if default is None else default
        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value and save to file.
        """
        self.config[key] = value
        self.save_config()

    def sync_folder(self) -> Path:
        folder = self.get("sync_folder")
        return Path(folder).expanduser() if folder else Path.home() / "DatasiteSync"

    def state_db_path(self) -> Path:
        db_path = self.get("state_db_path")
        return Path(db_path).expanduser() if db_path else self.config_dir / "state.db"

    def log_dir(self) -> Path:
        return self.config_dir / "logs"

    def store_access_token(self, email: str, token: str):
        """
        Store the access token in the OS credential store.

        Args:
            email: Identity the token belongs to (also saved in config.json)
            token: Bearer access token
        """
        import keyring

        logger.info(f"Storing access token for {email}")
        if self.get("email") != email:
            self.set("email", email)
        keyring.set_password(KEYRING_SERVICE, email, token)

    def get_access_token(self) -> Optional[str]:
        """
        Retrieve the access token for the configured email.

        Returns:
            Token string or None if no email is configured or no token is stored
        """
        import keyring

        email = self.get("email")
        if not email:
            logger.warning("No email found in configuration")
            return None

        token = keyring.get_password(KEYRING_SERVICE, email)
        if not token:
            logger.debug(f"No access token in credential store for {email}")
            return None
        return token

    def clear_access_token(self):
        """Forget the stored access token (e.g. after the server rejects it)."""
        import keyring
        from keyring.errors import PasswordDeleteError

        email = self.get("email")
        if not email:
            return
        try:
            keyring.delete_password(KEYRING_SERVICE, email)
        except PasswordDeleteError:
            logger.debug(f"No stored access token to clear for {email}")
