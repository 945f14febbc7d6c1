"""
DatasiteSync Client - Managers Package

Contains manager classes for configuration and the local sync folder.

Author: DatasiteSync Project
"""

from .config_manager import ConfigManager, DEFAULT_CONFIG
from .folder_manager import FolderManager, compute_hash

__all__ = [
    'ConfigManager',
    'DEFAULT_CONFIG',
    'FolderManager',
    'compute_hash'
]
