"""
DatasiteSync Client - Models Package

Contains data models and enumerations used by the client.

Author: DatasiteSync Project
"""

from .file_metadata import (
    FileMetadata,
    DiffResponse,
    ApplyDiffResponse,
    Snapshot,
    State
)
from .pending_change import PendingChange
from .transfer_state import (
    TransferState,
    is_terminal,
    get_transfer_message
)

__all__ = [
    'FileMetadata',
    'DiffResponse',
    'ApplyDiffResponse',
    'Snapshot',
    'State',
    'PendingChange',
    'TransferState',
    'is_terminal',
    'get_transfer_message'
]
