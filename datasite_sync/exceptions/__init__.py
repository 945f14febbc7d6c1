"""
DatasiteSync Client - Exceptions Package

Contains all exception classes for the DatasiteSync client.

Author: DatasiteSync Project
"""

from .api_error import DatasiteSyncAPIError
from .auth_error import DatasiteSyncAuthError
from .server_error import DatasiteSyncServerError
from .not_found_error import DatasiteSyncNotFoundError
from .transport_error import DatasiteSyncTransportError
from .hash_mismatch_error import DatasiteSyncHashMismatchError

__all__ = [
    'DatasiteSyncAPIError',
    'DatasiteSyncAuthError',
    'DatasiteSyncServerError',
    'DatasiteSyncNotFoundError',
    'DatasiteSyncTransportError',
    'DatasiteSyncHashMismatchError'
]
