"""
DatasiteSync Client - Hash Mismatch Error Exception

Exception raised when the server refuses to apply a delta because the
expected hash no longer matches the stored content.

Author: DatasiteSync Project
"""

from typing import Optional

from .api_error import DatasiteSyncAPIError


class DatasiteSyncHashMismatchError(DatasiteSyncAPIError):
    """Exception raised when the optimistic concurrency guard rejects a write."""

    def __init__(self, message: str, path: str = "", expected_hash: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.expected_hash = expected_hash
