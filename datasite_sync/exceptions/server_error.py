"""
DatasiteSync Client - Server Error Exception

Exception raised for non-success responses and malformed response bodies.

Author: DatasiteSync Project
"""

from typing import Optional

from .api_error import DatasiteSyncAPIError


class DatasiteSyncServerError(DatasiteSyncAPIError):
    """Exception for server errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
