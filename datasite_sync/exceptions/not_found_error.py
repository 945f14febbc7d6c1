"""
DatasiteSync Client - Not Found Error Exception

Exception raised when a path does not exist on the server. Kept apart from
DatasiteSyncServerError so callers can treat it as "needs a full upload".

Author: DatasiteSync Project
"""

from .api_error import DatasiteSyncAPIError


class DatasiteSyncNotFoundError(DatasiteSyncAPIError):
    """Exception for paths missing on the server."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
