"""
DatasiteSync Client - Authentication Error Exception

Exception raised when the server rejects the bearer credential (HTTP 401).
Callers re-authenticate before retrying the whole sync cycle.

Author: DatasiteSync Project
"""

from .api_error import DatasiteSyncAPIError


class DatasiteSyncAuthError(DatasiteSyncAPIError):
    """Exception for authentication errors."""
    pass
