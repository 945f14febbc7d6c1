"""
DatasiteSync Client - Transport Error Exception

Exception raised when the server cannot be reached or a request times out.
Always safe to retry.

Author: DatasiteSync Project
"""

from .api_error import DatasiteSyncAPIError


class DatasiteSyncTransportError(DatasiteSyncAPIError):
    """Exception for connection failures and timeouts."""
    pass
