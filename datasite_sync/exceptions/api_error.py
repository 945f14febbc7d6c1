"""
DatasiteSync Client - API Error Exception

Base exception class for all errors raised while talking to the sync server.

Author: DatasiteSync Project
"""


class DatasiteSyncAPIError(Exception):
    """Base exception for API errors."""
    pass
