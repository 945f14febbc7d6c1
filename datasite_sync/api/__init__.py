"""
DatasiteSync Client - API Package

This package contains the API communication classes.
"""

from .datasite_sync_api import DatasiteSyncAPI, extract_bulk_bundle

__all__ = ['DatasiteSyncAPI', 'extract_bulk_bundle']
