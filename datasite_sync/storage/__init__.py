"""
DatasiteSync Client - Storage Package

Contains the storage engine interface and its implementations.

Author: DatasiteSync Project
"""

from .storage_engine import StorageEngine
from .in_memory_storage import InMemoryStorage
from .sql_storage import SQLStorage

__all__ = [
    'StorageEngine',
    'InMemoryStorage',
    'SQLStorage'
]
