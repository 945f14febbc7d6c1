"""
DatasiteSync Client - Pending Change Model

Marks a file of the own datasite that was changed or deleted locally and
not yet synchronized, together with the server hash it was based on.

Author: DatasiteSync Project
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class PendingChange(BaseModel):
    """
    A local change waiting for the next push.

    base_hash is the server content hash this node last synced for the
    path (None if it never synced one). It is sent as the expected hash
    when the change is pushed. deleted marks a local deletion (tombstone).
    """
    model_config = ConfigDict(frozen=True)

    path: str
    base_hash: Optional[str] = None
    deleted: bool = False
