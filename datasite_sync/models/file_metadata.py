"""
DatasiteSync Client - File Metadata Models

Pydantic models for the records exchanged with the sync server:
per-file metadata, delta descriptors and delta apply results.

Author: DatasiteSync Project
"""

import base64
from datetime import datetime
from typing import Dict, Set

from pydantic import BaseModel, ConfigDict, Field


class FileMetadata(BaseModel):
    """
    Metadata record for one file in a datasite.

    Records are immutable. Two records are equal only if every field
    matches, so a content change always yields a distinct record.
    Wire names (hash, file_size, last_modified) are accepted and emitted
    through the field aliases.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str
    content_hash: str = Field(alias="hash")
    signature: str
    size: int = Field(alias="file_size", ge=0)
    modified_at: datetime = Field(alias="last_modified")

    @property
    def signature_bytes(self) -> bytes:
        """Decoded signature payload."""
        return base64.b64decode(self.signature)

    def to_wire(self) -> dict:
        """Serialize using the server's field names."""
        return self.model_dump(mode="json", by_alias=True)


class DiffResponse(BaseModel):
    """Response model for /sync/get_diff"""
    model_config = ConfigDict(populate_by_name=True)

    path: str
    server_content_hash: str = Field(alias="hash")
    diff: str  # base64

    @property
    def diff_bytes(self) -> bytes:
        return base64.b64decode(self.diff)


class ApplyDiffResponse(BaseModel):
    """Response model for /sync/apply_diff"""
    path: str
    current_hash: str
    previous_hash: str


# owner email -> set of records, unique by path
Snapshot = Set[FileMetadata]
State = Dict[str, Snapshot]
