"""
VaultFlow Catalog Models — Pydantic definitions for the folder/file/version graph.

FolderNode: Hierarchy node; parent_id None means root level.
FileRecord: Current metadata for one stored file; blob_key addresses its content.
VersionRecord: Archived prior state of a FileRecord (append-only, per file).

Collections (per account):
    users/{account}/folders
    users/{account}/files
    users/{account}/files/{file_id}/versions
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Opaque document id, unique per collection."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def account_root(account: str) -> str:
    return f"users/{account}"


def folders_path(account: str) -> str:
    return f"{account_root(account)}/folders"


def files_path(account: str) -> str:
    return f"{account_root(account)}/files"


def versions_path(account: str, file_id: str) -> str:
    return f"{files_path(account)}/{file_id}/versions"


# ---------------------------------------------------------------------------
# Content classification
# ---------------------------------------------------------------------------

class MimeClass(str, Enum):
    """Closed content kind, decided once when content is ingested."""
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "MimeClass":
        """
        Classify a MIME type.

        "image/png" → IMAGE, "application/pdf" → PDF, anything else → DOCUMENT.
        """
        value = (content_type or "").lower()
        if "image" in value:
            return cls.IMAGE
        if "pdf" in value:
            return cls.PDF
        return cls.DOCUMENT

    @property
    def previewable(self) -> bool:
        return self in (MimeClass.IMAGE, MimeClass.PDF)


# ---------------------------------------------------------------------------
# FolderNode
# ---------------------------------------------------------------------------

class FolderNode(BaseModel):
    """
    Folder in the account's hierarchy.

    The parent chain must be acyclic. The catalog does not check this;
    callers creating or re-parenting folders do, and every walk over
    parent_id is depth-capped.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(max_length=255)
    parent_id: Optional[str] = Field(default=None, description="Parent folder id; None = root")
    created_at: datetime = Field(default_factory=utcnow)

    class Meta:
        collection = "folders"
        order_field = "created_at"
        search_fields = ["name"]

    @property
    def is_root_level(self) -> bool:
        return self.parent_id is None


# ---------------------------------------------------------------------------
# FileRecord
# ---------------------------------------------------------------------------

class FileRecord(BaseModel):
    """
    Current metadata for a stored file.

    blob_key uniquely identifies the current content. content_ref is a
    derived read capability (possibly time-limited) and can always be
    re-resolved from blob_key.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(max_length=255)
    size_bytes: int = Field(ge=0)
    mime_class: MimeClass = MimeClass.DOCUMENT
    mime_type: str = Field(default="application/octet-stream", max_length=255)
    folder_id: Optional[str] = None
    blob_key: str
    content_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    class Meta:
        collection = "files"
        order_field = "created_at"
        search_fields = ["name"]

    @property
    def previewable(self) -> bool:
        return self.mime_class.previewable

    def content_fields(self) -> Dict[str, Any]:
        """The fields a version archive captures and a restore copies back."""
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "mime_type": self.mime_type,
            "blob_key": self.blob_key,
            "content_ref": self.content_ref,
        }


# ---------------------------------------------------------------------------
# VersionRecord
# ---------------------------------------------------------------------------

class VersionRecord(BaseModel):
    """
    Archived state of a file, taken before an overwrite or restore.

    Append-only; listed newest first. Not removed when the parent file
    is deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    parent_file_id: str
    name: str
    size_bytes: int = Field(ge=0)
    mime_type: str = "application/octet-stream"
    blob_key: str
    content_ref: Optional[str] = None
    archived_at: datetime = Field(default_factory=utcnow)

    class Meta:
        collection = "versions"
        order_field = "archived_at"

    @classmethod
    def archive_of(cls, record: FileRecord, archived_at: Optional[datetime] = None) -> "VersionRecord":
        """Snapshot a FileRecord's current content as a new version."""
        return cls(
            parent_file_id=record.id,
            archived_at=archived_at or utcnow(),
            **record.content_fields(),
        )

    def content_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "mime_type": self.mime_type,
            "blob_key": self.blob_key,
            "content_ref": self.content_ref,
        }
