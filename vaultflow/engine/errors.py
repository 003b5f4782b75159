"""
VaultFlow Error Hierarchy — Structured exceptions for the two-store protocols.

Every failure carries the operation and sub-step where it occurred so a
caller can tell which half of a multi-store sequence went wrong.
Nothing here is retried automatically; partial-failure states are surfaced,
not repaired.

Hierarchy:
    VaultError
    ├── QuotaExceeded          — Advisory pre-flight file-count gate
    ├── UploadFailure          — Blob stream/transport failed
    ├── BlobMissing            — Delete target already absent from blob store
    ├── BlobStoreFailure       — Any other blob store failure
    ├── MetadataWriteFailure   — Catalog write rejected
    ├── MetadataReadFailure    — Catalog read failed
    ├── VerificationRequired   — Identity provider demands verification
    ├── RecordNotFound         — Folder/file/version id not in catalog
    ├── VaultValidationError   — Input validation failed
    └── VaultConfigError       — Invalid vaultflow.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_PROMOTED = ("operation", "step", "account", "object_ref")


class VaultError(Exception):
    """
    Base error for all VaultFlow failures.
    Context is serializable to JSON for the audit log.
    """

    default_user_message = "An unexpected error occurred."

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.operation: Optional[str] = context.get("operation")
        self.step: Optional[str] = context.get("step")
        self.account: Optional[str] = context.get("account")
        self.object_ref: Optional[str] = context.get("object_ref")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    @property
    def user_message(self) -> str:
        """Short inline message suitable for the operation's UI surface."""
        return self.context.get("user_message") or self.default_user_message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "operation": self.operation,
            "step": self.step,
            "account": self.account,
            "object_ref": self.object_ref,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in _PROMOTED
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.step:
            parts.append(f"step={self.step}")
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        return " | ".join(parts)


class QuotaExceeded(VaultError):
    """
    File-count ceiling reached. Raised before any I/O.
    Advisory only: a client-side gate, not a security boundary.
    """

    def __init__(self, message: str, **context: Any):
        self.limit: Optional[int] = context.get("limit")
        self.current: Optional[int] = context.get("current")
        super().__init__(message, **context)

    @property
    def user_message(self) -> str:
        if self.limit is None:
            return "Free limit reached."
        return (
            f"Free plan allows up to {self.limit} files. "
            "Upgrade your workspace to unlock more storage."
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["limit"] = self.limit
        d["current"] = self.current
        return d


class UploadFailure(VaultError):
    """Blob stream failed; no FileRecord was written."""

    default_user_message = "Upload failed. Please try again."

    def __init__(self, message: str, **context: Any):
        self.blob_key: Optional[str] = context.get("blob_key")
        super().__init__(message, **context)


class BlobMissing(VaultError):
    """Delete target is already absent from the blob store."""

    default_user_message = "File not found in storage. It may have already been deleted."

    def __init__(self, message: str, **context: Any):
        self.blob_key: Optional[str] = context.get("blob_key")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["blob_key"] = self.blob_key
        return d


class BlobStoreFailure(VaultError):
    """Transient or unknown blob store failure (write, delete, reference lookup)."""

    default_user_message = "Failed to delete file from storage. Please check your connection."

    def __init__(self, message: str, **context: Any):
        self.blob_key: Optional[str] = context.get("blob_key")
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["blob_key"] = self.blob_key
        d["status_code"] = self.status_code
        return d


class MetadataWriteFailure(VaultError):
    """Catalog rejected a create/update/delete."""

    default_user_message = "Failed to save item record. Please try again."

    def __init__(self, message: str, **context: Any):
        self.collection: Optional[str] = context.get("collection")
        self.record_id: Optional[str] = context.get("record_id")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["collection"] = self.collection
        d["record_id"] = self.record_id
        return d


class MetadataReadFailure(VaultError):
    """Catalog read or subscription failed."""

    default_user_message = "Failed to load items."

    def __init__(self, message: str, **context: Any):
        self.collection: Optional[str] = context.get("collection")
        super().__init__(message, **context)


class VerificationRequired(VaultError):
    """Surfaced from the identity provider; never raised by the core itself."""

    default_user_message = "Please verify your account to continue."


class RecordNotFound(VaultError):
    """Referenced folder, file or version does not exist in the catalog."""

    default_user_message = "Item not found. It may have been removed."

    def __init__(self, message: str, **context: Any):
        self.collection: Optional[str] = context.get("collection")
        self.record_id: Optional[str] = context.get("record_id")
        super().__init__(message, **context)


class VaultValidationError(VaultError):
    """Input validation failed."""

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    @property
    def user_message(self) -> str:
        return self.context.get("user_message") or self.message


class VaultConfigError(VaultError):
    """Configuration error — invalid vaultflow.yaml."""
    pass
