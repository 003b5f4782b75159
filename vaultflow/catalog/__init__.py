"""
VaultFlow Metadata Catalog.

Folder/file/version entity graph and the document-store boundary it is
persisted through.
"""

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import FileRecord, FolderNode, MimeClass, VersionRecord
from vaultflow.catalog.store import (
    ChangeType,
    DocumentChange,
    InMemoryMetadataStore,
    MetadataStore,
    Snapshot,
    Subscription,
)

__all__ = [
    "Catalog",
    "ChangeType",
    "DocumentChange",
    "FileRecord",
    "FolderNode",
    "InMemoryMetadataStore",
    "MetadataStore",
    "MimeClass",
    "Snapshot",
    "Subscription",
    "VersionRecord",
]
