"""
VaultFlow mutation protocols.

Upload, two-phase delete, rename, version commit and restore across the
metadata catalog and the blob store, plus the intent log that records them.
"""

from vaultflow.documents.intents import (
    Intent,
    IntentKind,
    IntentLog,
    IntentStatus,
    OrphanKind,
    ReconcileItem,
    Reconciler,
)
from vaultflow.documents.service import MutationCoordinator, UsageSummary
from vaultflow.documents.versioning import VersioningService

__all__ = [
    "Intent",
    "IntentKind",
    "IntentLog",
    "IntentStatus",
    "MutationCoordinator",
    "OrphanKind",
    "ReconcileItem",
    "Reconciler",
    "UsageSummary",
    "VersioningService",
]
