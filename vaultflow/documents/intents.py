"""
VaultFlow Intent Log — Outbox records for multi-store operations.

Every upload, delete, version-commit and restore is recorded here before
either backing store is touched. The coordinator advances the intent's
``step`` after each sub-step and marks it completed or failed. Failed
intents stay visible until an operator runs the Reconciler, which never
touches pending ones; nothing is repaired automatically.

Steps per kind:
    upload          recorded → blob_written → record_written
    delete          recorded → blob_deleted → record_deleted
    version_commit  recorded → archived → blob_written → record_written
    restore         recorded → archived → record_written

Optional persistence: one JSON line per state change, replayed on load.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import new_id, utcnow
from vaultflow.engine.errors import BlobMissing
from vaultflow.engine.logging import log, log_system_event
from vaultflow.storage.base import BlobStore

logger = logging.getLogger("vaultflow.documents.intents")


class IntentKind(str, Enum):
    UPLOAD = "upload"
    DELETE = "delete"
    VERSION_COMMIT = "version_commit"
    RESTORE = "restore"


class IntentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    RESOLVED = "resolved"


class Intent(BaseModel):
    """One intended multi-store operation and how far it got."""

    id: str = Field(default_factory=new_id)
    kind: IntentKind
    account: str
    file_id: Optional[str] = None
    blob_key: Optional[str] = None
    step: str = "recorded"
    status: IntentStatus = IntentStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.status in (IntentStatus.PENDING, IntentStatus.FAILED)


class IntentLog:
    """
    Thread-safe intent registry with optional JSONL persistence.

    Usage:
        intents = IntentLog(path=".vaultflow/intents.jsonl")
        intent = intents.record(IntentKind.UPLOAD, account="uid", blob_key=key)
        intents.advance(intent.id, "blob_written")
        intents.complete(intent.id)
    """

    def __init__(self, path: Optional[str] = None):
        self._intents: Dict[str, Intent] = {}
        self._lock = threading.Lock()
        self._path = Path(path) if path else None
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._load()

    def record(self, kind: IntentKind, account: str, **fields: Any) -> Intent:
        intent = Intent(kind=kind, account=account, **fields)
        with self._lock:
            self._intents[intent.id] = intent
            self._persist(intent)
        return intent

    def advance(self, intent_id: str, step: str, **fields: Any) -> Intent:
        return self._transition(intent_id, step=step, **fields)

    def complete(self, intent_id: str, step: Optional[str] = None) -> Intent:
        changes: Dict[str, Any] = {"status": IntentStatus.COMPLETED}
        if step:
            changes["step"] = step
        return self._transition(intent_id, **changes)

    def fail(self, intent_id: str, error: Exception) -> Intent:
        return self._transition(intent_id, status=IntentStatus.FAILED, error=str(error))

    def resolve(self, intent_id: str, note: str) -> Intent:
        return self._transition(intent_id, status=IntentStatus.RESOLVED, error=note)

    def get(self, intent_id: str) -> Optional[Intent]:
        return self._intents.get(intent_id)

    def open_intents(self, account: Optional[str] = None) -> List[Intent]:
        """Pending or failed intents, oldest first."""
        items = [
            i for i in self._intents.values()
            if i.is_open and (account is None or i.account == account)
        ]
        return sorted(items, key=lambda i: i.created_at)

    def failed_intents(self, account: Optional[str] = None) -> List[Intent]:
        """Failed intents, oldest first. Pending ones may still be in flight."""
        return [i for i in self.open_intents(account) if i.status is IntentStatus.FAILED]

    def all(self) -> List[Intent]:
        return sorted(self._intents.values(), key=lambda i: i.created_at)

    def _transition(self, intent_id: str, **changes: Any) -> Intent:
        with self._lock:
            current = self._intents.get(intent_id)
            if current is None:
                raise KeyError(f"Unknown intent '{intent_id}'")
            updated = current.model_copy(update={**changes, "updated_at": utcnow()})
            self._intents[intent_id] = updated
            self._persist(updated)
        return updated

    def _persist(self, intent: Intent) -> None:
        if self._path is None:
            return
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(intent.model_dump_json())
            f.write("\n")

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        with open(self._path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    intent = Intent.model_validate_json(line)
                except ValueError:
                    logger.warning(f"Skipping unreadable intent line in {self._path}")
                    continue
                # Later lines supersede earlier states of the same intent
                self._intents[intent.id] = intent

    def __len__(self) -> int:
        return len(self._intents)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

class OrphanKind(str, Enum):
    ORPHAN_BLOB = "orphan_blob"          # blob written, no record points at it
    DANGLING_RECORD = "dangling_record"  # blob deleted, record still present
    NOTHING = "nothing"                  # failed before any store diverged


@dataclass
class ReconcileItem:
    intent: Intent
    kind: OrphanKind
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_id": self.intent.id,
            "intent_kind": self.intent.kind.value,
            "step": self.intent.step,
            "kind": self.kind.value,
            "file_id": self.intent.file_id,
            "blob_key": self.intent.blob_key,
            "detail": self.detail,
        }


class Reconciler:
    """
    Operator pass over failed intents for one account.

    scan() only inspects; resolve() deletes orphan blobs and dangling
    records and marks the intents resolved.
    """

    def __init__(self, catalog: Catalog, blob_store: BlobStore, intents: IntentLog):
        self._catalog = catalog
        self._blobs = blob_store
        self._intents = intents

    async def scan(self) -> List[ReconcileItem]:
        items = []
        for intent in self._intents.failed_intents(self._catalog.account):
            items.append(await self._classify(intent))
        return items

    async def resolve(self, item: ReconcileItem) -> Intent:
        intent = item.intent
        if item.kind is OrphanKind.ORPHAN_BLOB:
            try:
                await self._blobs.delete(intent.blob_key)
                note = f"deleted orphan blob {intent.blob_key}"
            except BlobMissing:
                note = f"orphan blob {intent.blob_key} already absent"
        elif item.kind is OrphanKind.DANGLING_RECORD:
            await self._catalog.delete_file(intent.file_id)
            note = f"deleted dangling record {intent.file_id}"
        else:
            note = "no divergence between stores"

        logger.info(f"Reconciled intent {intent.id}: {note}")
        log(log_system_event("intent_reconciled", details=item.to_dict()))
        return self._intents.resolve(intent.id, note)

    async def resolve_all(self) -> List[Intent]:
        return [await self.resolve(item) for item in await self.scan()]

    async def _classify(self, intent: Intent) -> ReconcileItem:
        if intent.kind in (IntentKind.UPLOAD, IntentKind.VERSION_COMMIT) and intent.step == "blob_written":
            record = await self._catalog.get_file(intent.file_id) if intent.file_id else None
            if record is not None and record.blob_key == intent.blob_key:
                return ReconcileItem(intent, OrphanKind.NOTHING, "record already points at blob")
            return ReconcileItem(intent, OrphanKind.ORPHAN_BLOB, "record write never landed")

        if intent.kind is IntentKind.DELETE and intent.step == "blob_deleted":
            record = await self._catalog.get_file(intent.file_id)
            if record is None:
                return ReconcileItem(intent, OrphanKind.NOTHING, "record already removed")
            return ReconcileItem(intent, OrphanKind.DANGLING_RECORD, "record outlived its blob")

        return ReconcileItem(intent, OrphanKind.NOTHING, f"stopped at '{intent.step}'")
