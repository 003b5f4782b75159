"""
VaultFlow Metadata Store — Document-store boundary with push subscriptions.

The external document store is organised as collections addressed by
path (e.g. ``users/{account}/files``). Every collection is consumed by
push subscription: a subscriber receives a full ordered snapshot first,
then a new snapshot (plus the typed changes that produced it) after every
mutation.

InMemoryMetadataStore is the reference implementation used by tests and
embedded single-process deployments. Snapshots are delivered on the
running event loop, never inline with subscribe(), so a subscriber can
observe the "registered but not yet loaded" window exactly like a
networked store.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from vaultflow.engine.errors import RecordNotFound

logger = logging.getLogger("vaultflow.catalog.store")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class DocumentChange:
    """One document-level change inside a collection."""
    type: ChangeType
    doc_id: str
    data: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Snapshot:
    """Ordered state of a collection after zero or more changes."""
    collection: str
    documents: List[Dict[str, Any]]
    changes: List[DocumentChange] = field(default_factory=list)
    is_initial: bool = False

    def __len__(self) -> int:
        return len(self.documents)


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle for one push subscription; call unsubscribe() to stop delivery."""

    def __init__(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        order_by: str,
        descending: bool,
        on_error: Optional[ErrorCallback] = None,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.collection = collection
        self.order_by = order_by
        self.descending = descending
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_close = on_close
        self._active = True
        self._delivered_initial = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def delivered_initial(self) -> bool:
        return self._delivered_initial

    def deliver(self, snapshot: Snapshot) -> None:
        if not self._active:
            return
        self._delivered_initial = True
        try:
            self._on_snapshot(snapshot)
        except Exception as e:
            logger.exception(f"Snapshot listener for '{self.collection}' raised")
            if self._on_error:
                self._on_error(e)

    def fail(self, error: Exception) -> None:
        if self._active and self._on_error:
            self._on_error(error)

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_close:
            self._on_close(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"<Subscription collection='{self.collection}' {state}>"


class MetadataStore(ABC):
    """Async document store boundary. Documents are plain dicts keyed by 'id'."""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or replace a document."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document, or None if absent."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing document. Raises RecordNotFound if absent."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting an absent document is not an error."""

    @abstractmethod
    async def list(
        self, collection: str, order_by: str = "created_at", descending: bool = True
    ) -> List[Dict[str, Any]]:
        """Return all documents in the collection, ordered."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Register a push subscription. Requires a running event loop."""

    async def count(self, collection: str) -> int:
        return len(await self.list(collection))


class InMemoryMetadataStore(MetadataStore):
    """
    Single-process document store.

    Ordering ties (equal order_by values) break on insertion order, so
    descending listings put the most recently written document first.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._sequence: Dict[str, Dict[str, int]] = {}
        self._counter = itertools.count()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    # -------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        docs = self._collections.setdefault(collection, {})
        change_type = ChangeType.MODIFIED if doc_id in docs else ChangeType.ADDED
        stored = copy.deepcopy(data)
        stored["id"] = doc_id
        docs[doc_id] = stored
        if change_type is ChangeType.ADDED:
            self._sequence.setdefault(collection, {})[doc_id] = next(self._counter)
        self._notify(collection, [DocumentChange(change_type, doc_id, copy.deepcopy(stored))])

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise RecordNotFound(
                f"No document '{doc_id}' in '{collection}'",
                collection=collection,
                record_id=doc_id,
            )
        docs[doc_id].update(copy.deepcopy(fields))
        docs[doc_id]["id"] = doc_id
        self._notify(
            collection,
            [DocumentChange(ChangeType.MODIFIED, doc_id, copy.deepcopy(docs[doc_id]))],
        )

    async def delete(self, collection: str, doc_id: str) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            return
        del docs[doc_id]
        self._sequence.get(collection, {}).pop(doc_id, None)
        self._notify(collection, [DocumentChange(ChangeType.REMOVED, doc_id)])

    async def list(
        self, collection: str, order_by: str = "created_at", descending: bool = True
    ) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._ordered(collection, order_by, descending))

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------

    def subscribe(
        self,
        collection: str,
        on_snapshot: SnapshotCallback,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        sub = Subscription(
            collection,
            on_snapshot,
            order_by,
            descending,
            on_error=on_error,
            on_close=self._remove_subscription,
        )
        self._subscriptions.setdefault(collection, []).append(sub)
        loop.call_soon(self._deliver_initial, sub)
        logger.debug(f"Subscribed to '{collection}' ordered by {order_by}")
        return sub

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscriptions.get(collection, []))

    def _deliver_initial(self, sub: Subscription) -> None:
        docs = copy.deepcopy(self._ordered(sub.collection, sub.order_by, sub.descending))
        changes = [DocumentChange(ChangeType.ADDED, d["id"], d) for d in docs]
        sub.deliver(Snapshot(sub.collection, docs, changes, is_initial=True))

    def _remove_subscription(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.collection, [])
        if sub in subs:
            subs.remove(sub)

    def _notify(self, collection: str, changes: List[DocumentChange]) -> None:
        for sub in list(self._subscriptions.get(collection, [])):
            if not sub.delivered_initial:
                # Initial snapshot is still queued and will include this change
                continue
            docs = copy.deepcopy(self._ordered(collection, sub.order_by, sub.descending))
            sub.deliver(Snapshot(collection, docs, list(changes)))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _ordered(self, collection: str, order_by: str, descending: bool) -> List[Dict[str, Any]]:
        docs = self._collections.get(collection, {})
        seq = self._sequence.get(collection, {})

        def sort_key(doc: Dict[str, Any]):
            value = doc.get(order_by)
            # Documents missing the order field sort as oldest
            if value is None:
                value = _EPOCH
            return (value, seq.get(doc["id"], 0))

        return sorted(docs.values(), key=sort_key, reverse=descending)

    def __repr__(self) -> str:
        return f"<InMemoryMetadataStore collections={len(self._collections)}>"
