"""
VaultFlow Realtime Projection Sync — Materialize live collections for one account.

One push subscription per logical collection (folders, files, notes,
teamMembers, plus on-demand per-file version chains). Each subscription
feeds a CollectionChannel holding the latest parsed snapshot and a
first-snapshot flag.

"Loaded" is the conjunction of every primary channel's first-snapshot
flag, whatever order the subscriptions were registered or answered in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import ValidationError

from vaultflow.catalog.models import (
    FileRecord,
    FolderNode,
    VersionRecord,
    account_root,
    files_path,
    folders_path,
    versions_path,
)
from vaultflow.catalog.store import MetadataStore, Snapshot, Subscription
from vaultflow.engine.errors import MetadataReadFailure
from vaultflow.engine.logging import log, log_sync_event

logger = logging.getLogger("vaultflow.projection.sync")

T = TypeVar("T")

SyncListener = Callable[[str, Snapshot], None]


class CollectionChannel(Generic[T]):
    """Typed view of one subscribed collection."""

    def __init__(
        self,
        name: str,
        path: str,
        parse: Callable[[Dict[str, Any]], T],
        order_by: str = "created_at",
    ):
        self.name = name
        self.path = path
        self.order_by = order_by
        self._parse = parse
        self._items: List[T] = []
        self._loaded = False
        self._error: Optional[Exception] = None
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[["CollectionChannel[T]", Snapshot], None]] = []
        self._error_listeners: List[Callable[["CollectionChannel[T]", Exception], None]] = []

    @property
    def items(self) -> List[T]:
        return list(self._items)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def add_listener(self, listener: Callable[["CollectionChannel[T]", Snapshot], None]) -> None:
        self._listeners.append(listener)

    def add_error_listener(self, listener: Callable[["CollectionChannel[T]", Exception], None]) -> None:
        self._error_listeners.append(listener)

    def open(self, store: MetadataStore) -> None:
        """Subscribe afresh; nothing from a previous subscription survives."""
        if self.subscribed:
            return
        self._items = []
        self._loaded = False
        self._error = None
        self._subscription = store.subscribe(
            self.path,
            self._on_snapshot,
            order_by=self.order_by,
            descending=True,
            on_error=self._on_error,
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        items: List[T] = []
        for doc in snapshot.documents:
            try:
                items.append(self._parse(doc))
            except ValidationError as e:
                logger.warning(f"Skipping malformed document {doc.get('id')} in '{self.path}': {e}")
        self._items = items
        self._loaded = True
        for listener in list(self._listeners):
            listener(self, snapshot)

    def _on_error(self, error: Exception) -> None:
        self._error = error
        logger.error(f"Subscription to '{self.path}' failed: {error}")
        for listener in list(self._error_listeners):
            listener(self, error)

    def __repr__(self) -> str:
        return f"<CollectionChannel {self.name} items={len(self._items)} loaded={self._loaded}>"


def _raw(doc: Dict[str, Any]) -> Dict[str, Any]:
    return doc


class ProjectionSync:
    """
    Local projection of an account's collections.

    Usage:
        sync = ProjectionSync(store, account="uid_123")
        await sync.start()
        await sync.wait_loaded()
        folders, files = sync.folders, sync.files
        sync.stop()
    """

    def __init__(self, store: MetadataStore, account: str):
        self._store = store
        self._account = account
        self._channels: Dict[str, CollectionChannel] = {
            "folders": CollectionChannel("folders", folders_path(account), FolderNode.model_validate),
            "files": CollectionChannel("files", files_path(account), FileRecord.model_validate),
            "notes": CollectionChannel("notes", f"{account_root(account)}/notes", _raw),
            "teamMembers": CollectionChannel("teamMembers", f"{account_root(account)}/teamMembers", _raw),
        }
        self._version_channels: Dict[str, CollectionChannel[VersionRecord]] = {}
        self._listeners: List[SyncListener] = []
        self._loaded_event: Optional[asyncio.Event] = None
        self._started = False

        for channel in self._channels.values():
            channel.add_listener(self._on_channel_snapshot)
            channel.add_error_listener(self._on_channel_error)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def start(self) -> None:
        """Open every primary subscription. Snapshots arrive asynchronously."""
        if self._started:
            return
        self._loaded_event = asyncio.Event()
        for channel in self._channels.values():
            channel.open(self._store)
            log(log_sync_event("subscribed", self._account, channel.name))
        self._started = True
        logger.info(f"Sync started for account '{self._account}' ({len(self._channels)} collections)")

    def stop(self) -> None:
        for channel in self._channels.values():
            channel.close()
        for channel in self._version_channels.values():
            channel.close()
        self._version_channels.clear()
        self._loaded_event = None
        self._started = False
        logger.info(f"Sync stopped for account '{self._account}'")

    @property
    def started(self) -> bool:
        return self._started

    @property
    def loaded(self) -> bool:
        """True once every primary collection has delivered its first snapshot."""
        return self._started and all(ch.loaded for ch in self._channels.values())

    def pending_collections(self) -> List[str]:
        return [name for name, ch in self._channels.items() if not ch.loaded]

    async def wait_loaded(self, timeout: Optional[float] = None) -> None:
        """
        Wait until loaded.

        Raises MetadataReadFailure if a subscription errors (before or after
        its first snapshot) or the timeout expires.
        """
        if not self._started or self._loaded_event is None:
            raise MetadataReadFailure("Sync not started", account=self._account)
        try:
            await asyncio.wait_for(self._loaded_event.wait(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise MetadataReadFailure(
                f"Timed out waiting for {self.pending_collections()}",
                account=self._account,
            ) from e
        failed = [ch for ch in self._channels.values() if ch.error is not None]
        if failed:
            raise MetadataReadFailure(
                f"Subscription failed for {[ch.name for ch in failed]}",
                account=self._account,
                collection=failed[0].path,
            )

    # -------------------------------------------------------------------
    # Materialized collections
    # -------------------------------------------------------------------

    @property
    def folders(self) -> List[FolderNode]:
        return self._channels["folders"].items

    @property
    def files(self) -> List[FileRecord]:
        return self._channels["files"].items

    @property
    def notes(self) -> List[Dict[str, Any]]:
        return self._channels["notes"].items

    @property
    def members(self) -> List[Dict[str, Any]]:
        return self._channels["teamMembers"].items

    def channel(self, name: str) -> CollectionChannel:
        return self._channels[name]

    def add_listener(self, listener: SyncListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -------------------------------------------------------------------
    # Version chains (opened on demand, outside the loaded conjunction)
    # -------------------------------------------------------------------

    def watch_versions(self, file_id: str) -> CollectionChannel[VersionRecord]:
        channel = self._version_channels.get(file_id)
        if channel is None:
            channel = CollectionChannel(
                f"versions:{file_id}",
                versions_path(self._account, file_id),
                VersionRecord.model_validate,
                order_by="archived_at",
            )
            channel.add_listener(self._on_version_snapshot)
            self._version_channels[file_id] = channel
        channel.open(self._store)
        return channel

    def unwatch_versions(self, file_id: str) -> None:
        channel = self._version_channels.pop(file_id, None)
        if channel is not None:
            channel.close()

    def versions(self, file_id: str) -> List[VersionRecord]:
        channel = self._version_channels.get(file_id)
        return channel.items if channel else []

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    def _on_channel_snapshot(self, channel: CollectionChannel, snapshot: Snapshot) -> None:
        if snapshot.is_initial:
            log(log_sync_event("first_snapshot", self._account, channel.name, len(snapshot)))
        if self._loaded_event is not None and not self._loaded_event.is_set() and self.loaded:
            self._loaded_event.set()
            logger.info(f"Sync loaded for account '{self._account}'")
        self._emit(channel.name, snapshot)

    def _on_channel_error(self, channel: CollectionChannel, error: Exception) -> None:
        # wake wait_loaded so it can raise instead of waiting for a snapshot
        if self._loaded_event is not None:
            self._loaded_event.set()

    def _on_version_snapshot(self, channel: CollectionChannel, snapshot: Snapshot) -> None:
        self._emit(channel.name, snapshot)

    def _emit(self, name: str, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            listener(name, snapshot)

    def __repr__(self) -> str:
        return f"<ProjectionSync account='{self._account}' loaded={self.loaded}>"
