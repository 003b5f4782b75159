"""Unit tests for vaultflow.projection.sync — ProjectionSync and loaded signal."""

import asyncio

import pytest

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import FolderNode, VersionRecord
from vaultflow.catalog.store import InMemoryMetadataStore
from vaultflow.engine.errors import MetadataReadFailure
from vaultflow.projection.sync import ProjectionSync
from vaultflow.storage.base import UploadSource

ACCOUNT = "uid_test"


async def settle(rounds: int = 3) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _DeferredStore(InMemoryMetadataStore):
    """Holds back the initial snapshot of chosen collections until released."""

    def __init__(self, held):
        super().__init__()
        self._held = set(held)
        self._parked = []

    def _deliver_initial(self, sub):
        if sub.collection in self._held:
            self._parked.append(sub)
            return
        super()._deliver_initial(sub)

    def release(self):
        parked, self._parked = self._parked, []
        self._held.clear()
        for sub in parked:
            super()._deliver_initial(sub)


class _RefusingStore(InMemoryMetadataStore):
    """Fails one collection's subscription instead of delivering its first snapshot."""

    def __init__(self, refused):
        super().__init__()
        self._refused = refused

    def _deliver_initial(self, sub):
        if sub.collection == self._refused:
            sub.fail(MetadataReadFailure("permission denied"))
            return
        super()._deliver_initial(sub)


class TestLoaded:
    @pytest.mark.asyncio
    async def test_loaded_after_all_first_snapshots(self):
        sync = ProjectionSync(InMemoryMetadataStore(), ACCOUNT)
        assert not sync.loaded
        await sync.start()
        assert not sync.loaded
        await sync.wait_loaded(timeout=1)
        assert sync.loaded
        assert sync.pending_collections() == []

    @pytest.mark.asyncio
    async def test_not_loaded_while_any_collection_pending(self):
        # folders is registered first; its snapshot arriving last must still gate "loaded"
        store = _DeferredStore(held=[f"users/{ACCOUNT}/folders"])
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        await settle()

        assert sync.channel("teamMembers").loaded
        assert not sync.loaded
        assert sync.pending_collections() == ["folders"]

        store.release()
        assert sync.loaded
        await sync.wait_loaded(timeout=1)

    @pytest.mark.asyncio
    async def test_wait_loaded_timeout(self):
        store = _DeferredStore(held=[f"users/{ACCOUNT}/files"])
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        with pytest.raises(MetadataReadFailure, match="files"):
            await sync.wait_loaded(timeout=0.01)

    @pytest.mark.asyncio
    async def test_restart_waits_for_fresh_snapshots(self):
        store = _DeferredStore(held=[])
        await Catalog(store, ACCOUNT).create_folder(FolderNode(name="Docs"))
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        await sync.wait_loaded(timeout=1)
        assert [f.name for f in sync.folders] == ["Docs"]

        sync.stop()
        store._held.add(f"users/{ACCOUNT}/folders")
        await sync.start()
        await settle()
        assert not sync.loaded
        assert sync.folders == []
        assert sync.pending_collections() == ["folders"]

        store.release()
        await sync.wait_loaded(timeout=1)
        assert [f.name for f in sync.folders] == ["Docs"]

    @pytest.mark.asyncio
    async def test_subscription_failure_wakes_waiter(self):
        sync = ProjectionSync(_RefusingStore(f"users/{ACCOUNT}/files"), ACCOUNT)
        await sync.start()
        with pytest.raises(MetadataReadFailure, match="Subscription failed") as exc_info:
            # no timeout of its own; the outer bound only guards against a hang
            await asyncio.wait_for(sync.wait_loaded(), timeout=1)
        assert exc_info.value.context["collection"] == f"users/{ACCOUNT}/files"
        assert not sync.loaded

    @pytest.mark.asyncio
    async def test_wait_before_start(self):
        with pytest.raises(MetadataReadFailure):
            await ProjectionSync(InMemoryMetadataStore(), ACCOUNT).wait_loaded()


class TestMaterialization:
    @pytest.mark.asyncio
    async def test_tracks_changes(self, catalog, coordinator):
        sync = ProjectionSync(catalog.store, catalog.account)
        await sync.start()
        await sync.wait_loaded(timeout=1)
        seen = []
        remove = sync.add_listener(lambda name, snapshot: seen.append(name))

        folder = await coordinator.create_folder("Docs")
        record = await coordinator.upload_file(UploadSource("a.txt", b"x"), folder_id=folder.id)
        assert [f.id for f in sync.folders] == [folder.id]
        assert [f.id for f in sync.files] == [record.id]

        await coordinator.rename_file(record.id, "b.txt")
        assert sync.files[0].name == "b.txt"
        assert seen == ["folders", "files", "files"]

        remove()
        await coordinator.delete_file(record.id)
        assert sync.files == []
        assert seen == ["folders", "files", "files"]

    @pytest.mark.asyncio
    async def test_raw_collections(self, store):
        await store.set(f"users/{ACCOUNT}/notes", "n1", {"text": "hello"})
        await store.set(f"users/{ACCOUNT}/teamMembers", "m1", {"email": "a@b.c"})
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        await sync.wait_loaded(timeout=1)
        assert sync.notes == [{"text": "hello", "id": "n1"}]
        assert sync.members[0]["email"] == "a@b.c"

    @pytest.mark.asyncio
    async def test_malformed_document_skipped(self, store):
        await store.set(f"users/{ACCOUNT}/folders", "bad", {"parent_id": None})
        good = FolderNode(name="Good")
        await store.set(f"users/{ACCOUNT}/folders", good.id, good.model_dump())
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        await sync.wait_loaded(timeout=1)
        assert [f.id for f in sync.folders] == [good.id]

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, store):
        sync = ProjectionSync(store, ACCOUNT)
        await sync.start()
        await sync.wait_loaded(timeout=1)
        sync.stop()
        assert store.subscriber_count(f"users/{ACCOUNT}/files") == 0
        assert not sync.loaded


class TestVersionChannels:
    @pytest.mark.asyncio
    async def test_watch_versions(self, catalog, coordinator, versions):
        record = await coordinator.upload_file(UploadSource("a.txt", b"x"))
        sync = ProjectionSync(catalog.store, catalog.account)
        await sync.start()
        await sync.wait_loaded(timeout=1)

        channel = sync.watch_versions(record.id)
        await settle()
        assert channel.loaded
        assert sync.versions(record.id) == []

        await versions.commit_new_version(record.id, UploadSource("b.txt", b"y"))
        history = sync.versions(record.id)
        assert len(history) == 1
        assert isinstance(history[0], VersionRecord)

        sync.unwatch_versions(record.id)
        assert sync.versions(record.id) == []
        assert sync.loaded
