"""Test manifest persistence"""

import time

import pytest

from chunkrelay.errors import ManifestCorrupt, StaleManifest
from chunkrelay.file.manifest import (
    ChunkDescriptor, Cursor, Manifest, TransferState, TransferStatus,
)
from chunkrelay.storage.manifest_store import ManifestStore


def new_manifest(transfer_id="t1", **kwargs) -> Manifest:
    return Manifest(transfer_id=transfer_id, source_descriptor="/data/file.bin",
                    chunk_size=10, total_size=25, source_sizes=[25], **kwargs)


class TestManifestStore:
    """Atomic, versioned manifest storage"""

    def test_load_missing_returns_none(self, state_dir):
        store = ManifestStore(state_dir)
        assert store.load("nope") is None

    def test_create_then_load(self, state_dir):
        store = ManifestStore(state_dir)
        store.create(new_manifest())

        loaded = store.load("t1")
        assert loaded.source_descriptor == "/data/file.bin"
        assert loaded.total_size == 25
        assert loaded.status == TransferStatus.PENDING

    def test_create_never_overwrites_existing(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(new_manifest())
        manifest.cursor = Cursor(0, 20)
        manifest.status = TransferStatus.IN_PROGRESS
        store.save(manifest)

        again = store.create(new_manifest())

        assert again.cursor == Cursor(0, 20)
        assert again.status == TransferStatus.IN_PROGRESS
        assert store.load("t1").cursor == Cursor(0, 20)

    def test_save_increments_version(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(new_manifest())
        assert manifest.version == 0

        store.save(manifest)
        store.save(manifest)

        assert manifest.version == 2
        assert store.load("t1").version == 2

    def test_stale_writer_is_rejected(self, state_dir):
        store = ManifestStore(state_dir)
        store.create(new_manifest())

        first = store.load("t1")
        second = store.load("t1")

        first.cursor = Cursor(0, 10)
        store.save(first)

        second.cursor = Cursor(0, 20)
        with pytest.raises(StaleManifest):
            store.save(second)

        assert store.load("t1").cursor == Cursor(0, 10)

    def test_corrupt_manifest_is_fatal(self, state_dir):
        store = ManifestStore(state_dir)
        store.path_for("bad").write_text("{not json")

        with pytest.raises(ManifestCorrupt):
            store.load("bad")

    def test_missing_fields_are_corrupt(self, state_dir):
        store = ManifestStore(state_dir)
        store.path_for("bad").write_text('{"transfer_id": "bad"}')

        with pytest.raises(ManifestCorrupt):
            store.load("bad")

    def test_no_temp_files_left_behind(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(new_manifest())
        store.save(manifest)

        assert [p.name for p in state_dir.iterdir()] == ["t1.json"]

    def test_round_trips_pending_queue_and_state(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = new_manifest(state=TransferState.SENDING)
        manifest.pending_chunks = [
            ChunkDescriptor("/a", 0, 10, "h1", "chunk_t1_x_0"),
            ChunkDescriptor("/a", 10, 10, "h2", "chunk_t1_x_10"),
        ]
        store.create(manifest)

        loaded = store.load("t1")
        assert [c.offset for c in loaded.pending_chunks] == [0, 10]
        assert loaded.state == TransferState.SENDING

    def test_abandoned_unstarted_manifest_expires(self, state_dir):
        store = ManifestStore(state_dir, ttl=60)
        manifest = new_manifest()
        manifest.updated_at = time.time() - 120
        store.create(manifest)

        # create() stamps nothing, so the old timestamp is on disk
        loaded = store.load("t1")
        assert store.is_expired(loaded)

    def test_load_never_deletes(self, state_dir):
        store = ManifestStore(state_dir, ttl=60)
        manifest = new_manifest()
        manifest.updated_at = time.time() - 120
        store.create(manifest)

        assert store.load("t1") is not None
        assert store.exists("t1")

    def test_acknowledged_progress_never_expires(self, state_dir):
        store = ManifestStore(state_dir, ttl=60)
        manifest = new_manifest(cursor=Cursor(0, 10), last_transmitted_chunk_index=1)
        manifest.updated_at = time.time() - 7 * 86400
        store.create(manifest)

        assert not store.is_expired(store.load("t1"))

    @pytest.mark.parametrize("ttl", [None, 0])
    def test_no_ttl_never_expires(self, state_dir, ttl):
        store = ManifestStore(state_dir, ttl=ttl)
        manifest = new_manifest()
        manifest.updated_at = 0
        store.create(manifest)

        assert store.ttl is None
        assert not store.is_expired(store.load("t1"))

    def test_delete(self, state_dir):
        store = ManifestStore(state_dir)
        store.create(new_manifest())

        assert store.delete("t1") is True
        assert store.delete("t1") is False
        assert store.load("t1") is None

    def test_list_skips_corrupt(self, state_dir):
        store = ManifestStore(state_dir)
        store.create(new_manifest("a"))
        store.create(new_manifest("b"))
        store.path_for("c").write_text("garbage")

        assert [m.transfer_id for m in store.list()] == ["a", "b"]
