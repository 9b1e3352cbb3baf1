"""Test transfer finalization"""

import pytest

from chunkrelay.errors import IncompleteTransfer
from chunkrelay.file.manifest import (
    ChunkDescriptor, Cursor, Manifest, TransferState, TransferStatus,
)
from chunkrelay.file.staging import StagingArea, staging_name
from chunkrelay.storage.manifest_store import ManifestStore
from chunkrelay.transfer.finalizer import Finalizer


def sent_manifest(**kwargs) -> Manifest:
    """A single-file manifest whose every chunk has been acknowledged."""
    fields = dict(
        transfer_id="t1",
        source_descriptor="/data/file.bin",
        chunk_size=10,
        total_size=25,
        source_sizes=[25],
        cursor=Cursor(0, 25),
        last_transmitted_chunk_index=3,
        status=TransferStatus.IN_PROGRESS,
        state=TransferState.FINALIZING,
    )
    fields.update(kwargs)
    return Manifest(**fields)


class TestFinalizer:
    """Completion check and cleanup"""

    def test_finalize_retires_manifest(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(sent_manifest())

        report = Finalizer(store).finalize(manifest)

        assert report.is_terminal
        assert report.percent_complete == 100.0
        assert manifest.status == TransferStatus.COMPLETE
        assert manifest.state == TransferState.DONE
        assert store.load("t1") is None

    def test_pending_chunks_block_finalize(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(sent_manifest(pending_chunks=[
            ChunkDescriptor("/data/file.bin", 20, 5, "h", "chunk_t1_x_20"),
        ]))

        with pytest.raises(IncompleteTransfer):
            Finalizer(store).finalize(manifest)

        assert store.load("t1").status == TransferStatus.IN_PROGRESS

    def test_cursor_short_of_total_blocks_finalize(self, state_dir):
        store = ManifestStore(state_dir)
        manifest = store.create(sent_manifest(cursor=Cursor(0, 20)))

        with pytest.raises(IncompleteTransfer):
            Finalizer(store).finalize(manifest)

        assert store.exists("t1")

    @pytest.mark.parametrize("state", [
        TransferState.INIT, TransferState.PLANNING, TransferState.STAGING,
    ])
    def test_unplanned_transfer_cannot_finalize(self, state_dir, state):
        manifest = sent_manifest(
            source_descriptor=["/a"], total_size=0, source_sizes=[],
            cursor=Cursor(), state=state,
        )

        with pytest.raises(IncompleteTransfer):
            Finalizer(ManifestStore(state_dir)).check_complete(manifest)

    def test_purges_staging_namespace(self, state_dir, staging_dir):
        store = ManifestStore(state_dir)
        staging = StagingArea(staging_dir)
        staging.store(staging_name("t1", "/a", 0), b"leftover")
        staging.store(staging_name("other", "/a", 0), b"keep")
        manifest = store.create(sent_manifest())

        Finalizer(store, staging).finalize(manifest)

        assert staging.list("t1") == []
        assert len(staging.list("other")) == 1

    def test_retire_is_repeatable(self, state_dir, staging_dir):
        store = ManifestStore(state_dir)
        staging = StagingArea(staging_dir)
        manifest = store.create(sent_manifest(
            status=TransferStatus.COMPLETE, state=TransferState.DONE,
        ))
        staging.store(staging_name("t1", "/a", 0), b"leftover")
        finalizer = Finalizer(store, staging)

        first = finalizer.retire(manifest)
        second = finalizer.retire(manifest)

        assert first.is_terminal and second.is_terminal
        assert store.load("t1") is None
        assert staging.list("t1") == []
