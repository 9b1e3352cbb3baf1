"""Test chunk planning"""

import pytest

from chunkrelay.file.chunker import ChunkPlanner, PlannedChunk
from chunkrelay.file.manifest import Cursor

from .conftest import MB


class TestChunkPlanner:
    """Chunk boundaries and restartability"""

    @pytest.mark.parametrize("k,r", [(1, 1), (3, 7), (4, 9)])
    def test_remainder_gives_k_plus_one_chunks(self, k, r):
        planner = ChunkPlanner(chunk_size=10)
        chunks = list(planner.iter_chunks([k * 10 + r]))

        assert len(chunks) == k + 1
        assert all(c.length == 10 for c in chunks[:k])
        assert chunks[-1].length == r

    @pytest.mark.parametrize("k", [1, 2, 5])
    def test_exact_multiple_gives_k_chunks(self, k):
        planner = ChunkPlanner(chunk_size=10)
        chunks = list(planner.iter_chunks([k * 10]))

        assert len(chunks) == k
        assert all(c.length == 10 for c in chunks)

    def test_twelve_megabytes_in_five_megabyte_chunks(self):
        planner = ChunkPlanner(chunk_size=5 * MB)
        chunks = list(planner.iter_chunks([12 * MB]))

        assert [(c.offset, c.length) for c in chunks] == [
            (0, 5 * MB),
            (5 * MB, 5 * MB),
            (10 * MB, 2 * MB),
        ]

    def test_empty_source_yields_nothing(self):
        planner = ChunkPlanner(chunk_size=10)
        assert list(planner.iter_chunks([0])) == []
        assert planner.next_chunk([0], Cursor()) is None

    def test_chunks_never_span_sources(self):
        planner = ChunkPlanner(chunk_size=4)
        chunks = list(planner.iter_chunks([7, 0, 3]))

        assert chunks == [
            PlannedChunk(source_index=0, offset=0, length=4),
            PlannedChunk(source_index=0, offset=4, length=3),
            PlannedChunk(source_index=2, offset=0, length=3),
        ]

    def test_restart_from_cursor_reproduces_remaining_sequence(self):
        planner = ChunkPlanner(chunk_size=4)
        sizes = [9, 5, 0, 6]
        full = list(planner.iter_chunks(sizes))

        for i, chunk in enumerate(full):
            resumed = list(planner.iter_chunks(sizes, planner.advance(sizes, chunk)))
            assert resumed == full[i + 1:]

    def test_advance_stays_on_source_at_end(self):
        planner = ChunkPlanner(chunk_size=4)
        cursor = planner.advance([6, 4], PlannedChunk(0, 4, 2))

        assert cursor == Cursor(current_source_index=0, current_offset=6)
        assert planner.next_chunk([6, 4], cursor) == PlannedChunk(1, 0, 4)

    def test_chunk_bounds(self):
        planner = ChunkPlanner(chunk_size=10)

        assert planner.get_chunk_count(25) == 3
        assert planner.get_chunk_bounds(0, 25) == (0, 10)
        assert planner.get_chunk_bounds(2, 25) == (20, 5)

    def test_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError):
            ChunkPlanner(chunk_size=0)
