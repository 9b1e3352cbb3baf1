"""
Chunk Planner

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 1MB     | Cheap retries                 | Many requests, high overhead   |
| 5MB     | Good balance for HTTP uploads | -                              |
| 32MB    | Very low overhead             | A retry re-sends a lot of data |

Decision: 5MB (5,242,880 bytes) default, configurable per transfer
- Small enough that a failed attempt is cheap to repeat
- Large enough to keep per-request overhead low
- Fixed for the lifetime of a manifest

Chunking Strategy: Fixed-Size, per source
- Each source starts a fresh chunk, so a chunk never spans two files
- Every chunk but the last of a source is exactly chunk_size
- Boundaries depend only on (sizes, chunk_size, cursor), which is what
  makes resuming after a crash reproduce the exact same sequence
"""

import hashlib
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from .manifest import Cursor

# Chunk size: 5MB
CHUNK_SIZE = 5 * 1024 * 1024  # 5,242,880 bytes


@dataclass(frozen=True)
class PlannedChunk:
    """Coordinates of one chunk: which source, where, how long."""
    source_index: int
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


class ChunkPlanner:
    """
    Computes chunk boundaries for a set of sources.

    The planner holds no position of its own. Every call takes the cursor
    to start from, so a sequence can be restarted from any persisted
    cursor and yields the same chunks an uninterrupted run would have.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, chunk_index: int, file_size: int) -> Tuple[int, int]:
        """
        Get byte range for a specific chunk.

        Returns:
            (start_offset, length) tuple
        """
        start = chunk_index * self.chunk_size
        length = min(self.chunk_size, file_size - start)
        return start, length

    def next_chunk(self, sizes: List[int], cursor: Cursor) -> Optional[PlannedChunk]:
        """
        The chunk starting at cursor, or None once every source is exhausted.

        Exhaustion is a normal outcome, not an error.
        """
        index = cursor.current_source_index
        offset = cursor.current_offset

        while index < len(sizes):
            size = sizes[index]
            if offset < size:
                length = min(self.chunk_size, size - offset)
                return PlannedChunk(source_index=index, offset=offset, length=length)
            # Past the end of this source (or empty source): move on
            index += 1
            offset = 0

        return None

    def advance(self, sizes: List[int], chunk: PlannedChunk) -> Cursor:
        """
        Cursor positioned right after chunk.

        The cursor stays on the chunk's source even at its end;
        next_chunk moves on to the following source.
        """
        return Cursor(current_source_index=chunk.source_index, current_offset=chunk.end)

    def iter_chunks(self, sizes: List[int],
                    start: Optional[Cursor] = None) -> Iterator[PlannedChunk]:
        """
        Lazily yield every chunk from start to the end of the last source.

        Yields:
            PlannedChunk in byte order within a source, then source order
        """
        cursor = start or Cursor()
        while True:
            chunk = self.next_chunk(sizes, cursor)
            if chunk is None:
                return
            yield chunk
            cursor = self.advance(sizes, chunk)


def compute_hash(data: bytes) -> str:
    """SHA-256 of a chunk as hex."""
    return hashlib.sha256(data).hexdigest()
