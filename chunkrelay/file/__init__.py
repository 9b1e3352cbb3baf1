"""
File Module - Manifest, Chunk Planning, Reading and Staging

This module handles the file side of a transfer: what to send and where
the bytes come from.
"""

from .chunker import ChunkPlanner, PlannedChunk, CHUNK_SIZE, compute_hash
from .manifest import (
    Manifest, Cursor, ChunkDescriptor, TransferStatus, TransferState,
)
from .reader import ChunkReader, ChunkRead
from .sources import enumerate_sources, source_sizes
from .staging import StagingArea, staging_name

__all__ = [
    'ChunkPlanner',
    'PlannedChunk',
    'CHUNK_SIZE',
    'compute_hash',
    'Manifest',
    'Cursor',
    'ChunkDescriptor',
    'TransferStatus',
    'TransferState',
    'ChunkReader',
    'ChunkRead',
    'enumerate_sources',
    'source_sizes',
    'StagingArea',
    'staging_name',
]
