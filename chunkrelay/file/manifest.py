"""
Transfer Manifest

Design Decision: Manifest Structure
====================================

The manifest is the single source of truth for one transfer. It records:
- Transfer identity (transfer_id, sources, their sizes at planning time)
- Progress (acknowledged cursor, chunk counter, staged-but-unsent queue)
- Engine state, so independent step invocations can pick up where the
  previous one stopped
- A version counter for optimistic concurrency between writers

Options Considered for Manifest Format:
1. JSON - Human readable, easy to inspect while a transfer is stuck
2. SQLite row - Transactions, but one more moving part per transfer
3. Pickle - Compact, but unreadable and unsafe to load

Decision: JSON, one file per transfer
- Easy to debug and repair by hand
- Written atomically (temp file + rename) by the ManifestStore

Two cursors:
- cursor: next byte that has NOT been acknowledged by the endpoint. Only
  moves after a positive acknowledgement.
- plan_cursor: next byte to stage (multi-file variant only). Moves as
  chunks are copied into the staging area.
"""

import json
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Optional, Union


class TransferStatus(str, Enum):
    """Lifecycle status recorded in the manifest."""
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETE = 'complete'
    FAILED = 'failed'


class TransferState(str, Enum):
    """
    States of the transfer state machine.

    INIT -> PLANNING -> STAGING -> SENDING -> FINALIZING -> DONE
    Single-file transfers go INIT -> SENDING directly.
    FAILED is only ever held in memory: a failed run persists nothing.
    """
    INIT = 'init'
    PLANNING = 'planning'
    STAGING = 'staging'
    SENDING = 'sending'
    FINALIZING = 'finalizing'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class Cursor:
    """Position of the next byte to process, across all sources."""
    current_source_index: int = 0
    current_offset: int = 0

    def absolute(self, sizes: List[int]) -> int:
        """Byte position counted from the start of the first source."""
        return sum(sizes[:self.current_source_index]) + self.current_offset

    def is_at_end(self, sizes: List[int]) -> bool:
        return self.absolute(sizes) >= sum(sizes)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Cursor':
        return cls(
            current_source_index=int(data['current_source_index']),
            current_offset=int(data['current_offset']),
        )


@dataclass
class ChunkDescriptor:
    """A chunk that has been staged but not yet acknowledged."""
    source: str
    offset: int
    length: int
    content_hash: str  # SHA-256 hash as hex
    staging_name: str
    source_index: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'ChunkDescriptor':
        return cls(**data)


@dataclass
class Manifest:
    """
    Persisted progress of one transfer.

    source_descriptor is a single path for single-file transfers and a
    list of paths for multi-file transfers. Everything else is shared.
    """
    transfer_id: str
    source_descriptor: Union[str, List[str]]
    chunk_size: int

    total_size: int = 0
    source_sizes: List[int] = field(default_factory=list)

    cursor: Cursor = field(default_factory=Cursor)
    plan_cursor: Cursor = field(default_factory=Cursor)
    last_transmitted_chunk_index: int = 0
    pending_chunks: List[ChunkDescriptor] = field(default_factory=list)

    status: TransferStatus = TransferStatus.PENDING
    state: TransferState = TransferState.INIT

    # Optimistic concurrency: incremented by every successful save
    version: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    @property
    def is_multi_file(self) -> bool:
        return isinstance(self.source_descriptor, list)

    @property
    def sources(self) -> List[str]:
        if self.is_multi_file:
            return list(self.source_descriptor)
        return [self.source_descriptor]

    @property
    def acknowledged_bytes(self) -> int:
        if not self.source_sizes:
            return 0
        return self.cursor.absolute(self.source_sizes)

    @property
    def percent_complete(self) -> float:
        if self.status == TransferStatus.COMPLETE:
            return 100.0
        if self.total_size == 0:
            return 0.0
        return self.acknowledged_bytes / self.total_size * 100

    @property
    def chunk_count(self) -> int:
        """Total number of chunks across all sources."""
        return sum(
            (size + self.chunk_size - 1) // self.chunk_size
            for size in self.source_sizes
        )

    def to_dict(self) -> Dict:
        """Serialize to dictionary."""
        return {
            'transfer_id': self.transfer_id,
            'source_descriptor': self.source_descriptor,
            'chunk_size': self.chunk_size,
            'total_size': self.total_size,
            'source_sizes': list(self.source_sizes),
            'current_source_index': self.cursor.current_source_index,
            'current_offset': self.cursor.current_offset,
            'plan_cursor': self.plan_cursor.to_dict(),
            'last_transmitted_chunk_index': self.last_transmitted_chunk_index,
            'pending_chunks': [c.to_dict() for c in self.pending_chunks],
            'status': self.status.value,
            'state': self.state.value,
            'version': self.version,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Manifest':
        """Deserialize from dictionary."""
        return cls(
            transfer_id=data['transfer_id'],
            source_descriptor=data['source_descriptor'],
            chunk_size=int(data['chunk_size']),
            total_size=int(data.get('total_size', 0)),
            source_sizes=[int(s) for s in data.get('source_sizes', [])],
            cursor=Cursor(
                current_source_index=int(data['current_source_index']),
                current_offset=int(data['current_offset']),
            ),
            plan_cursor=Cursor.from_dict(data['plan_cursor'])
            if 'plan_cursor' in data else Cursor(),
            last_transmitted_chunk_index=int(data['last_transmitted_chunk_index']),
            pending_chunks=[
                ChunkDescriptor.from_dict(c) for c in data.get('pending_chunks', [])
            ],
            status=TransferStatus(data['status']),
            state=TransferState(data.get('state', TransferState.INIT.value)),
            version=int(data.get('version', 0)),
            created_at=data.get('created_at', time.time()),
            updated_at=data.get('updated_at', time.time()),
        )

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'Manifest':
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def summary(self) -> Dict:
        """Compact view for status displays."""
        return {
            'transfer_id': self.transfer_id,
            'sources': len(self.sources),
            'state': self.state.value,
            'status': self.status.value,
            'chunk_size': self.chunk_size,
            'total_size': self.total_size,
            'acknowledged_bytes': self.acknowledged_bytes,
            'chunks_sent': self.last_transmitted_chunk_index,
            'chunk_count': self.chunk_count,
            'pending_chunks': len(self.pending_chunks),
            'percent_complete': round(self.percent_complete, 2),
            'version': self.version,
            'updated_at': self.updated_at,
        }
