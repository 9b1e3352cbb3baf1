"""
Transfer Engine

Design Decision: One State Machine, Two Drivers
===============================================

Options Considered:
1. Separate batch uploader and interactive (per-request) handler
   - Two copies of the same logic drift apart
2. Batch loop only
   - Unusable when the caller cannot hold a long-lived connection
3. One state machine whose state lives in the manifest
   - step() runs exactly one transition and returns
   - run() calls step() until the transfer is done or fails

Decision: Option 3

States:
    INIT -> PLANNING -> STAGING -> SENDING -> FINALIZING -> DONE
    single file:  INIT -> SENDING -> FINALIZING -> DONE
    SENDING --(retries exhausted)--> FAILED  (this run only)

Step Flow:
1. Take the transfer lease
2. Load the manifest (its state says which transition is next). An
   abandoned, never-acknowledged manifest past the store ttl is discarded;
   one already in DONE is retired again
3. Run that transition, save the manifest (version-checked)
4. Release the lease, return a ProgressReport

Failure Policy:
- Nothing is persisted for a chunk until the endpoint acknowledged it
- RetryExhausted leaves the manifest exactly as it was; the next run
  resends the same chunk from its start
- Retry-eligible failures come back inside the report with next_state
  pointing at the step to repeat; ManifestCorrupt propagates
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..errors import (
    ConfigurationError, IncompleteTransfer, ManifestCorrupt, SourceChanged,
    StaleManifest, TransferError,
)
from ..file.chunker import CHUNK_SIZE, ChunkPlanner, PlannedChunk, compute_hash
from ..file.manifest import (
    ChunkDescriptor, Cursor, Manifest, TransferState, TransferStatus,
)
from ..file.reader import ChunkReader
from ..file.sources import enumerate_sources, source_sizes
from ..file.staging import StagingArea, staging_name
from ..storage.lease import DEFAULT_LEASE_TTL, TransferLease
from ..storage.manifest_store import ManifestStore
from .finalizer import Finalizer
from .progress import ProgressCallback, ProgressReport
from .transmitter import Ack, Transmitter

logger = logging.getLogger(__name__)

SourceSpec = Union[str, Path, List[Union[str, Path]]]

# Consecutive StaleManifest results the batch loop tolerates
MAX_STALE_RETRIES = 3


class TransferEngine:
    """
    Drives one transfer through the state machine.

    A single file path selects the single-pass variant (chunks are read
    straight from the source). A directory or a list of paths selects the
    staged variant, which requires a StagingArea.
    """

    def __init__(self, store: ManifestStore, transmitter: Transmitter,
                 transfer_id: str, sources: SourceSpec,
                 chunk_size: int = CHUNK_SIZE,
                 staging: Optional[StagingArea] = None,
                 lease_ttl: float = DEFAULT_LEASE_TTL):
        """
        Initialize the engine.

        Args:
            store: Where the manifest lives
            transmitter: Sends chunks under the retry policy
            transfer_id: Transfer identity (manifest key, staging namespace)
            sources: File path, directory, or list of paths
            chunk_size: Chunk size for a newly created manifest
            staging: Staging area (required for multi-file transfers)
            lease_ttl: Seconds before an abandoned step lease may be broken
        """
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")

        self.store = store
        self.transmitter = transmitter
        self.transfer_id = transfer_id
        self.chunk_size = chunk_size
        self.staging = staging
        self.lease_ttl = lease_ttl

        if isinstance(sources, (list, tuple)):
            self.sources = [str(s) for s in sources]
            self.multi_file = True
        else:
            self.sources = [str(sources)]
            self.multi_file = Path(sources).is_dir()

        if self.multi_file and staging is None:
            raise ConfigurationError("Multi-file transfers require a staging directory")

        self.reader = ChunkReader()
        self.finalizer = Finalizer(store, staging)

        # In-memory state of this process; the persisted one is in the manifest
        self.state = TransferState.INIT
        self._running = False

        self._handlers = {
            TransferState.INIT: self._init,
            TransferState.PLANNING: self._planning,
            TransferState.STAGING: self._staging,
            TransferState.SENDING: self._sending,
            TransferState.FINALIZING: self._finalizing,
        }

    # === Public API ===

    def step(self, step_name: Optional[str] = None) -> ProgressReport:
        """
        Execute exactly one state transition.

        Args:
            step_name: Step the caller believes is next. If it differs from
                the persisted state nothing runs and the report routes the
                caller to the persisted state. None runs whatever is next.

        Raises:
            ValueError: unknown step_name
            ManifestCorrupt: the manifest cannot be read
        """
        requested = TransferState(step_name) if step_name else None

        try:
            with TransferLease(self.store.state_dir, self.transfer_id, self.lease_ttl):
                if self._running:
                    report = self._step_locked(requested, self.reader)
                else:
                    # Each step owns its reader; self.reader belongs to run()
                    with ChunkReader() as reader:
                        report = self._step_locked(requested, reader)
        except TransferError as e:
            if not e.retryable:
                raise
            report = self._failure_report(e)

        if report.failed:
            self.state = TransferState.FAILED
        else:
            self.state = report.next_state or TransferState.DONE

        return report

    def run(self, progress_callback: Optional[ProgressCallback] = None) -> ProgressReport:
        """
        Batch mode: step until the transfer is done.

        The transport session and the open source are held for the whole
        run and released on every exit path.

        Returns:
            The terminal report

        Raises:
            TransferError: the failure that stopped the run
        """
        logger.info(f"Starting transfer {self.transfer_id}")
        self._running = True
        stale = 0
        incomplete = 0

        try:
            with self.transmitter, self.reader:
                while True:
                    report = self.step()
                    if progress_callback:
                        progress_callback(report)

                    error = report.error
                    if isinstance(error, StaleManifest) and stale < MAX_STALE_RETRIES:
                        stale += 1
                        continue
                    if isinstance(error, IncompleteTransfer) and incomplete < 1:
                        incomplete += 1
                        continue
                    if error is not None:
                        logger.error(f"Transfer {self.transfer_id} halted: {error}")
                        raise error

                    stale = 0
                    if report.next_state != TransferState.FINALIZING:
                        incomplete = 0
                    if report.is_terminal:
                        return report
        finally:
            self._running = False

    def status(self) -> Optional[Dict]:
        """Summary of the persisted manifest, or None if no transfer is in flight."""
        manifest = self.store.load(self.transfer_id)
        return manifest.summary() if manifest else None

    # === Step dispatch ===

    def _step_locked(self, requested: Optional[TransferState],
                     reader: ChunkReader) -> ProgressReport:
        manifest = self.store.load(self.transfer_id)

        if manifest is not None and self.store.is_expired(manifest):
            self._discard_expired(manifest)
            manifest = None

        if manifest is not None and manifest.state == TransferState.DONE:
            # Finalized but not yet retired (crash between save and delete)
            return self.finalizer.retire(manifest)

        current = manifest.state if manifest else TransferState.INIT

        if requested is not None and requested != current:
            if requested == TransferState.FINALIZING and manifest is None:
                # Duplicate finalize after the manifest was already retired
                return ProgressReport(100.0, 'Transfer already finalized.', None)

            logger.warning(f"Step '{requested.value}' requested but transfer "
                           f"{self.transfer_id} is at '{current.value}'")
            return ProgressReport(
                percent_complete=manifest.percent_complete if manifest else 0.0,
                message=f"Step '{requested.value}' is not current; continue with '{current.value}'.",
                next_state=current,
            )

        handler = self._handlers.get(current)
        if handler is None:
            raise ManifestCorrupt(
                f"Manifest {self.transfer_id} is in non-resumable state {current.value}"
            )

        return handler(manifest, reader)

    def _discard_expired(self, manifest: Manifest):
        logger.warning(f"Transfer {self.transfer_id} was abandoned before any chunk was "
                       f"acknowledged (last update {manifest.updated_at:.0f}), starting over")
        if self.staging is not None:
            self.staging.purge(self.transfer_id)
        self.store.delete(self.transfer_id)

    def _failure_report(self, error: TransferError) -> ProgressReport:
        logger.error(f"Step failed for {self.transfer_id}: {error}")

        manifest = self.store.load(self.transfer_id)
        next_state = manifest.state if manifest else TransferState.INIT

        return ProgressReport(
            percent_complete=min(99.9, manifest.percent_complete) if manifest else 0.0,
            message=str(error),
            next_state=next_state,
            error=error,
        )

    def _report(self, manifest: Manifest, message: str) -> ProgressReport:
        return ProgressReport(
            percent_complete=min(99.9, manifest.percent_complete),
            message=message,
            next_state=manifest.state,
        )

    # === Transitions ===

    def _init(self, manifest: Optional[Manifest], reader: ChunkReader) -> ProgressReport:
        """Ensure a manifest exists."""
        if self.multi_file:
            initial = Manifest(
                transfer_id=self.transfer_id,
                source_descriptor=list(self.sources),
                chunk_size=self.chunk_size,
                state=TransferState.PLANNING,
            )
        else:
            source = str(Path(self.sources[0]).expanduser().resolve())
            sizes = source_sizes([source])
            initial = Manifest(
                transfer_id=self.transfer_id,
                source_descriptor=source,
                chunk_size=self.chunk_size,
                total_size=sizes[0],
                source_sizes=sizes,
                state=TransferState.SENDING,
            )

        manifest = self.store.create(initial)
        if manifest.chunk_size != self.chunk_size:
            logger.warning(f"Existing manifest uses chunk size {manifest.chunk_size:,}, "
                           f"ignoring requested {self.chunk_size:,}")

        return self._report(manifest, 'Initialization complete. Starting manifest creation...')

    def _planning(self, manifest: Manifest, reader: ChunkReader) -> ProgressReport:
        """Enumerate sources once and fix total_size."""
        sources = enumerate_sources(manifest.sources)
        sizes = source_sizes(sources)

        manifest.source_descriptor = sources
        manifest.source_sizes = sizes
        manifest.total_size = sum(sizes)
        manifest.plan_cursor = Cursor()
        manifest.status = TransferStatus.IN_PROGRESS
        manifest.state = TransferState.STAGING
        self.store.save(manifest)

        logger.info(f"Planned {len(sources)} files, {manifest.total_size:,} bytes "
                    f"in {manifest.chunk_count} chunks")
        return self._report(
            manifest, f"Manifest created: {len(sources)} files. Starting chunk creation..."
        )

    def _staging(self, manifest: Manifest, reader: ChunkReader) -> ProgressReport:
        """Copy the next planned chunk into the staging area."""
        planner = ChunkPlanner(manifest.chunk_size)
        chunk = planner.next_chunk(manifest.source_sizes, manifest.plan_cursor)

        if chunk is not None:
            source = manifest.sources[chunk.source_index]
            data = self._read_chunk(reader, source, chunk)
            name = staging_name(manifest.transfer_id, source, chunk.offset)

            self.staging.store(name, data)
            manifest.pending_chunks.append(ChunkDescriptor(
                source=source,
                offset=chunk.offset,
                length=chunk.length,
                content_hash=compute_hash(data),
                staging_name=name,
                source_index=chunk.source_index,
            ))
            manifest.plan_cursor = planner.advance(manifest.source_sizes, chunk)
            message = f"Processing {Path(source).name}..."
        else:
            message = 'Nothing left to stage.'

        if planner.next_chunk(manifest.source_sizes, manifest.plan_cursor) is None:
            manifest.state = TransferState.SENDING
            message += ' Starting transfer...'

        self.store.save(manifest)
        return self._report(manifest, message)

    def _sending(self, manifest: Manifest, reader: ChunkReader) -> ProgressReport:
        """Send the next unit of work; advance only on acknowledgement."""
        planner = ChunkPlanner(manifest.chunk_size)
        expected = planner.next_chunk(manifest.source_sizes, manifest.cursor)

        if manifest.is_multi_file:
            return self._send_staged(manifest, planner, expected)
        return self._send_direct(manifest, planner, expected, reader)

    def _send_direct(self, manifest: Manifest, planner: ChunkPlanner,
                     chunk: Optional[PlannedChunk], reader: ChunkReader) -> ProgressReport:
        if chunk is None:
            manifest.state = TransferState.FINALIZING
            self.store.save(manifest)
            return self._report(manifest, 'All chunks sent. Finalizing...')

        source = manifest.sources[chunk.source_index]
        data = self._read_chunk(reader, source, chunk)
        self._transmit(manifest, source, chunk, data)

        manifest.cursor = planner.advance(manifest.source_sizes, chunk)
        manifest.last_transmitted_chunk_index += 1
        manifest.status = TransferStatus.IN_PROGRESS
        if planner.next_chunk(manifest.source_sizes, manifest.cursor) is None:
            manifest.state = TransferState.FINALIZING
        self.store.save(manifest)

        return self._report(manifest, 'Transferring chunks...')

    def _send_staged(self, manifest: Manifest, planner: ChunkPlanner,
                     expected: Optional[PlannedChunk]) -> ProgressReport:
        if not manifest.pending_chunks:
            if planner.next_chunk(manifest.source_sizes, manifest.plan_cursor) is not None:
                manifest.state = TransferState.STAGING
                message = 'Staged queue empty. Resuming chunk creation...'
            else:
                manifest.state = TransferState.FINALIZING
                message = 'All chunks sent. Finalizing...'
            self.store.save(manifest)
            return self._report(manifest, message)

        head = manifest.pending_chunks[0]
        chunk = PlannedChunk(head.source_index, head.offset, head.length)
        if chunk != expected:
            raise ManifestCorrupt(
                f"Staged queue head {head.staging_name} does not match the "
                f"acknowledged cursor of {manifest.transfer_id}"
            )

        data = self.staging.load(head.staging_name, head.content_hash)
        self._transmit(manifest, head.source, chunk, data)

        manifest.pending_chunks.pop(0)
        manifest.cursor = planner.advance(manifest.source_sizes, chunk)
        manifest.last_transmitted_chunk_index += 1
        manifest.status = TransferStatus.IN_PROGRESS
        if (not manifest.pending_chunks
                and planner.next_chunk(manifest.source_sizes, manifest.plan_cursor) is None):
            manifest.state = TransferState.FINALIZING
        self.store.save(manifest)

        # Acknowledged and recorded; the artifact is no longer needed
        self.staging.discard(head.staging_name)

        return self._report(manifest, 'Transferring chunks...')

    def _finalizing(self, manifest: Manifest, reader: ChunkReader) -> ProgressReport:
        try:
            return self.finalizer.finalize(manifest)
        except IncompleteTransfer as e:
            manifest.state = TransferState.SENDING
            self.store.save(manifest)
            report = self._report(manifest, 'Transfer not complete. Please retry.')
            report.error = e
            return report

    # === Helpers ===

    def _read_chunk(self, reader: ChunkReader, source: str, chunk: PlannedChunk) -> bytes:
        result = reader.read(source, chunk.offset, chunk.length)
        if result.length != chunk.length:
            raise SourceChanged(
                f"{source} is shorter than when the transfer was planned "
                f"(read {result.length:,} of {chunk.length:,} bytes at {chunk.offset:,})"
            )
        return result.data

    def _transmit(self, manifest: Manifest, source: str,
                  chunk: PlannedChunk, data: bytes) -> Ack:
        headers = {
            'X-Transfer-Id': manifest.transfer_id,
            'X-Chunk-Index': str(manifest.last_transmitted_chunk_index),
            'X-Chunk-Offset': str(chunk.offset),
            'X-Chunk-Source': Path(source).name,
            'X-Content-SHA256': compute_hash(data),
        }
        logger.debug(f"Sending chunk {manifest.last_transmitted_chunk_index} "
                     f"({chunk.length:,} bytes at {chunk.offset:,} of {Path(source).name})")

        if self._running:
            return self.transmitter.send(data, headers)
        with self.transmitter:
            return self.transmitter.send(data, headers)
