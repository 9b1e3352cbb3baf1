"""
Manifest Store

Design Decision: Persistence Strategy
=====================================

Options Considered:
1. Rewrite the manifest file in place
   - Simple, but a crash mid-write leaves a truncated, unreadable file
2. SQLite row per transfer
   - Transactional, but heavy for one small record
3. Write a temp file, fsync, then os.replace over the old file
   - Replacement is atomic on POSIX and Windows
   - Readers see either the old or the new manifest, never a mix

Decision: Option 3, one JSON file per transfer
- <state_dir>/<transfer_id>.json
- Temp files live in the same directory so the rename never crosses
  filesystems

Concurrency:
Every save is a compare-and-swap on the manifest's version field. The
caller's manifest carries the version it was loaded at; if the file on
disk has moved on, the save is rejected with StaleManifest instead of
clobbering the other writer's progress. Callers hold a TransferLease
around load/modify/save so the compare and the replace are not raced.

Expiry:
A transfer that never had a chunk acknowledged and has not been touched
for ttl seconds is abandoned; the engine discards it and starts over.
Acknowledged progress never expires. load() itself only reads.
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Union

from ..errors import ChunkIOError, ManifestCorrupt, StaleManifest
from ..file.manifest import Manifest

logger = logging.getLogger(__name__)


class ManifestStore:
    """
    Durable storage for transfer manifests.

    Provides:
    - load / create-if-absent / save (versioned, atomic)
    - delete once a transfer is retired
    - listing for status displays
    """

    def __init__(self, state_dir: Union[str, Path], ttl: Optional[float] = None):
        """
        Initialize the manifest store.

        Args:
            state_dir: Directory holding manifest files
            ttl: Seconds after the last save when an unstarted manifest
                expires (None or 0 = never)
        """
        self.state_dir = Path(state_dir)
        self.ttl = ttl or None
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, transfer_id: str) -> Path:
        """Get filesystem path for a manifest."""
        return self.state_dir / f"{transfer_id}.json"

    def _read(self, path: Path) -> Manifest:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = f.read()
        except OSError as e:
            raise ChunkIOError(f"Failed to read manifest {path}: {e}") from e

        try:
            return Manifest.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            raise ManifestCorrupt(f"Manifest {path} is unreadable: {e}") from e

    def is_expired(self, manifest: Manifest) -> bool:
        """True for an abandoned manifest that never got a chunk acknowledged."""
        if self.ttl is None:
            return False
        if manifest.last_transmitted_chunk_index > 0 or manifest.acknowledged_bytes > 0:
            return False
        return time.time() - manifest.updated_at > self.ttl

    def load(self, transfer_id: str) -> Optional[Manifest]:
        """
        Load a manifest.

        Returns:
            Manifest, or None if none exists

        Raises:
            ManifestCorrupt: the file exists but cannot be parsed
        """
        path = self.path_for(transfer_id)
        if not path.exists():
            return None

        return self._read(path)

    def create(self, initial: Manifest) -> Manifest:
        """
        Persist initial unless a manifest already exists for its transfer.

        The existing manifest always wins, which makes restarts idempotent.

        Returns:
            The manifest now on disk
        """
        existing = self.load(initial.transfer_id)
        if existing is not None:
            logger.debug(f"Manifest {initial.transfer_id} already exists at "
                         f"version {existing.version}, keeping it")
            return existing

        initial.version = 0
        self._write(initial)
        logger.info(f"Created manifest {initial.transfer_id}")
        return initial

    def save(self, manifest: Manifest) -> Manifest:
        """
        Atomically replace the stored manifest.

        The stored version must equal manifest.version (0 when nothing is
        stored yet). On success manifest.version is incremented in place.

        Raises:
            StaleManifest: another writer saved since this manifest was read
            ChunkIOError: the file could not be written
        """
        path = self.path_for(manifest.transfer_id)
        stored_version = self._read(path).version if path.exists() else 0

        if stored_version != manifest.version:
            raise StaleManifest(manifest.transfer_id, manifest.version, stored_version)

        manifest.version += 1
        manifest.updated_at = time.time()
        try:
            self._write(manifest)
        except ChunkIOError:
            manifest.version -= 1
            raise

        return manifest

    def _write(self, manifest: Manifest):
        """Write to a temp file in the same directory, fsync, then replace."""
        path = self.path_for(manifest.transfer_id)
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{manifest.transfer_id}.", suffix='.tmp', dir=self.state_dir
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(manifest.to_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            raise ChunkIOError(f"Failed to write manifest {path}: {e}") from e

    def exists(self, transfer_id: str) -> bool:
        return self.path_for(transfer_id).exists()

    def delete(self, transfer_id: str) -> bool:
        """Delete a manifest."""
        path = self.path_for(transfer_id)

        if path.exists():
            path.unlink()
            logger.debug(f"Deleted manifest {transfer_id}")
            return True

        return False

    def list(self) -> List[Manifest]:
        """List all stored manifests, skipping unreadable ones."""
        manifests = []

        for manifest_file in sorted(self.state_dir.glob("*.json")):
            try:
                manifests.append(self._read(manifest_file))
            except ManifestCorrupt as e:
                logger.warning(str(e))

        return manifests
