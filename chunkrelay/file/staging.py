"""
Staging Area

Holds materialized copies of chunks between staging and sending in the
multi-file variant.

Storage Layout:
```
<staging_dir>/
├── chunk_<transfer_id>_<source-tag>_<offset>   # staged chunk bytes
└── .tmp/                                       # partial writes
```

The staging directory must be supplied explicitly; there is no default
location. Artifact names are derived from (transfer, source, offset), so
staging the same chunk twice after a crash overwrites the same file.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import List, Union

from ..errors import ChunkIOError, StagingCorrupt
from .chunker import compute_hash

logger = logging.getLogger(__name__)

STAGING_PREFIX = 'chunk_'


def staging_name(transfer_id: str, source: str, offset: int) -> str:
    """Deterministic artifact name for one chunk of one source."""
    source_tag = hashlib.sha1(source.encode('utf-8')).hexdigest()[:12]
    return f"{STAGING_PREFIX}{transfer_id}_{source_tag}_{offset}"


class StagingArea:
    """On-disk store for staged chunk bytes."""

    def __init__(self, staging_dir: Union[str, Path]):
        """
        Initialize the staging area.

        Args:
            staging_dir: Directory holding staged chunks (required)
        """
        self.staging_dir = Path(staging_dir)
        self.temp_dir = self.staging_dir / ".tmp"

        self._ensure_directories()

    def _ensure_directories(self):
        """Create staging directories if they don't exist."""
        for dir_path in [self.staging_dir, self.temp_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def _artifact_path(self, name: str) -> Path:
        return self.staging_dir / name

    def store(self, name: str, data: bytes) -> Path:
        """
        Write a staged chunk.

        Written to a temp file first, then renamed into place.
        """
        artifact_path = self._artifact_path(name)
        temp_path = self.temp_dir / f"{name}.tmp"

        try:
            with open(temp_path, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, artifact_path)
        except OSError as e:
            raise ChunkIOError(f"Failed to stage chunk {name}: {e}") from e

        return artifact_path

    def load(self, name: str, expected_hash: str) -> bytes:
        """
        Read a staged chunk and verify it against its recorded hash.

        Raises:
            StagingCorrupt: the artifact is missing or its hash differs
        """
        artifact_path = self._artifact_path(name)

        try:
            with open(artifact_path, 'rb') as f:
                data = f.read()
        except FileNotFoundError as e:
            raise StagingCorrupt(f"Staged chunk missing: {name}") from e
        except OSError as e:
            raise ChunkIOError(f"Failed to read staged chunk {name}: {e}") from e

        if compute_hash(data) != expected_hash:
            raise StagingCorrupt(f"Staged chunk {name} does not match its content hash")

        return data

    def discard(self, name: str) -> bool:
        """Delete one artifact once its chunk has been acknowledged."""
        artifact_path = self._artifact_path(name)
        try:
            artifact_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ChunkIOError(f"Failed to remove staged chunk {name}: {e}") from e
        return True

    def list(self, transfer_id: str) -> List[Path]:
        """All artifacts in this transfer's staging namespace."""
        return sorted(self.staging_dir.glob(f"{STAGING_PREFIX}{transfer_id}_*"))

    def purge(self, transfer_id: str) -> int:
        """
        Delete every staged artifact of a transfer.

        Returns:
            Number of files removed
        """
        removed = 0
        for artifact in self.list(transfer_id):
            try:
                artifact.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise ChunkIOError(f"Failed to remove staged chunk {artifact.name}: {e}") from e
            removed += 1

        for leftover in self.temp_dir.glob(f"{STAGING_PREFIX}{transfer_id}_*.tmp"):
            leftover.unlink(missing_ok=True)

        logger.debug(f"Purged {removed} staged chunks for {transfer_id}")
        return removed
