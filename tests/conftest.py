"""Pytest configuration and fixtures"""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from chunkrelay.file.manifest import Manifest
from chunkrelay.storage.manifest_store import ManifestStore

MB = 1024 * 1024


class FakeTransport:
    """
    In-memory transport.

    script holds one outcome per attempt: a status code or an exception
    to raise. Once it runs out every attempt returns 200.
    """

    def __init__(self, script: Optional[list] = None):
        self.script = list(script or [])
        self.attempts: List[bytes] = []
        self.delivered: List[Dict] = []
        self.is_open = False
        self.open_count = 0
        self.close_count = 0

    def open(self):
        if not self.is_open:
            self.is_open = True
            self.open_count += 1

    def close(self):
        if self.is_open:
            self.is_open = False
            self.close_count += 1

    def post(self, data: bytes, headers=None) -> int:
        self.attempts.append(data)
        outcome = self.script.pop(0) if self.script else 200
        if isinstance(outcome, Exception):
            raise outcome
        if 200 <= outcome < 300:
            self.delivered.append({'data': data, 'headers': dict(headers or {})})
        return outcome

    @property
    def delivered_offsets(self) -> List[int]:
        return [int(d['headers']['X-Chunk-Offset']) for d in self.delivered]


class RecordingStore(ManifestStore):
    """ManifestStore that keeps a copy of every saved manifest."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saved: List[Manifest] = []

    def save(self, manifest: Manifest) -> Manifest:
        result = super().save(manifest)
        self.saved.append(Manifest.from_dict(manifest.to_dict()))
        return result


def pattern_bytes(size: int, seed: int = 0) -> bytes:
    """Deterministic, non-repeating-per-chunk content."""
    block = bytes((i * 31 + seed) % 251 for i in range(251))
    return (block * (size // len(block) + 1))[:size]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def state_dir(temp_dir):
    path = temp_dir / "state"
    path.mkdir()
    return path


@pytest.fixture
def staging_dir(temp_dir):
    return temp_dir / "staging"


@pytest.fixture
def make_file(temp_dir):
    """Factory writing a source file of the given size."""
    def _make(name: str, size: int, seed: int = 0) -> Path:
        path = temp_dir / "src" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(pattern_bytes(size, seed))
        return path
    return _make
