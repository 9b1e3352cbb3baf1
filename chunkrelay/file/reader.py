"""
Chunk Reader

Reads the bytes of a planned chunk from its source file.

At most one source is open at a time. Consecutive chunks from the same
source reuse the handle; moving to another source, reaching the end of
a source, or any error closes it. Use as a context manager so the last
handle is released however the caller exits.
"""

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional

from ..errors import ChunkIOError

logger = logging.getLogger(__name__)


@dataclass
class ChunkRead:
    """Result of one read."""
    data: bytes
    end_of_source: bool

    @property
    def length(self) -> int:
        return len(self.data)


class ChunkReader:
    """Lazily opens sources and reads byte ranges from them."""

    def __init__(self):
        self._path: Optional[str] = None
        self._handle: Optional[BinaryIO] = None

    @property
    def open_source(self) -> Optional[str]:
        """Path of the currently open source, if any."""
        return self._path

    def __enter__(self) -> 'ChunkReader':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Release the open handle, if any."""
        if self._handle is not None:
            self._handle.close()
            logger.debug(f"Closed source {self._path}")
        self._handle = None
        self._path = None

    def _open(self, source: str) -> BinaryIO:
        if self._path != source:
            self.close()
            self._handle = open(source, 'rb')
            self._path = source
            logger.debug(f"Opened source {source}")
        return self._handle

    def read(self, source: str, offset: int, length: int) -> ChunkRead:
        """
        Read length bytes at offset.

        Returns fewer bytes only when the source ends first; end_of_source
        is then set and the handle is released.

        Raises:
            ChunkIOError: the source cannot be opened or read
        """
        try:
            handle = self._open(source)
            handle.seek(offset)
            data = handle.read(length)
            at_eof = handle.tell() >= os.fstat(handle.fileno()).st_size
        except OSError as e:
            self.close()
            raise ChunkIOError(
                f"Failed to read {length} bytes at {offset} from {source}: {e}"
            ) from e

        # Landing exactly on EOF also ends the source
        end_of_source = len(data) < length or at_eof
        if end_of_source:
            self.close()

        return ChunkRead(data=data, end_of_source=end_of_source)
