"""
Source Enumeration

Turns the paths given on the command line (files and directories) into
the ordered list of files a multi-file transfer covers.

The order must be identical on every run, otherwise a resumed transfer
would map its cursor onto a different file. Directory traversal order is
filesystem dependent, so the result is always sorted.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Union

from ..errors import ChunkIOError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def enumerate_sources(paths: Iterable[PathLike]) -> List[str]:
    """
    Expand files and directories into a sorted, de-duplicated file list.

    Raises:
        ChunkIOError: a path does not exist
    """
    found = set()

    for raw in paths:
        path = Path(raw).expanduser().resolve()
        if not path.exists():
            raise ChunkIOError(f"Source not found: {path}")

        if path.is_file():
            found.add(str(path))
        elif path.is_dir():
            for child in path.rglob('*'):
                if child.is_file():
                    found.add(str(child))

    sources = sorted(found)
    logger.debug(f"Enumerated {len(sources)} source files")
    return sources


def source_sizes(sources: List[str]) -> List[int]:
    """Current size of every source, in order."""
    sizes = []
    for source in sources:
        try:
            sizes.append(Path(source).stat().st_size)
        except OSError as e:
            raise ChunkIOError(f"Cannot stat source {source}: {e}") from e
    return sizes
