"""
Chunk Relay - Resumable Chunked Transfers

Sends a file, or a set of files, to an HTTP endpoint in fixed-size chunks,
recording progress in a manifest so a restarted process resumes where the
last acknowledged chunk left off.
"""

from .config import Config, load_config
from .errors import TransferError
from .file import Manifest, TransferState, TransferStatus
from .relay import create_engine
from .transfer import TransferEngine, ProgressReport

__version__ = '1.0.0'

__all__ = [
    'Config',
    'load_config',
    'TransferError',
    'Manifest',
    'TransferState',
    'TransferStatus',
    'create_engine',
    'TransferEngine',
    'ProgressReport',
]
