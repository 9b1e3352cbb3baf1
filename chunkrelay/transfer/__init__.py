"""
Transfer Module - Sending, Retrying, Orchestrating

Handles HTTP chunk delivery and the resumable transfer state machine.
"""

from .engine import TransferEngine
from .finalizer import Finalizer
from .progress import ProgressReport, ProgressCallback
from .retry import RetryPolicy, no_delay, constant_delay, exponential_backoff
from .transmitter import Transmitter, Ack
from .transport import HttpTransport, Transport

__all__ = [
    'TransferEngine',
    'Finalizer',
    'ProgressReport',
    'ProgressCallback',
    'RetryPolicy',
    'no_delay',
    'constant_delay',
    'exponential_backoff',
    'Transmitter',
    'Ack',
    'HttpTransport',
    'Transport',
]
