"""
Transfer Errors

Every failure raised by the transfer core derives from TransferError so
callers can decide, per class, whether to retry the run or stop for an
operator.

| Error              | Scope                  | Caller action                  |
|--------------------|------------------------|--------------------------------|
| ChunkIOError       | current step           | retry the same step            |
| ManifestCorrupt    | whole transfer         | operator repair / restart      |
| TransportError     | one send attempt       | retried by the Transmitter     |
| RejectedStatus     | one send attempt       | retried by the Transmitter     |
| RetryExhausted     | current run            | run again, resumes same chunk  |
| IncompleteTransfer | finalize step          | go back to sending             |
| StaleManifest      | one state transition   | retry the step                 |
| LeaseHeld          | one state transition   | retry the step later           |
"""

from typing import Optional


class TransferError(Exception):
    """Base class for all transfer failures."""

    # Whether the same step can simply be invoked again
    retryable = False


class ConfigurationError(TransferError):
    """Invalid or missing configuration."""


class ChunkIOError(TransferError):
    """Source or staging file could not be read or written."""

    retryable = True


class SourceChanged(ChunkIOError):
    """A source no longer matches the sizes recorded at planning time."""


class StagingCorrupt(ChunkIOError):
    """A staging artifact is missing or fails its content hash check."""


class ManifestCorrupt(TransferError):
    """The persisted manifest exists but cannot be parsed."""


class StaleManifest(TransferError):
    """The persisted manifest was written by someone else since it was read."""

    retryable = True

    def __init__(self, transfer_id: str, expected: int, found: int):
        super().__init__(
            f"Manifest {transfer_id} is at version {found}, expected {expected}"
        )
        self.transfer_id = transfer_id
        self.expected = expected
        self.found = found


class LeaseHeld(TransferError):
    """Another step for the same transfer is in progress."""

    retryable = True


class TransportError(TransferError):
    """A single send attempt failed below the HTTP status level."""

    retryable = True


class RejectedStatus(TransportError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int):
        super().__init__(f"Endpoint rejected chunk with status {status_code}")
        self.status_code = status_code


class RetryExhausted(TransferError):
    """Every attempt allowed by the retry policy failed."""

    retryable = True

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        message = f"Failed to send chunk after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class IncompleteTransfer(TransferError):
    """Finalize was invoked while chunks remain unacknowledged."""

    retryable = True
