"""
Storage Module - Persistent Transfer State

JSON manifests written atomically, plus the per-transfer lease.
"""

from .manifest_store import ManifestStore
from .lease import TransferLease, DEFAULT_LEASE_TTL

__all__ = ['ManifestStore', 'TransferLease', 'DEFAULT_LEASE_TTL']
