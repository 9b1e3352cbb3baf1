"""
Relay - Component Wiring

Builds a TransferEngine from a Config:
- ManifestStore for progress (with the state expiry policy)
- StagingArea when the transfer covers more than one file
- HttpTransport + Transmitter with the configured retry policy
"""

import logging
from typing import Optional

from .config import Config
from .file.staging import StagingArea
from .storage.manifest_store import ManifestStore
from .transfer.engine import TransferEngine
from .transfer.transmitter import Transmitter
from .transfer.transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


def create_engine(config: Config, transport: Optional[Transport] = None) -> TransferEngine:
    """
    Wire up all components for the configured transfer.

    Args:
        config: Validated configuration
        transport: Override the HTTP transport (tests, custom protocols)
    """
    config.validate()

    transfer_id = config.resolved_transfer_id()
    store = ManifestStore(config.state_dir, ttl=config.state_ttl)

    if transport is None:
        transport = HttpTransport(
            config.endpoint,
            timeout=config.request_timeout,
            verify=config.verify_tls,
        )
    transmitter = Transmitter(transport, config.retry_policy())

    if config.is_multi_file:
        sources = list(config.sources)
        staging = StagingArea(config.staging_dir) if config.staging_dir else None
    else:
        sources = config.sources[0]
        staging = None

    logger.debug(f"Transfer {transfer_id}: {len(config.sources)} source(s) -> {config.endpoint}")

    return TransferEngine(
        store=store,
        transmitter=transmitter,
        transfer_id=transfer_id,
        sources=sources,
        chunk_size=config.chunk_size,
        staging=staging,
        lease_ttl=config.lease_ttl,
    )
