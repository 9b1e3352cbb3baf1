"""
Transfer Finalizer

Closes out a transfer once every chunk has been acknowledged.

Finalize Flow:
1. Check completion: no staged chunks pending, cursor at total_size
2. Mark the manifest complete and save it
3. Retire: delete staging artifacts in the transfer's namespace, then
   delete the manifest

Retiring is repeatable. A manifest found in DONE (the process died
between steps 2 and 3) is simply retired again.

A transfer that is not complete is left untouched and IncompleteTransfer
is raised so the caller can go back to sending.
"""

import logging
from typing import Optional

from ..errors import IncompleteTransfer
from ..file.manifest import Manifest, TransferState, TransferStatus
from ..file.staging import StagingArea
from ..storage.manifest_store import ManifestStore
from .progress import ProgressReport

logger = logging.getLogger(__name__)

# States in which the source set is not yet fully known
_UNPLANNED = (TransferState.INIT, TransferState.PLANNING, TransferState.STAGING)


class Finalizer:
    """Verifies completion, cleans up, and retires the manifest."""

    def __init__(self, store: ManifestStore, staging: Optional[StagingArea] = None):
        self.store = store
        self.staging = staging

    def check_complete(self, manifest: Manifest):
        """
        Raises:
            IncompleteTransfer: work remains
        """
        if manifest.pending_chunks:
            raise IncompleteTransfer(
                f"{len(manifest.pending_chunks)} staged chunks not yet acknowledged"
            )

        if manifest.state in _UNPLANNED:
            raise IncompleteTransfer(f"Transfer is still in {manifest.state.value}")

        if manifest.acknowledged_bytes < manifest.total_size:
            raise IncompleteTransfer(
                f"Only {manifest.acknowledged_bytes:,} of "
                f"{manifest.total_size:,} bytes acknowledged"
            )

    def finalize(self, manifest: Manifest) -> ProgressReport:
        """
        Finalize a fully acknowledged transfer.

        Returns:
            Terminal progress report (100%, next_state None)

        Raises:
            IncompleteTransfer: chunks remain; nothing was changed
        """
        try:
            self.check_complete(manifest)
        except IncompleteTransfer as e:
            logger.error(f"Transfer {manifest.transfer_id} not complete: {e}")
            raise

        manifest.status = TransferStatus.COMPLETE
        manifest.state = TransferState.DONE
        self.store.save(manifest)

        return self.retire(manifest)

    def retire(self, manifest: Manifest) -> ProgressReport:
        """
        Remove everything left of a finalized transfer.

        Returns:
            Terminal progress report (100%, next_state None)
        """
        if self.staging is not None:
            removed = self.staging.purge(manifest.transfer_id)
            if removed:
                logger.info(f"Removed {removed} leftover staged chunks")

        self.store.delete(manifest.transfer_id)

        logger.info(f"Transfer {manifest.transfer_id} complete: "
                    f"{manifest.last_transmitted_chunk_index} chunks, {manifest.total_size:,} bytes")

        return ProgressReport(
            percent_complete=100.0,
            message='Transfer completed successfully!',
            next_state=None,
        )
