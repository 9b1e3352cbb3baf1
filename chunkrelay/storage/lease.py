"""
Transfer Lease

Advisory lock scoped to one transfer identity, held for the duration of a
single state transition.

Interactive steps arrive as independent requests, possibly duplicated or
out of order. Without a lease two of them could read the same cursor,
send the same chunk, and overwrite each other's progress. The lease makes
the second request fail fast with LeaseHeld; it can simply retry.

The lock is a file created with O_CREAT | O_EXCL, which is atomic on
local filesystems. It records its owner and expiry so a lease left behind
by a crashed process is broken once it expires.

Breaking a lease renames the lock file to a name unique to the breaker
before deleting it. Only one of several breakers can move a given file,
and a breaker that finds it moved a live lease (taken by someone else
after it looked) puts it back and backs off.
"""

import json
import logging
import os
import socket
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from ..errors import LeaseHeld

logger = logging.getLogger(__name__)

# Longest a single state transition is expected to take (seconds)
DEFAULT_LEASE_TTL = 300.0


class TransferLease:
    """Context manager holding the lock for one transfer."""

    def __init__(self, state_dir: Union[str, Path], transfer_id: str,
                 ttl: float = DEFAULT_LEASE_TTL):
        self.state_dir = Path(state_dir)
        self.transfer_id = transfer_id
        self.ttl = ttl
        self.lock_path = self.state_dir / f"{transfer_id}.lock"
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _holder(self, path: Optional[Path] = None) -> Optional[dict]:
        try:
            with open(path or self.lock_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            # Unreadable (possibly still being written): expires ttl after its mtime
            try:
                mtime = (path or self.lock_path).stat().st_mtime
            except OSError:
                return None
            return {'owner': 'unknown', 'expires_at': mtime + self.ttl}

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False

        now = time.time()
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump({
                'owner': self.owner,
                'acquired_at': now,
                'expires_at': now + self.ttl,
            }, f)
        return True

    def acquire(self):
        """
        Take the lease.

        Raises:
            LeaseHeld: another live holder has it
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)

        if self._try_create():
            self._held = True
            return

        holder = self._holder()
        if holder is not None and holder.get('expires_at', 0) > time.time():
            raise LeaseHeld(
                f"Transfer {self.transfer_id} is locked by {holder.get('owner')}"
            )

        # Expired (or vanished between the two calls): break it and retry once
        self._break_expired()

        if not self._try_create():
            raise LeaseHeld(f"Transfer {self.transfer_id} was locked concurrently")
        self._held = True

    def _break_expired(self):
        """
        Remove an expired lock file without ever removing a live one.

        Raises:
            LeaseHeld: the lock file turned out to be live
        """
        moved = self.lock_path.with_name(f"{self.lock_path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(self.lock_path, moved)
        except FileNotFoundError:
            # Already broken by someone else
            return

        holder = self._holder(moved)
        if holder is not None and holder.get('expires_at', 0) > time.time():
            # A fresh lease was taken after we looked; restore it
            try:
                os.link(moved, self.lock_path)
            except FileExistsError:
                pass
            finally:
                moved.unlink(missing_ok=True)
            raise LeaseHeld(
                f"Transfer {self.transfer_id} is locked by {holder.get('owner')}"
            )

        logger.warning(f"Breaking expired lease on {self.transfer_id} "
                       f"held by {holder.get('owner') if holder else 'nobody'}")
        moved.unlink(missing_ok=True)

    def release(self):
        """Drop the lease if this instance still owns it."""
        if not self._held:
            return

        holder = self._holder()
        if holder is not None and holder.get('owner') == self.owner:
            self.lock_path.unlink(missing_ok=True)
        self._held = False

    def __enter__(self) -> 'TransferLease':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
