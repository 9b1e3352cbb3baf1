"""
Progress Report

What every state transition returns. In interactive mode it is sent back
to the client as the step response envelope:

    {"progress": 0-100, "message": "...", "next_step": "sending" | null}

next_step = null is the only terminal signal.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import TransferError
from ..file.manifest import TransferState


@dataclass
class ProgressReport:
    """Outcome of one state transition."""
    percent_complete: float
    message: str
    next_state: Optional[TransferState]

    # Set when the transition failed; next_state then routes back
    error: Optional[TransferError] = None

    @property
    def is_terminal(self) -> bool:
        return self.next_state is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_envelope(self) -> dict:
        """Step response envelope."""
        return {
            'progress': round(self.percent_complete, 2),
            'message': self.message,
            'next_step': self.next_state.value if self.next_state else None,
        }


# Progress callback type
ProgressCallback = Callable[[ProgressReport], None]
