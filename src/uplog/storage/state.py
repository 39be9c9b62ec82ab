"""Upload lifecycle state machine.

Tracks one upload from opening the storage session to its terminal state
and enforces valid transitions, so that a write handle can only be
committed from the transfer state and a terminal upload can never be
reused.
"""

from __future__ import annotations

from uplog.models import UploadState


class UploadStateMachine:
    """Finite state machine for a single upload.

    Valid transitions::

        IDLE                  -> SESSION_OPEN | ABORTED
        SESSION_OPEN          -> TRANSFER_IN_PROGRESS | ABORTED
        TRANSFER_IN_PROGRESS  -> COMMITTED | ABORTED
        COMMITTED             -> (terminal)
        ABORTED               -> (terminal)

    Parameters
    ----------
    key:
        The object key being uploaded, for error messages.
    """

    VALID_TRANSITIONS: dict[UploadState, set[UploadState]] = {
        UploadState.IDLE: {UploadState.SESSION_OPEN, UploadState.ABORTED},
        UploadState.SESSION_OPEN: {
            UploadState.TRANSFER_IN_PROGRESS,
            UploadState.ABORTED,
        },
        UploadState.TRANSFER_IN_PROGRESS: {
            UploadState.COMMITTED,
            UploadState.ABORTED,
        },
        UploadState.COMMITTED: set(),
        UploadState.ABORTED: set(),
    }

    TERMINAL: frozenset[UploadState] = frozenset({
        UploadState.COMMITTED,
        UploadState.ABORTED,
    })

    def __init__(self, key: str) -> None:
        self.key: str = key
        self.state: UploadState = UploadState.IDLE

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL

    @property
    def committed(self) -> bool:
        return self.state == UploadState.COMMITTED

    def transition(self, new_state: UploadState) -> None:
        """Move to *new_state*.

        Raises
        ------
        ValueError
            If the transition from the current state is not allowed.
        """
        allowed = self.VALID_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid state transition: {self.state.value} -> {new_state.value} "
                f"for upload {self.key}. "
                f"Allowed transitions from {self.state.value}: "
                f"{{{', '.join(sorted(s.value for s in allowed))}}}"
            )
        self.state = new_state

    def fail(self) -> None:
        """Move to ``ABORTED`` unless the upload already reached a terminal state."""
        if not self.is_terminal:
            self.transition(UploadState.ABORTED)
