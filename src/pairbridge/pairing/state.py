"""Session record state machine.

Represents the single active pairing attempt with validated state
transitions.
"""

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional


class ConnectionState(Enum):
    """Connection states of a session record."""

    IDLE = auto()
    PAIRING = auto()
    AWAITING_USER_ACTION = auto()
    OPEN = auto()
    CLOSED = auto()
    FAILED = auto()


class UserAction(Enum):
    """What the user has been asked to do while awaiting."""

    QR_DISPLAYED = "qr-displayed"
    PAIRING_CODE_ISSUED = "pairing-code-issued"


_AFTER_PAIRING = {
    ConnectionState.AWAITING_USER_ACTION,
    ConnectionState.OPEN,
    ConnectionState.CLOSED,
    ConnectionState.FAILED,
    ConnectionState.IDLE,
}

VALID_TRANSITIONS = {
    ConnectionState.IDLE: {ConnectionState.PAIRING},
    ConnectionState.PAIRING: _AFTER_PAIRING,
    ConnectionState.AWAITING_USER_ACTION: _AFTER_PAIRING,
    ConnectionState.OPEN: {
        ConnectionState.CLOSED,
        ConnectionState.FAILED,
        ConnectionState.IDLE,
    },
    ConnectionState.CLOSED: {
        ConnectionState.PAIRING,
        ConnectionState.FAILED,
        ConnectionState.IDLE,
    },
    ConnectionState.FAILED: set(),
}


@dataclass
class SessionRecord:
    """The active pairing attempt.

    Attributes:
        record_id: Short random identifier used in logs.
        identity: Digits-only phone number, or "" for QR mode.
        state: Current connection state.
        action: Set while awaiting the user (QR shown or code issued).
        reason: Close or failure reason, if any.
        attempts: Number of times a service handle was opened.
        export_started: True while the export is scheduled or running.
        handle: Current session service handle.
        consumer: Task draining the handle's event channel.
        timers: Pending pairing-code and retry tasks.
    """

    record_id: str
    identity: str
    created_at: float = field(default_factory=time.time)
    state: ConnectionState = ConnectionState.IDLE
    action: Optional[UserAction] = None
    reason: Optional[str] = None
    attempts: int = 0
    export_started: bool = False

    handle: Optional[Any] = None  # SessionHandle
    consumer: Optional[asyncio.Task] = field(default=None, repr=False)
    timers: set[asyncio.Task] = field(default_factory=set, repr=False)

    @classmethod
    def create(cls, identity: str) -> "SessionRecord":
        """Create a new record for ``identity`` ("" selects QR mode)."""
        return cls(record_id=secrets.token_hex(4), identity=identity)

    @property
    def qr_mode(self) -> bool:
        return not self.identity

    def transition_to(
        self,
        new_state: ConnectionState,
        action: Optional[UserAction] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Transition to a new state with validation.

        Args:
            new_state: Target state.
            action: User action when entering AWAITING_USER_ACTION.
            reason: Close/failure reason for CLOSED and FAILED.

        Raises:
            ValueError: If transition is not valid from current state.
        """
        if new_state not in VALID_TRANSITIONS.get(self.state, set()):
            raise ValueError(f"Invalid transition: {self.state} -> {new_state}")

        self.state = new_state
        self.action = action if new_state == ConnectionState.AWAITING_USER_ACTION else None
        if new_state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            self.reason = reason
        elif new_state == ConnectionState.PAIRING:
            self.reason = None

    def to_dict(self) -> dict[str, Any]:
        """Summary for the status API."""
        return {
            "record_id": self.record_id,
            "mode": "qr" if self.qr_mode else "pairing-code",
            "identity": self.identity or None,
            "state": self.state.name.lower(),
            "action": self.action.value if self.action else None,
            "reason": self.reason,
            "attempts": self.attempts,
        }
