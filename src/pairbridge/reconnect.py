"""Disconnect classification for the pairing flow.

Every close is retried after a fixed backoff with the identity that was
active when the connection closed, except an authorization failure, which
ends the attempt.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

UNAUTHORIZED_STATUS = 401
DEFAULT_RETRY_DELAY = 2.0


@dataclass(frozen=True)
class DisconnectReason:
    """Why the session service closed the connection.

    Attributes:
        status_code: Protocol status code, if the service reported one.
        message: Human-readable description.
    """

    status_code: Optional[int] = None
    message: str = ""

    @classmethod
    def from_last_disconnect(cls, last_disconnect: Optional[dict]) -> Optional["DisconnectReason"]:
        """Build from a ``{error: {output: {statusCode}}}`` style payload.

        Used by ConnectionUpdate.from_payload for adapters that receive the
        engine's raw lastDisconnect value.
        """
        if not last_disconnect:
            return None
        error = last_disconnect.get("error") or {}
        if not isinstance(error, dict):
            return cls(message=str(error))
        output = error.get("output") or {}
        status_code = output.get("statusCode") if isinstance(output, dict) else None
        return cls(status_code=status_code, message=str(error.get("message", "")))

    def describe(self) -> str:
        if self.status_code is None:
            return self.message or "unknown"
        if self.message:
            return f"{self.message} ({self.status_code})"
        return str(self.status_code)


@dataclass(frozen=True)
class Retry:
    """Restart pairing after ``delay`` seconds."""

    delay: float


@dataclass(frozen=True)
class Terminal:
    """Do not restart pairing."""

    reason: str


Decision = Union[Retry, Terminal]


class ReconnectPolicy:
    """Decide whether a closed connection should be retried."""

    def __init__(self, retry_delay: float = DEFAULT_RETRY_DELAY):
        if retry_delay <= 0:
            raise ValueError("retry_delay must be positive")
        self.retry_delay = retry_delay

    def classify(self, reason: Optional[DisconnectReason]) -> Decision:
        """Classify a close reason.

        Args:
            reason: Close reason, or None when the service gave none.

        Returns:
            Terminal for an unauthorized close, otherwise Retry.
        """
        if reason is not None and reason.status_code == UNAUTHORIZED_STATUS:
            logger.info("Connection closed as unauthorized, not retrying")
            return Terminal(reason="unauthorized")

        return Retry(delay=self.retry_delay)
