"""Broadcast status events to attached observers."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of status events sent to observers."""

    INFO = "info"
    ERROR = "error"
    QR = "qr"
    PAIRING_CODE = "pairingCode"
    CONNECTION = "connection"


@dataclass(frozen=True)
class StatusEvent:
    """A single lifecycle event. Never persisted, only broadcast."""

    kind: EventKind
    payload: Any

    def to_message(self) -> dict[str, Any]:
        """Wire form of the observer protocol."""
        return {"type": "status", "event": self.kind.value, "payload": self.payload}

    @classmethod
    def info(cls, payload: Any) -> "StatusEvent":
        return cls(EventKind.INFO, payload)

    @classmethod
    def error(cls, payload: Any) -> "StatusEvent":
        return cls(EventKind.ERROR, payload)


class ObserverProtocol(Protocol):
    """Protocol for observer channels (aiohttp WebSocketResponse fits)."""

    async def send_json(self, data: Any) -> None:
        """Send a JSON message."""
        ...


class StatusBroadcaster:
    """Track observers and fan status events out to them.

    Publishes are delivered in call order. An observer attached after an
    event was published never sees it.
    """

    def __init__(self, send_timeout: float = 5.0):
        """Initialize broadcaster.

        Args:
            send_timeout: Per-observer timeout for a single delivery.
        """
        self._observers: list[ObserverProtocol] = []
        self._send_timeout = send_timeout
        self._lock = asyncio.Lock()

    def attach(self, observer: ObserverProtocol) -> None:
        """Start delivering events to ``observer``."""
        if observer not in self._observers:
            self._observers.append(observer)
            logger.debug(f"Observer attached ({len(self._observers)} total)")

    def detach(self, observer: ObserverProtocol) -> bool:
        """Stop delivering events to ``observer``.

        Returns:
            True if the observer was attached.
        """
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        logger.debug(f"Observer detached ({len(self._observers)} total)")
        return True

    async def send_to(self, observer: ObserverProtocol, event: StatusEvent) -> bool:
        """Deliver ``event`` to one observer only.

        Returns:
            True on success, False if the send failed or timed out.
        """
        try:
            await asyncio.wait_for(
                observer.send_json(event.to_message()), timeout=self._send_timeout
            )
            return True
        except asyncio.TimeoutError:
            logger.warning("Status send to observer timed out")
        except Exception as e:
            logger.warning(f"Status send to observer failed: {e}")
        return False

    async def publish(self, event: StatusEvent) -> None:
        """Broadcast ``event`` to every attached observer (concurrent, fault-tolerant).

        Observers that fail to receive the event are detached.
        """
        # The lock serializes publishes so per-observer order is preserved.
        async with self._lock:
            observers = list(self._observers)
            if not observers:
                logger.debug(f"No observers for {event.kind.value} event")
                return

            results = await asyncio.gather(
                *[self.send_to(observer, event) for observer in observers],
                return_exceptions=True,
            )

            for observer, delivered in zip(observers, results):
                if delivered is not True:
                    self.detach(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def __contains__(self, observer: Optional[ObserverProtocol]) -> bool:
        return observer in self._observers
