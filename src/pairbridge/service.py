"""Session service contract.

The session service performs the messaging protocol handshake, encryption
and transport. pairbridge only drives it through the interfaces below; an
adapter for a concrete protocol engine implements ``SessionService`` and
reports lifecycle events by putting them on the bounded channel it receives
in ``SessionConfig``.
"""

import asyncio
import importlib
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from pairbridge.errors import ConfigError, ErrorKind
from pairbridge.reconnect import DisconnectReason

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class ConnectionUpdate:
    """Connection state reported by the service.

    Attributes:
        connection: "open", "close", "connecting" or None when only a QR
            refresh is being reported.
        qr: Scannable pairing payload, if one was issued.
        last_disconnect: Close reason for "close" updates.
    """

    connection: Optional[str] = None
    qr: Optional[str] = None
    last_disconnect: Optional[DisconnectReason] = None

    @classmethod
    def from_payload(cls, update: dict[str, Any]) -> "ConnectionUpdate":
        """Build from a raw ``{connection, qr, lastDisconnect}`` update.

        Adapters whose protocol engine reports connection updates as plain
        dicts can put the result straight on the event channel.
        """
        return cls(
            connection=update.get("connection"),
            qr=update.get("qr"),
            last_disconnect=DisconnectReason.from_last_disconnect(
                update.get("lastDisconnect")
            ),
        )


@dataclass(frozen=True)
class CredsUpdate:
    """Credential state changed; persist it before anything else."""

    creds: dict[str, Any]


@dataclass(frozen=True)
class ServiceError:
    """Runtime error the service could not attribute to a close."""

    kind: ErrorKind
    message: str


ServiceEvent = Union[ConnectionUpdate, CredsUpdate, ServiceError]


# =============================================================================
# Messages
# =============================================================================

@dataclass(frozen=True)
class Document:
    """A file attachment."""

    data: bytes
    mimetype: str
    file_name: str


@dataclass(frozen=True)
class MessageContent:
    """Outgoing message: either text or a document."""

    text: Optional[str] = None
    document: Optional[Document] = None

    @classmethod
    def of_text(cls, text: str) -> "MessageContent":
        return cls(text=text)

    @classmethod
    def of_document(cls, data: bytes, mimetype: str, file_name: str) -> "MessageContent":
        return cls(document=Document(data=data, mimetype=mimetype, file_name=file_name))


@dataclass(frozen=True)
class SentMessage:
    """Reference to a delivered message."""

    remote_id: str
    message_id: str
    content: Optional[MessageContent] = None


class MessageCache:
    """Bounded cache of messages sent during a session.

    Backs the service's message-lookup callback, used when the peer asks for
    a message to be re-sent.
    """

    def __init__(self, max_size: int = 256):
        self._max_size = max_size
        self._messages: OrderedDict[tuple[str, str], MessageContent] = OrderedDict()

    def add(self, sent: SentMessage) -> None:
        if sent.content is None:
            return
        key = (sent.remote_id, sent.message_id)
        self._messages[key] = sent.content
        self._messages.move_to_end(key)
        while len(self._messages) > self._max_size:
            self._messages.popitem(last=False)

    async def get_message(self, remote_id: str, message_id: str) -> Optional[MessageContent]:
        """Message-lookup callback handed to the service."""
        return self._messages.get((remote_id, message_id))

    def __len__(self) -> int:
        return len(self._messages)


# =============================================================================
# Service interfaces
# =============================================================================

MessageLookup = Callable[[str, str], Awaitable[Optional[MessageContent]]]


@dataclass
class SessionConfig:
    """Everything the service needs to open a session.

    Attributes:
        creds: Stored credential state, empty for a fresh pairing.
        events: Bounded channel the service puts ServiceEvents on.
        get_message: Lookup for previously sent messages.
        browser: Client descriptor, e.g. ["Windows", "Firefox", "10.0"].
        print_qr_in_terminal: Whether QR rendering is wanted.
    """

    creds: dict[str, Any]
    events: "asyncio.Queue[ServiceEvent]"
    get_message: MessageLookup
    browser: list[str] = field(default_factory=list)
    print_qr_in_terminal: bool = False


class SessionHandle(Protocol):
    """An open session with the messaging service."""

    @property
    def registered(self) -> bool:
        """True once the stored credentials belong to a linked account."""
        ...

    @property
    def user_id(self) -> Optional[str]:
        """Identity of the authenticated account, once open."""
        ...

    async def request_pairing_code(self, phone: str) -> str:
        """Request a numeric pairing code for ``phone``."""
        ...

    async def send_message(
        self,
        target: str,
        content: MessageContent,
        quoted: Optional[SentMessage] = None,
    ) -> SentMessage:
        """Send ``content`` to ``target``."""
        ...

    async def accept_invite(self, invite_code: str) -> None:
        """Join a group or channel by invite code."""
        ...

    async def close(self) -> None:
        """Release the session."""
        ...


class SessionService(Protocol):
    """Factory for session handles."""

    async def open(self, config: SessionConfig) -> SessionHandle:
        """Open a session handle."""
        ...


def load_session_service(target: str) -> SessionService:
    """Import and build a session service from ``module:factory``.

    Args:
        target: Dotted module path and attribute, e.g. "acme.wa:Service".

    Returns:
        The object returned by calling the factory.

    Raises:
        ConfigError: If the target cannot be imported or called.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Session service must be 'module:factory', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import session service module {module_name}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"{module_name} has no callable {attr}")

    service = factory()
    logger.debug(f"Loaded session service {target}")
    return service
