"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Optional

import pytest

from pairbridge.broadcaster import StatusBroadcaster
from pairbridge.config import ExportConfig, PairingConfig
from pairbridge.orchestrator import SessionOrchestrator
from pairbridge.service import MessageContent, SentMessage, SessionConfig
from pairbridge.storage import CredentialStore

USER_ID = "15550001111@s.whatsapp.net"


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from pairbridge.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


class FakeHandle:
    """In-memory session handle that records every call."""

    def __init__(
        self,
        config: SessionConfig,
        registered: bool = False,
        user_id: Optional[str] = USER_ID,
        pairing_code: str = "ABCD1234",
        pairing_error: Optional[Exception] = None,
    ):
        self.config = config
        self.registered = registered
        self.user_id = user_id
        self.pairing_code = pairing_code
        self.pairing_requests: list[str] = []
        self.sent: list[tuple[str, MessageContent, Optional[SentMessage]]] = []
        self.invites: list[str] = []
        self.closed = False
        self.pairing_error = pairing_error
        self.invite_error: Optional[Exception] = None
        self.fail_documents: set[str] = set()

    async def request_pairing_code(self, phone: str) -> str:
        self.pairing_requests.append(phone)
        if self.pairing_error is not None:
            raise self.pairing_error
        return self.pairing_code

    async def send_message(
        self,
        target: str,
        content: MessageContent,
        quoted: Optional[SentMessage] = None,
    ) -> SentMessage:
        if content.document and content.document.file_name in self.fail_documents:
            raise RuntimeError(f"upload of {content.document.file_name} failed")
        self.sent.append((target, content, quoted))
        return SentMessage(
            remote_id=target, message_id=f"msg-{len(self.sent)}", content=content
        )

    async def accept_invite(self, invite_code: str) -> None:
        self.invites.append(invite_code)
        if self.invite_error is not None:
            raise self.invite_error

    async def close(self) -> None:
        self.closed = True

    async def emit(self, event: Any) -> None:
        """Report an event the way an adapter would."""
        await self.config.events.put(event)

    @property
    def documents(self) -> list[MessageContent]:
        return [content for _, content, _ in self.sent if content.document]

    @property
    def texts(self) -> list[MessageContent]:
        return [content for _, content, _ in self.sent if content.text is not None]


class FakeSessionService:
    """Session service that hands out FakeHandles."""

    def __init__(self, **handle_kwargs: Any):
        self.handle_kwargs = handle_kwargs
        self.handles: list[FakeHandle] = []
        self.open_error: Optional[Exception] = None

    async def open(self, config: SessionConfig) -> FakeHandle:
        if self.open_error is not None:
            raise self.open_error
        handle = FakeHandle(config, **self.handle_kwargs)
        self.handles.append(handle)
        return handle


class RecordingObserver:
    """Observer that keeps every message it receives."""

    def __init__(self, fail: bool = False):
        self.messages: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionResetError("observer gone")
        self.messages.append(data)

    def events(self, kind: Optional[str] = None) -> list[dict[str, Any]]:
        return [m for m in self.messages if kind is None or m["event"] == kind]


@pytest.fixture
def fake_service():
    """Session service producing FakeHandles."""
    return FakeSessionService()


@pytest.fixture
def observer():
    """A recording observer."""
    return RecordingObserver()


@pytest.fixture
def broadcaster(observer):
    """Broadcaster with one observer attached."""
    broadcaster = StatusBroadcaster(send_timeout=1.0)
    broadcaster.attach(observer)
    return broadcaster


@pytest.fixture
def store(tmp_path):
    """Credential store in a temporary auth directory."""
    return CredentialStore(tmp_path / "sessions")


@pytest.fixture
def fast_pairing_config():
    """Pairing config with short delays."""
    return PairingConfig(
        pairing_code_delay=0.01,
        retry_delay=0.01,
        print_qr_in_terminal=False,
    )


@pytest.fixture
def fast_export_config():
    """Export config without delays."""
    return ExportConfig(open_grace_delay=0, send_delay=0, invite_code="INVITE123")


@pytest.fixture
def orchestrator(fake_service, broadcaster, store, fast_pairing_config, fast_export_config):
    """Orchestrator wired to fakes."""
    return SessionOrchestrator(
        service=fake_service,
        broadcaster=broadcaster,
        store=store,
        config=fast_pairing_config,
        export_config=fast_export_config,
    )


@pytest.fixture
def eventually():
    """Poll an async-updated condition until it holds or time runs out."""

    async def _eventually(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _eventually
