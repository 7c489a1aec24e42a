"""Session orchestrator drives the pairing lifecycle.

Owns the single active session record, opens session service handles,
reacts to their lifecycle events, consults the reconnect policy on close
and runs the credential export once the connection opens.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional

from pairbridge.broadcaster import EventKind, StatusBroadcaster, StatusEvent
from pairbridge.config import ExportConfig, PairingConfig
from pairbridge.errors import (
    NOISY_ERROR_KINDS,
    ErrorKind,
    ExportError,
    SessionBusyError,
    StorageError,
    ValidationError,
)
from pairbridge.exporter import CredentialExporter, ExportResult
from pairbridge.formatting import format_pairing_code, mask_phone
from pairbridge.pairing.state import ConnectionState, SessionRecord, UserAction
from pairbridge.pairing.validator import PhoneValidator
from pairbridge.reconnect import DisconnectReason, ReconnectPolicy, Terminal
from pairbridge.service import (
    ConnectionUpdate,
    CredsUpdate,
    MessageCache,
    ServiceError,
    ServiceEvent,
    SessionConfig,
    SessionHandle,
    SessionService,
)
from pairbridge.storage import CredentialStore

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A pairing session is already in progress."
COMPLETED_MESSAGE = "Credentials were already exported. Restart to pair again."


class SessionOrchestrator:
    """Single-owner manager of the active pairing session.

    At most one session record exists at a time. Start requests made while
    a record is active are rejected, and nothing starts after a successful
    export. Errors never propagate to callers; they are published as
    status events.
    """

    def __init__(
        self,
        service: SessionService,
        broadcaster: StatusBroadcaster,
        store: CredentialStore,
        validator: Optional[PhoneValidator] = None,
        policy: Optional[ReconnectPolicy] = None,
        exporter: Optional[CredentialExporter] = None,
        config: Optional[PairingConfig] = None,
        export_config: Optional[ExportConfig] = None,
        qr_renderer: Optional[Callable[[str], None]] = None,
    ):
        """Initialize orchestrator.

        Args:
            service: Session service used to open handles.
            broadcaster: Receives every status event.
            store: Credential store for creds updates and export.
            validator: Phone validator (default calling-code table).
            policy: Reconnect policy (default uses config.retry_delay).
            exporter: Credential exporter (built from store if omitted).
            config: Pairing flow settings.
            export_config: Export settings (grace delay, messages).
            qr_renderer: Optional callback to display QR payloads locally.
        """
        self.config = config or PairingConfig()
        self.export_config = export_config or ExportConfig()
        self.service = service
        self.broadcaster = broadcaster
        self.store = store
        self.validator = validator or PhoneValidator()
        self.policy = policy or ReconnectPolicy(self.config.retry_delay)
        self.message_cache = MessageCache()
        self.exporter = exporter or CredentialExporter(
            store, self.export_config, message_cache=self.message_cache
        )
        self._qr_renderer = qr_renderer

        self._record: Optional[SessionRecord] = None
        self._completed = False
        self._completion: Optional[asyncio.Future] = None

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def record(self) -> Optional[SessionRecord]:
        """The active session record, if any."""
        return self._record

    @property
    def completed(self) -> bool:
        """True once credentials have been exported."""
        return self._completed

    def status(self) -> dict[str, Any]:
        """Snapshot of the orchestrator for the status API."""
        return {
            "session": self._record.to_dict() if self._record else None,
            "completed": self._completed,
            "observers": len(self.broadcaster),
        }

    async def start_pairing(self, phone: Optional[str]) -> bool:
        """Start a pairing-code flow for ``phone``.

        Returns:
            True if a session was started.
        """
        if not await self._can_start():
            return False

        try:
            identity = self.validator.validate(phone)
        except ValidationError as e:
            logger.warning(f"Rejected pairing request ({e.reason})")
            await self.broadcaster.publish(StatusEvent.error(str(e)))
            return False

        return await self._start(identity)

    async def start_qr(self) -> bool:
        """Start a QR flow.

        Returns:
            True if a session was started.
        """
        if not await self._can_start():
            return False
        return await self._start("")

    async def cancel(self) -> bool:
        """Cancel the active session, releasing its service handle.

        Returns:
            True if a session was cancelled.
        """
        record = self._record
        if record is None:
            return False

        record.transition_to(ConnectionState.IDLE)
        logger.info(f"Pairing session cancelled: {record.record_id}")
        await self.broadcaster.publish(StatusEvent.info("Pairing cancelled."))
        await self._release(record)
        return True

    async def wait_completed(self) -> ExportResult:
        """Wait until the credentials have been exported."""
        return await asyncio.shield(self._get_completion())

    async def stop(self) -> None:
        """Release the active session without publishing anything."""
        record = self._record
        if record is not None:
            await self._release(record)
        logger.debug("Orchestrator stopped")

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def _get_completion(self) -> asyncio.Future:
        if self._completion is None:
            self._completion = asyncio.get_running_loop().create_future()
        return self._completion

    def _check_slot(self) -> None:
        """Raise SessionBusyError unless a new session may start."""
        if self._completed:
            raise SessionBusyError(COMPLETED_MESSAGE)
        if self._record is not None:
            logger.warning(
                f"Start rejected, session {self._record.record_id} is "
                f"{self._record.state.name}"
            )
            raise SessionBusyError(BUSY_MESSAGE)

    async def _can_start(self) -> bool:
        try:
            self._check_slot()
        except SessionBusyError as e:
            await self.broadcaster.publish(StatusEvent.error(str(e)))
            return False
        return True

    async def _start(self, identity: str) -> bool:
        record = SessionRecord.create(identity)
        self._record = record
        target = mask_phone(identity) if identity else "QR"
        logger.info(f"Pairing session started: {record.record_id} ({target})")
        return await self._open(record)

    async def _open(self, record: SessionRecord) -> bool:
        """Open a service handle for ``record`` and start consuming its events.

        Returns:
            True if a handle was opened.
        """
        if record is not self._record or self._completed:
            return False

        record.attempts += 1
        await self._transition(
            record,
            ConnectionState.PAIRING,
            StatusEvent.info(
                f"Starting pairing flow (pairingCode={not record.qr_mode})"
            ),
        )

        events: asyncio.Queue[ServiceEvent] = asyncio.Queue(
            maxsize=self.config.event_queue_size
        )
        session_config = SessionConfig(
            creds=self.store.load_creds(),
            events=events,
            get_message=self.message_cache.get_message,
            browser=list(self.config.browser),
            print_qr_in_terminal=self.config.print_qr_in_terminal,
        )

        try:
            handle = await self.service.open(session_config)
        except Exception as e:
            logger.error(f"Session service open failed for {record.record_id}: {e}")
            if record is self._record:
                await self._fail(record, f"Could not start session: {e}")
            return False

        if record is not self._record:
            # Cancelled while the handle was opening
            await self._close_handle(handle)
            return False

        record.handle = handle
        record.consumer = asyncio.create_task(self._consume(record, handle, events))

        if not record.qr_mode and not handle.registered:
            self._schedule(record, self._request_pairing_code(record, handle))

        logger.debug(f"Session handle open for {record.record_id} (attempt {record.attempts})")
        return True

    async def _consume(
        self,
        record: SessionRecord,
        handle: SessionHandle,
        events: "asyncio.Queue[ServiceEvent]",
    ) -> None:
        """Process service events for one handle, in order, until it is done."""
        while True:
            event = await events.get()
            if record is not self._record or record.handle is not handle:
                return

            try:
                keep_going = await self._handle_event(record, handle, event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}")
                await self.broadcaster.publish(StatusEvent.error(f"Session error: {e}"))
                keep_going = True

            if not keep_going:
                return

    async def _handle_event(
        self,
        record: SessionRecord,
        handle: SessionHandle,
        event: ServiceEvent,
    ) -> bool:
        """Route one service event.

        Returns:
            False when the handle is finished and consumption should stop.
        """
        if isinstance(event, CredsUpdate):
            self._save_creds(event.creds)
            return True

        if isinstance(event, ServiceError):
            self._log_service_error(event.kind, event.message)
            return True

        if not isinstance(event, ConnectionUpdate):
            logger.warning(f"Ignoring unknown service event: {event!r}")
            return True

        if event.qr:
            await self._on_qr(record, event.qr)

        if event.connection is None:
            return True

        logger.debug(f"connection.update -> {event.connection}")

        if event.connection == "open":
            await self._on_open(record, handle)
            return True

        if event.connection == "close":
            await self._on_close(record, handle, event.last_disconnect)
            return False

        await self.broadcaster.publish(StatusEvent(EventKind.CONNECTION, event.connection))
        return True

    async def _on_qr(self, record: SessionRecord, qr: str) -> None:
        if not record.qr_mode:
            logger.debug("Ignoring QR update in pairing-code mode")
            return
        if record.state not in (
            ConnectionState.PAIRING,
            ConnectionState.AWAITING_USER_ACTION,
        ):
            return

        if self._qr_renderer is not None:
            try:
                self._qr_renderer(qr)
            except Exception as e:
                logger.warning(f"QR rendering failed: {e}")

        await self._transition(
            record,
            ConnectionState.AWAITING_USER_ACTION,
            StatusEvent(EventKind.QR, qr),
            action=UserAction.QR_DISPLAYED,
        )

    async def _request_pairing_code(
        self, record: SessionRecord, handle: SessionHandle
    ) -> None:
        """Request a pairing code once the service has had time to settle."""
        await asyncio.sleep(self.config.pairing_code_delay)
        if record.handle is not handle or record.state != ConnectionState.PAIRING:
            return

        try:
            code = await handle.request_pairing_code(record.identity)
        except Exception as e:
            logger.error(f"Pairing code request failed for {record.record_id}: {e}")
            await self.broadcaster.publish(
                StatusEvent.error(f"Pairing code request failed: {e}")
            )
            return

        if record.handle is not handle or record.state != ConnectionState.PAIRING:
            return

        formatted = format_pairing_code(code)
        logger.info(f"Pairing code issued for {mask_phone(record.identity)}: {formatted}")
        await self._transition(
            record,
            ConnectionState.AWAITING_USER_ACTION,
            StatusEvent(EventKind.PAIRING_CODE, formatted),
            action=UserAction.PAIRING_CODE_ISSUED,
        )

    async def _on_open(self, record: SessionRecord, handle: SessionHandle) -> None:
        """Connection opened: start the export alongside event consumption."""
        if record.export_started:
            logger.warning(f"Duplicate open for {record.record_id}, export already running")
            return

        await self._transition(
            record,
            ConnectionState.OPEN,
            StatusEvent(EventKind.CONNECTION, "open"),
        )
        record.export_started = True
        logger.info(f"Connection open for {record.record_id}, exporting credentials")
        self._schedule(record, self._export(record, handle))

    async def _export(self, record: SessionRecord, handle: SessionHandle) -> None:
        """Greet the account and export the credentials after the grace delay.

        Runs as a timer task so creds updates and closes keep being
        consumed; a close cancels it.
        """
        await asyncio.sleep(self.export_config.open_grace_delay)
        if record is not self._record or record.handle is not handle:
            return

        await self.exporter.send_greeting(handle)

        try:
            result = await self.exporter.export(handle)
        except ExportError as e:
            logger.error(f"Credential export failed: {e}")
            await self._fail(record, str(e))
            return
        except Exception as e:
            logger.error(f"Unexpected error during export: {e}")
            await self._fail(record, f"Credential export failed: {e}")
            return

        await self._complete(record, result)

    async def _on_close(
        self,
        record: SessionRecord,
        handle: SessionHandle,
        reason: Optional[DisconnectReason],
    ) -> None:
        """Connection closed: release the handle and apply the reconnect policy."""
        description = reason.describe() if reason else "no reason given"
        logger.info(f"Connection closed for {record.record_id}: {description}")

        # Drops a pending code request or an unfinished export
        self._cancel_timers(record)
        record.export_started = False

        await self._transition(
            record,
            ConnectionState.CLOSED,
            StatusEvent(EventKind.CONNECTION, "close"),
            reason=description,
        )
        record.handle = None
        await self._close_handle(handle)

        decision = self.policy.classify(reason)
        if isinstance(decision, Terminal):
            await self._fail(record, f"Connection closed ({decision.reason}); not retrying.")
            return

        await self.broadcaster.publish(
            StatusEvent.info("Connection closed unexpectedly; retrying pairing flow...")
        )
        self._schedule(record, self._retry(record, decision.delay))

    async def _retry(self, record: SessionRecord, delay: float) -> None:
        await asyncio.sleep(delay)
        if record is not self._record or self._completed:
            return
        logger.info(f"Retrying pairing for {record.record_id}")
        await self._open(record)

    async def _complete(self, record: SessionRecord, result: ExportResult) -> None:
        self._completed = True
        logger.info(f"Credentials exported for {record.record_id}, pairing complete")
        await self.broadcaster.publish(
            StatusEvent.info("Credentials exported. Pairing complete.")
        )
        await self._release(record)

        completion = self._get_completion()
        if not completion.done():
            completion.set_result(result)

    async def _fail(self, record: SessionRecord, reason: str) -> None:
        """Move ``record`` to FAILED, tell observers and free the slot."""
        await self._transition(
            record,
            ConnectionState.FAILED,
            StatusEvent.error(reason),
            reason=reason,
        )
        await self._release(record)

    async def _release(self, record: SessionRecord) -> None:
        """Drop ``record`` from the slot and free everything it holds."""
        if self._record is record:
            self._record = None

        current = asyncio.current_task()
        self._cancel_timers(record)
        if record.consumer is not None and record.consumer is not current:
            record.consumer.cancel()
        record.consumer = None

        handle = record.handle
        record.handle = None
        if handle is not None:
            await self._close_handle(handle)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _transition(
        self,
        record: SessionRecord,
        state: ConnectionState,
        event: StatusEvent,
        action: Optional[UserAction] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Apply a state transition and publish its status event."""
        record.transition_to(state, action=action, reason=reason)
        await self.broadcaster.publish(event)

    def _schedule(self, record: SessionRecord, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        record.timers.add(task)
        task.add_done_callback(record.timers.discard)

    def _cancel_timers(self, record: SessionRecord) -> None:
        current = asyncio.current_task()
        for task in list(record.timers):
            if task is not current:
                task.cancel()
        record.timers.clear()

    async def _close_handle(self, handle: SessionHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error closing session handle: {e}")

    def _save_creds(self, creds: dict[str, Any]) -> None:
        try:
            self.store.save_creds(creds)
        except StorageError as e:
            logger.error(f"Failed to persist credentials: {e}")

    def _log_service_error(self, kind: ErrorKind, message: str) -> None:
        if kind in NOISY_ERROR_KINDS:
            logger.debug(f"Session service {kind.value}: {message}")
        else:
            logger.error(f"Session service error: {message}")
