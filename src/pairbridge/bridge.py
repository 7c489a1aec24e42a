"""Bridge process orchestration - ties all components together."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Callable, Optional

from pairbridge.broadcaster import StatusBroadcaster
from pairbridge.config import Config
from pairbridge.errors import SessionServiceError
from pairbridge.orchestrator import SessionOrchestrator
from pairbridge.reconnect import ReconnectPolicy
from pairbridge.server import ObserverServer
from pairbridge.service import SessionService
from pairbridge.storage import CredentialStore

logger = logging.getLogger(__name__)


class StartupError(Exception):
    """Error during bridge startup."""

    pass


def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """Log unhandled task errors without letting them stop the bridge.

    Known noisy session service errors are logged at debug level only.
    """
    exception = context.get("exception")
    if isinstance(exception, SessionServiceError) and exception.is_noisy:
        logger.debug(f"Suppressed {exception.kind.value}: {exception}")
        return

    message = context.get("message", "Unhandled error")
    if exception is not None:
        logger.error(f"Caught exception: {message}: {exception!r}")
    else:
        logger.error(f"Caught exception: {message}")


class Bridge:
    """Runs the observer server and session orchestrator.

    Responsibilities:
    - Build the credential store, broadcaster and orchestrator from config
    - Serve observers over HTTP/WebSocket
    - Keep unhandled errors from crashing the process
    - Finish once the credentials have been exported, or on stop()
    """

    def __init__(
        self,
        config: Config,
        service: SessionService,
        qr_renderer: Optional[Callable[[str], None]] = None,
        orchestrator: Optional[SessionOrchestrator] = None,
        server: Optional[ObserverServer] = None,
    ):
        """Initialize bridge.

        Args:
            config: Bridge configuration.
            service: Session service adapter.
            qr_renderer: Optional local QR display callback.
            orchestrator: Optional injected orchestrator (for testing).
            server: Optional injected observer server (for testing).
        """
        self._config = config
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

        if orchestrator is None:
            broadcaster = StatusBroadcaster(send_timeout=config.broadcast.send_timeout)
            orchestrator = SessionOrchestrator(
                service=service,
                broadcaster=broadcaster,
                store=CredentialStore(Path(config.auth_dir).expanduser()),
                policy=ReconnectPolicy(config.pairing.retry_delay),
                config=config.pairing,
                export_config=config.export,
                qr_renderer=qr_renderer,
            )
        self._orchestrator = orchestrator
        self._server = server or ObserverServer(orchestrator, orchestrator.broadcaster)

    @property
    def orchestrator(self) -> SessionOrchestrator:
        return self._orchestrator

    @property
    def server(self) -> ObserverServer:
        return self._server

    async def start(self) -> None:
        """Start the bridge.

        Raises:
            StartupError: If the observer server cannot bind.
        """
        logger.info("Starting bridge...")
        self._stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        loop.set_exception_handler(handle_loop_exception)

        try:
            await self._server.start(
                host=self._config.bind_address,
                port=self._config.port,
            )
        except OSError as e:
            raise StartupError(f"Cannot listen on port {self._config.port}: {e}") from e

        self._setup_signals()
        self._running = True
        logger.info("Bridge started, waiting for observers")

    async def run(self) -> bool:
        """Run until credentials are exported or stop() is called.

        Returns:
            True if the credentials were exported.
        """
        if not self._running:
            await self.start()

        completion = asyncio.ensure_future(self._orchestrator.wait_completed())
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({completion, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (completion, stopped):
                if not task.done():
                    task.cancel()
            await self._shutdown()

        return self._orchestrator.completed

    async def stop(self) -> None:
        """Stop the bridge gracefully."""
        if self._stop_event is not None:
            self._stop_event.set()

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(
                    sig,
                    lambda: asyncio.create_task(self.stop()),
                )
            except (NotImplementedError, RuntimeError):
                # Not available off the main thread or on some platforms
                logger.debug(f"Signal handler for {sig.name} not installed")

    async def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        logger.info("Shutting down bridge...")
        self._running = False

        await self._orchestrator.stop()
        await self._server.close()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

        logger.info("Bridge stopped")
