"""HTTP server for observers.

Single aiohttp server handling all routes:
- /health - Health check
- /api/status - Current pairing state
- /ws - Observer WebSocket (pairing requests in, status events out)
"""

import json
import logging
from typing import Any, Optional

from aiohttp import WSMsgType, web

from pairbridge.broadcaster import StatusBroadcaster, StatusEvent
from pairbridge.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Welcome. Enter your number and press Start Pairing, or use QR."


class ObserverServer:
    """aiohttp server exposing the observer protocol.

    Inbound messages on /ws are JSON objects with a "type" of
    "startPairing" (with "phoneNumber"), "startQROnly" or "cancel".
    Outbound messages are status events:
    {"type": "status", "event": kind, "payload": value}.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        broadcaster: StatusBroadcaster,
        heartbeat: float = 30.0,
    ):
        """Initialize server.

        Args:
            orchestrator: Receives pairing requests.
            broadcaster: Observer registry for status events.
            heartbeat: WebSocket ping interval in seconds.
        """
        self.orchestrator = orchestrator
        self.broadcaster = broadcaster
        self.heartbeat = heartbeat
        self._sockets: set[web.WebSocketResponse] = set()

        self.app = web.Application()
        self._setup_routes()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        """Set up all HTTP routes."""
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/api/status", self._handle_status)
        self.app.router.add_get("/ws", self._handle_websocket)

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK")

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Current orchestrator state."""
        return web.json_response(self.orchestrator.status())

    # =========================================================================
    # Observer WebSocket
    # =========================================================================

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Attach an observer for the lifetime of the WebSocket."""
        ws = web.WebSocketResponse(heartbeat=self.heartbeat)
        await ws.prepare(request)

        client_ip = request.remote or "unknown"
        logger.info(f"Observer connected from {client_ip}")

        self._sockets.add(ws)
        await self.broadcaster.send_to(ws, StatusEvent.info(WELCOME_MESSAGE))
        self.broadcaster.attach(ws)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._handle_observer_message(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Observer connection error: {ws.exception()}")
        finally:
            self.broadcaster.detach(ws)
            self._sockets.discard(ws)
            logger.info(f"Observer disconnected from {client_ip}")

        return ws

    async def _handle_observer_message(self, ws: web.WebSocketResponse, raw: str) -> None:
        """Dispatch one observer request."""
        try:
            message: Any = json.loads(raw)
        except json.JSONDecodeError:
            await self.broadcaster.send_to(ws, StatusEvent.error("Malformed request."))
            return

        if not isinstance(message, dict):
            await self.broadcaster.send_to(ws, StatusEvent.error("Malformed request."))
            return

        request_type = message.get("type")

        if request_type == "startPairing":
            phone = message.get("phoneNumber")
            phone = str(phone).strip() if phone is not None else ""
            if await self.orchestrator.start_pairing(phone):
                await self.broadcaster.send_to(
                    ws, StatusEvent.info(f"Starting pairing for {phone}")
                )

        elif request_type == "startQROnly":
            if await self.orchestrator.start_qr():
                await self.broadcaster.send_to(
                    ws, StatusEvent.info("Starting QR pairing (no phone number)")
                )

        elif request_type == "cancel":
            if not await self.orchestrator.cancel():
                await self.broadcaster.send_to(
                    ws, StatusEvent.info("No pairing session to cancel.")
                )

        else:
            logger.debug(f"Unknown observer request: {request_type!r}")
            await self.broadcaster.send_to(
                ws, StatusEvent.error(f"Unknown request: {request_type}")
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to.
            port: Port to bind to (0 for random).

        Returns:
            App runner for cleanup.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"Observer server started on {host}:{self._port}")
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Close observer connections and stop the server."""
        for ws in list(self._sockets):
            await ws.close(code=1001, message=b"Server shutdown")
        self._sockets.clear()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None

        logger.info("Observer server stopped")
