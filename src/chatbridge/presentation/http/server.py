"""HTTP server for webhooks, realtime viewers and the admin API."""

import asyncio
import json
from datetime import datetime, timezone

import structlog
from aiohttp import WSMsgType, web

from chatbridge.application.handlers.payload_parsers import PayloadParserRegistry
from chatbridge.config.models import AuthConfig, ServerConfig
from chatbridge.domain.entities.external_channel_mapping import ExternalPlatform
from chatbridge.domain.entities.inbound_delivery import InboundDelivery
from chatbridge.domain.errors import ValidationError
from chatbridge.infrastructure.delivery_queue import InboundDeliveryQueue
from chatbridge.infrastructure.realtime import RealtimeBroadcaster, Subscription
from chatbridge.presentation.http.api import AdminApi, error_middleware
from chatbridge.presentation.http.identity import identity_middleware

# Seconds between websocket pings
WS_HEARTBEAT = 30.0


class HTTPServer:
    """HTTP server for the bridge.

    This server provides endpoints for:
    - POST /webhooks/{platform}/{mapping_id}: Accept and enqueue platform webhooks
    - GET /webhooks/health: Webhook receiver health
    - GET /ws/events/{event_id}: Realtime notification stream for an event
    - /api/...: Admin API, when an AdminApi is given
    - GET /healthz: Kubernetes liveness check

    Args:
        config: Server configuration containing host and port.
        delivery_queue: Queue receiving accepted webhook deliveries.
        parsers: Webhook payload parsers by platform.
        broadcaster: Realtime broadcaster feeding websocket viewers.
        logger: Structured logger for logging.
        api: Admin API handlers.
        auth: Caller identity configuration for the admin API.
    """

    def __init__(
        self,
        config: ServerConfig,
        delivery_queue: InboundDeliveryQueue,
        parsers: PayloadParserRegistry,
        broadcaster: RealtimeBroadcaster,
        logger: structlog.BoundLogger,
        api: AdminApi | None = None,
        auth: AuthConfig | None = None,
    ) -> None:
        self.config = config
        self._delivery_queue = delivery_queue
        self._parsers = parsers
        self._broadcaster = broadcaster
        self._logger = logger
        self._api = api
        self._auth = auth or AuthConfig()
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True if the server is running."""
        return self._site is not None

    @property
    def actual_port(self) -> int:
        """Return the actual port the server is listening on.

        This is useful when port 0 is configured to get a random port.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._site is None:
            raise RuntimeError("Server is not running")
        # Access internal server via getattr to avoid type checker issues
        # with aiohttp's internal implementation
        server = getattr(self._site, "_server", None)
        if server is None:
            raise RuntimeError("Server is not running")
        sockets = getattr(server, "sockets", None)
        if sockets:
            return sockets[0].getsockname()[1]
        raise RuntimeError("No sockets available")

    def create_app(self) -> web.Application:
        """Create and return the aiohttp Application.

        This method is exposed for testing purposes.

        Returns:
            Configured aiohttp Application.
        """
        app = web.Application(
            middlewares=[
                error_middleware(self._logger),
                identity_middleware(self._auth),
            ]
        )
        app.router.add_get("/healthz", self._handle_health_check)
        app.router.add_get("/webhooks/health", self._handle_webhook_health)
        app.router.add_post("/webhooks/{platform}/{mapping_id}", self._handle_webhook)
        app.router.add_get("/ws/events/{event_id}", self._handle_event_stream)
        if self._api is not None:
            self._api.register(app.router)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()
        self._logger.info(
            "HTTP server started",
            host=self.config.host,
            port=self.actual_port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._app = None
            self._logger.info("HTTP server stopped")

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        """Handle GET /healthz requests.

        Args:
            request: The incoming request.

        Returns:
            JSON response with status "ok".
        """
        return web.json_response({"status": "ok"})

    async def _handle_webhook_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "pending_deliveries": self._delivery_queue.pending_count,
            }
        )

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        """Handle POST /webhooks/{platform}/{mapping_id} requests.

        The delivery is acknowledged as soon as it is parsed and queued;
        ingestion happens in the main loop.

        Args:
            request: The incoming request.

        Returns:
            JSON response with status "accepted" on success, or error message
            on failure.
        """
        platform_name = request.match_info["platform"]
        mapping_id = request.match_info["mapping_id"]

        try:
            platform = ExternalPlatform(platform_name.lower())
        except ValueError:
            return web.json_response(
                {"error": f"Unknown platform: {platform_name}"}, status=404
            )
        parser = self._parsers.get_parser(platform)
        if parser is None:
            return web.json_response(
                {"error": f"Webhooks not supported for {platform.value}"}, status=404
            )

        # Parse JSON body
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "Invalid JSON"}, status=400)

        try:
            message = parser.parse(body)
        except ValidationError as e:
            self._logger.warning(
                "Invalid webhook payload",
                platform=platform.value,
                mapping_id=mapping_id,
                error=str(e),
            )
            return web.json_response({"error": str(e)}, status=400)

        if message is None:
            return web.json_response({"status": "ignored"})

        delivery = InboundDelivery(
            platform=platform, mapping_id=mapping_id, message=message
        )
        queued = await self._delivery_queue.enqueue(delivery)

        self._logger.info(
            "Webhook received",
            delivery_id=delivery.id,
            platform=platform.value,
            mapping_id=mapping_id,
            external_message_id=message.external_message_id,
            queued=queued,
        )
        return web.json_response({"status": "accepted", "delivery_id": delivery.id})

    async def _handle_event_stream(self, request: web.Request) -> web.WebSocketResponse:
        """Handle GET /ws/events/{event_id} websocket connections.

        Every notification published for the event is sent as a JSON text
        frame. Messages from the client are ignored.

        Args:
            request: The incoming request.

        Returns:
            The websocket response, once the connection is closed.
        """
        event_id = request.match_info["event_id"]
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT)
        await ws.prepare(request)

        subscription = self._broadcaster.subscribe(event_id)
        sender = asyncio.create_task(self._forward(subscription, ws))
        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    self._logger.warning(
                        "Websocket closed with error",
                        event_id=event_id,
                        error=str(ws.exception()),
                    )
        finally:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self._logger.warning(
                    "Websocket forwarding failed", event_id=event_id, error=str(e)
                )
            self._broadcaster.unsubscribe(subscription)
        return ws

    async def _forward(
        self, subscription: Subscription, ws: web.WebSocketResponse
    ) -> None:
        while not ws.closed:
            notification = await subscription.get()
            try:
                await ws.send_json(notification)
            except ConnectionResetError:
                return
