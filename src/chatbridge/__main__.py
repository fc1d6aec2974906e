"""Application entry point for chatbridge."""

import argparse
import asyncio
import os
import signal
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import aiohttp
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from chatbridge.application.handlers.payload_parsers import create_parser_registry
from chatbridge.application.services.channel_service import ChannelService
from chatbridge.application.services.chat_service import ChatService
from chatbridge.application.services.connector_service import ConnectorService
from chatbridge.application.services.external_bridge_service import (
    ExternalBridgeService,
)
from chatbridge.application.services.webhook_processor import WebhookProcessor
from chatbridge.config import (
    AppConfig,
    ConfigError,
    ConfigFileNotFoundError,
    load_config,
)
from chatbridge.domain.entities.inbound_delivery import InboundDelivery
from chatbridge.infrastructure import Database, InboundDeliveryQueue
from chatbridge.infrastructure.logging import get_logger, setup_logging
from chatbridge.infrastructure.persistence import (
    SqliteChannelRepository,
    SqliteChatMessageRepository,
    SqliteEventRepository,
    SqliteExternalChannelMappingRepository,
    SqlitePositionRepository,
)
from chatbridge.infrastructure.platforms import PlatformRegistry, create_platform_registry
from chatbridge.infrastructure.realtime import RealtimeBroadcaster
from chatbridge.infrastructure.retry import RetryOptions, RetryPolicy
from chatbridge.presentation.http.api import AdminApi
from chatbridge.presentation.http.server import HTTPServer

# Shutdown timeout in seconds
SHUTDOWN_TIMEOUT = 30

MOCK_PLATFORMS_ENV = "MOCK_PLATFORMS"


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="chatbridge - Event channels bridged to external chat platforms"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to configuration file (default: config.yaml)",
    )
    return parser.parse_args(args)


def use_mock_platforms() -> bool:
    """Return True if MOCK_PLATFORMS asks for in-memory platform adapters."""
    return os.environ.get(MOCK_PLATFORMS_ENV, "").lower() in ("1", "true", "yes")


def webhook_base_url(config: AppConfig) -> str:
    """Return the base URL platforms should post webhooks to."""
    if config.server.public_base_url:
        return config.server.public_base_url
    return f"http://{config.server.host}:{config.server.port}"


@dataclass
class Services:
    """Wired application services."""

    broadcaster: RealtimeBroadcaster
    channels: ChannelService
    bridge: ExternalBridgeService
    chat: ChatService
    connectors: ConnectorService
    processor: WebhookProcessor


def build_services(
    config: AppConfig, database: Database, platforms: PlatformRegistry
) -> Services:
    """Wire repositories and services over an initialized database.

    Args:
        config: Application configuration.
        database: Database the repositories use.
        platforms: Platform adapters for outbound calls.

    Returns:
        The wired services.
    """
    channel_repository = SqliteChannelRepository(database)
    message_repository = SqliteChatMessageRepository(database)
    mapping_repository = SqliteExternalChannelMappingRepository(database)
    event_repository = SqliteEventRepository(database)
    position_repository = SqlitePositionRepository(database)

    broadcaster = RealtimeBroadcaster(
        logger=get_logger("realtime"), queue_size=config.bridge.viewer_queue_size
    )
    channels = ChannelService(
        channels=channel_repository,
        messages=message_repository,
        mappings=mapping_repository,
        positions=position_repository,
        broadcaster=broadcaster,
        logger=get_logger("channel_service"),
    )
    bridge = ExternalBridgeService(
        mappings=mapping_repository,
        channels=channel_repository,
        messages=message_repository,
        events=event_repository,
        channel_service=channels,
        platforms=platforms,
        retry_policy=RetryPolicy(
            logger=get_logger("retry"),
            options=RetryOptions.from_config(config.retry),
        ),
        broadcaster=broadcaster,
        config=config.bridge,
        webhook_base_url=webhook_base_url(config),
        logger=get_logger("external_bridge"),
    )
    chat = ChatService(
        channels=channel_repository,
        messages=message_repository,
        bridge=bridge,
        broadcaster=broadcaster,
        logger=get_logger("chat_service"),
    )
    connectors = ConnectorService(
        mappings=mapping_repository,
        events=event_repository,
        bridge=bridge,
        logger=get_logger("connector_service"),
    )
    processor = WebhookProcessor(bridge=bridge, logger=get_logger("webhook"))
    return Services(
        broadcaster=broadcaster,
        channels=channels,
        bridge=bridge,
        chat=chat,
        connectors=connectors,
        processor=processor,
    )


async def run_main_loop(
    delivery_queue: InboundDeliveryQueue,
    processor: WebhookProcessor,
    shutdown_event: asyncio.Event,
    running_check: Callable[[], bool],
    logger: BoundLogger,
) -> None:
    """Run the main webhook delivery processing loop.

    Args:
        delivery_queue: Queue of accepted webhook deliveries.
        processor: WebhookProcessor instance for processing deliveries.
        shutdown_event: Event that signals shutdown.
        running_check: Callable that returns whether the loop should continue.
        logger: Logger instance.
    """
    while running_check():
        # Create tasks for dequeue and shutdown wait
        dequeue_task = asyncio.create_task(delivery_queue.dequeue())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        try:
            # Wait for either dequeue to return or shutdown to be signaled
            done, pending = await asyncio.wait(
                [dequeue_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED,
            )

            # Cancel pending tasks
            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            # Check if shutdown was signaled
            if shutdown_task in done:
                # If dequeue also completed, process that delivery
                if dequeue_task in done:
                    delivery = dequeue_task.result()
                    await _process_delivery(delivery, processor, delivery_queue, logger)
                break

            # Process the delivery
            if dequeue_task in done:
                delivery = dequeue_task.result()
                await _process_delivery(delivery, processor, delivery_queue, logger)

        except asyncio.CancelledError:
            # Clean up on cancellation
            dequeue_task.cancel()
            shutdown_task.cancel()
            try:
                await dequeue_task
            except asyncio.CancelledError:
                pass
            try:
                await shutdown_task
            except asyncio.CancelledError:
                pass
            raise


async def _process_delivery(
    delivery: InboundDelivery,
    processor: WebhookProcessor,
    delivery_queue: InboundDeliveryQueue,
    logger: BoundLogger,
) -> None:
    """Process a single delivery.

    Args:
        delivery: Delivery to process.
        processor: WebhookProcessor instance.
        delivery_queue: InboundDeliveryQueue instance for marking done.
        logger: Logger instance.
    """
    try:
        await processor.process(delivery)
    except Exception as e:
        logger.error(
            "Error processing delivery", delivery_id=delivery.id, error=str(e)
        )
    finally:
        delivery_queue.mark_done(delivery)


async def drain_deliveries(
    delivery_queue: InboundDeliveryQueue,
    processor: WebhookProcessor,
    logger: BoundLogger,
    timeout: float,
) -> int:
    """Process deliveries still queued at shutdown.

    Every queued delivery was already acknowledged to its platform.

    Args:
        delivery_queue: Queue of accepted webhook deliveries.
        processor: WebhookProcessor instance for processing deliveries.
        logger: Logger instance.
        timeout: Maximum time in seconds to spend draining.

    Returns:
        Number of deliveries left unprocessed.
    """

    async def drain() -> None:
        while True:
            delivery = delivery_queue.dequeue_nowait()
            if delivery is None:
                return
            await _process_delivery(delivery, processor, delivery_queue, logger)

    try:
        await asyncio.wait_for(drain(), timeout=timeout)
    except TimeoutError:
        abandoned = delivery_queue.pending_count
        logger.warning(
            "Delivery drain timed out, deliveries abandoned",
            abandoned=abandoned,
            timeout_seconds=timeout,
        )
        return abandoned
    return 0


async def main_async(
    config_path: Path,
    shutdown_timeout: float = SHUTDOWN_TIMEOUT,
) -> int:
    """Async main function.

    Args:
        config_path: Path to configuration file.
        shutdown_timeout: Maximum time in seconds to wait for graceful shutdown.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    # 1. Load configuration
    config = load_config(config_path)

    # 2. Initialize logging
    setup_logging(config.logging)
    logger = get_logger(__name__)
    logger.info("Starting chatbridge", config_path=str(config_path))

    # 3. Initialize storage and outbound HTTP
    database = Database(config.database.url)
    await database.initialize()
    session = aiohttp.ClientSession()

    # 4. Initialize components
    platforms = create_platform_registry(
        config, session, get_logger("platforms"), use_mock=use_mock_platforms()
    )
    services = build_services(config, database, platforms)
    delivery_queue = InboundDeliveryQueue()
    http_server = HTTPServer(
        config=config.server,
        delivery_queue=delivery_queue,
        parsers=create_parser_registry(),
        broadcaster=services.broadcaster,
        logger=get_logger("http_server"),
        api=AdminApi(
            channels=services.channels,
            chat=services.chat,
            bridge=services.bridge,
            connectors=services.connectors,
            logger=get_logger("admin_api"),
        ),
        auth=config.auth,
    )

    # 5. Setup shutdown handling
    running = True
    shutdown_event = asyncio.Event()

    def is_running() -> bool:
        return running

    def signal_handler(sig: signal.Signals) -> None:
        nonlocal running
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        running = False
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        # 6. Start HTTP server
        await http_server.start()
        logger.info(
            "chatbridge started successfully",
            webhook_base_url=webhook_base_url(config),
        )

        # 7. Run main loop
        await run_main_loop(
            delivery_queue=delivery_queue,
            processor=services.processor,
            shutdown_event=shutdown_event,
            running_check=is_running,
            logger=logger,
        )

    except asyncio.CancelledError:
        logger.info("Main loop cancelled")

    finally:
        # 8. Shutdown
        logger.info("Shutting down")
        try:
            await asyncio.wait_for(http_server.stop(), timeout=shutdown_timeout)
            await drain_deliveries(
                delivery_queue, services.processor, logger, shutdown_timeout
            )
            await asyncio.wait_for(services.chat.drain(), timeout=shutdown_timeout)
            logger.info("chatbridge stopped")
        except TimeoutError:
            logger.warning(
                "Shutdown timed out, forcing termination",
                timeout_seconds=shutdown_timeout,
            )
        finally:
            await session.close()
            await database.close()

    return 0


def main() -> None:
    """Main entry point."""
    args = parse_args()
    config_path = args.config

    try:
        exit_code = asyncio.run(main_async(config_path))
        sys.exit(exit_code)
    except ConfigFileNotFoundError:
        print(f"Error: {config_path} not found", file=sys.stderr)
        sys.exit(1)
    except ConfigError as e:
        print(f"Error: Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Error: Configuration validation error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
