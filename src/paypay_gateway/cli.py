#!/usr/bin/env python3
"""Command-line interface for the PayPay gateway.

Usage:
    python -m paypay_gateway.cli init-db
    python -m paypay_gateway.cli check-settings
    python -m paypay_gateway.cli subscribe
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import GatewaySettings
from .database import DatabaseManager, WebhookSubscriptionRepository, get_database_url
from .exceptions import ProcessorError, SettingsError
from .processor import ProcessorClient, get_processor
from .subscriptions import WebhookSubscriber

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def init_db_async(database_url: Optional[str] = None) -> int:
    """Create the PayPay tables.

    Returns:
        Exit code.
    """
    manager = DatabaseManager(database_url or get_database_url())
    try:
        await manager.initialize(create_tables=True)
        logger.info("PayPay tables are ready")
    finally:
        await manager.shutdown()
    return 0


def check_settings(settings: GatewaySettings) -> int:
    """Validate the PAYPAY_* settings.

    Returns:
        0 when valid, 1 otherwise.
    """
    try:
        settings.validate_credentials()
    except SettingsError as e:
        for error in e.errors:
            print(f"error: {error}")
        return 1

    print(f"Settings are valid for the {settings.environment} environment")
    return 0


async def subscribe_async(
    settings: GatewaySettings,
    processor: Optional[ProcessorClient] = None,
    database_url: Optional[str] = None,
) -> int:
    """Subscribe the webhook actions and record them.

    Returns:
        0 on success, 1 for invalid settings, 2 when PayPay refused.
    """
    try:
        settings.validate_credentials()
    except SettingsError:
        return 1

    processor = processor or get_processor(settings)
    manager = DatabaseManager(database_url or get_database_url())
    await manager.initialize(create_tables=True)

    try:
        async with manager.session() as session:
            subscriber = WebhookSubscriber(processor, settings, WebhookSubscriptionRepository(session))
            results = await subscriber.subscribe_all()
    except ProcessorError as e:
        logger.error(f"Webhook subscription failed: {e}")
        return 2
    finally:
        await manager.shutdown()

    for result in results:
        print(f"{result.action}: subscribed to {settings.webhook_url}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="paypay-gateway",
        description="PayPay gateway administration tools.",
    )
    parser.add_argument(
        "--database-url",
        help="Database URL (default: DATABASE_URL or local SQLite file)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("init-db", help="Create the PayPay tables")
    subparsers.add_parser("check-settings", help="Validate the PAYPAY_* settings")
    subparsers.add_parser("subscribe", help="Subscribe the PayPay webhook actions")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == "init-db":
        return asyncio.run(init_db_async(parsed_args.database_url))

    settings = GatewaySettings.from_env()

    if parsed_args.command == "check-settings":
        return check_settings(settings)

    if parsed_args.command == "subscribe":
        return asyncio.run(subscribe_async(settings, database_url=parsed_args.database_url))

    return 0


if __name__ == "__main__":
    sys.exit(main())
