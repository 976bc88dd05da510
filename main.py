#!/usr/bin/env python3
"""Main entry point for ReferralGuard."""

import argparse
import asyncio

from referral_guard.common.logging import configure_logging, get_logger
from referral_guard.common.config import Config
from referral_guard.common.exceptions import ReferralGuardException
from referral_guard.storage import PostgresReferralStore

logger = get_logger(__name__)


async def init_schema(config: Config) -> None:
    """Apply the SQL schema to REFGUARD_DATABASE_URL."""
    if not config.database_url:
        raise SystemExit("REFGUARD_DATABASE_URL is not set")

    store = await PostgresReferralStore.connect(
        config.database_url,
        min_size=config.db_pool_min_size,
        max_size=config.db_pool_max_size,
    )
    try:
        await store.init_schema()
        logger.info("Schema applied")
    finally:
        await store.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="ReferralGuard referral fraud engine")
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "init-schema"],
        help="info: show configuration; init-schema: create database tables",
    )
    args = parser.parse_args()

    try:
        config = Config()
        configure_logging(config.effective_log_level)
        logger.setLevel(config.effective_log_level)
        logger.info(f"ReferralGuard initialized in {config.environment.value} mode")
        logger.info(f"Project root: {config.project_root}")

        thresholds = config.load_thresholds()
        logger.info(f"Detection thresholds: {thresholds.model_dump()}")

        if args.command == "init-schema":
            asyncio.run(init_schema(config))
    except ReferralGuardException as e:
        logger.error(f"{e.code}: {e.message}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
