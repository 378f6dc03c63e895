"""
Command-line seeding.

Usage:
    serenity-rbac-seed [--environment development] [--create-tables]
"""

import argparse
import asyncio
import json
import sys

import structlog

from serenity_rbac.access import AccessControl
from serenity_rbac.core.config import get_settings
from serenity_rbac.core.database import close_db, create_session_factory, get_engine, init_db
from serenity_rbac.core.errors import RBACError
from serenity_rbac.core.logging import configure_logging

logger = structlog.get_logger()


async def seed_command(args) -> int:
    """Seed the catalog, permission sets and well-known roles."""
    engine = get_engine()
    try:
        if args.create_tables:
            await init_db(engine)

        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            access = AccessControl.from_settings(session)
            try:
                result = await access.run_seed(args.environment)
                await session.commit()
            except RBACError as e:
                await session.rollback()
                logger.error("Seeding failed", error_code=e.code, message=e.message)
                return 1
    finally:
        await close_db(engine)

    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed access-control data")
    parser.add_argument(
        "--environment",
        default=None,
        help="Overrides ENVIRONMENT (development also seeds debug permissions)",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before seeding",
    )
    args = parser.parse_args(argv)

    configure_logging(get_settings())
    return asyncio.run(seed_command(args))


if __name__ == "__main__":
    sys.exit(main())
