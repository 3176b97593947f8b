"""
Seed the permission catalog into the ``permissions`` table.

Idempotent: existing names are skipped. Run with
``python -m roteiro_server.scripts.seed_permissions``.
"""

import argparse
import asyncio

import structlog

from roteiro_server.core.config import get_settings
from roteiro_server.core.database import get_session_context, init_db
from roteiro_server.core.logging import configure_logging
from roteiro_server.services.permissions import seed_permissions

log = structlog.get_logger()


async def run(create_tables: bool = False) -> tuple[int, int]:
    if create_tables:
        await init_db()
    async with get_session_context() as session:
        return await seed_permissions(session)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the permission catalog.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (development only)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    created, skipped = asyncio.run(run(args.create_tables))
    print(f"Permissions created: {created}, skipped: {skipped}")
