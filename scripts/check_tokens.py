#!/usr/bin/env python3
"""List registered push tokens with their tokens truncated.

Usage:
    python scripts/check_tokens.py
"""

import asyncio
import logging
import sys

from alert_relay.database import async_session, close_db, init_db
from alert_relay.services.registration import RegistrationService
from alert_relay.services.registry_store import RegistryStore

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("check_tokens")


async def main() -> int:
    try:
        await init_db()
        summaries = await RegistrationService(RegistryStore(async_session)).list_token_summaries()
    except Exception as e:
        logger.error(f"Error checking tokens: {e}")
        return 1
    finally:
        await close_db()

    logger.info(f"Total registrations found: {len(summaries)}")
    for summary in summaries:
        logger.info(
            f"{summary['id'][:24]:<24}  {summary['token']:<24}  "
            f"created={summary['createdAt'] or 'N/A'}  last_used={summary['lastUsed'] or 'N/A'}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
