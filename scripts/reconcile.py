"""Reconciliation script that frees users stuck in a reservation.

Meant to run from a scheduler (e.g. daily at 3am) when the HTTP endpoint
`POST /internal/reconcile` is not reachable from it.
"""

import asyncio

from revealmatch.api.dependencies import ServiceContainer
from revealmatch.utils.cache import RedisClient
from revealmatch.utils.database import Database, get_session_factory
from revealmatch.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def reconcile() -> int:
    """Run one sweep and return the number of users freed."""
    container = ServiceContainer.from_session_factory(get_session_factory())
    try:
        freed = await container.reconciliation.reconcile()
    finally:
        await RedisClient.close()
        await Database.dispose()

    if freed == 0:
        logger.info("Reconciliation complete. No stuck users.")
    else:
        logger.info(f"Reconciliation complete. Freed {freed} users.")
    return freed


if __name__ == "__main__":
    configure_logging()
    asyncio.run(reconcile())
