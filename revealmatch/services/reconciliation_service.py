"""Reconciliation sweep for the RevealMatch service."""

from datetime import datetime, timedelta
from typing import List, Optional

import sentry_sdk

from revealmatch.config import settings
from revealmatch.services.credit_service import CreditService
from revealmatch.services.reservation_service import invalidate_current_match
from revealmatch.stores.base import MatchStore, ProfileStore
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import TransactionStateError
from revealmatch.utils.logging import get_logger, log_error

logger = get_logger(__name__)

ABANDONED_REASON = "Match abandoned before conversation start"


class ReconciliationService:
    """
    Frees users whose reservation outlived the flow that made it.

    Two kinds of leftovers are cleaned up:

    - matches that stayed active for MATCH_START_WINDOW_SECONDS without a
      conversation are abandoned: the match is deactivated, the payer's
      pending transaction is cancelled and both users are released;
    - reservations older than RESERVATION_GRACE_SECONDS whose user has no
      active match (a crashed or aborted match request) are released.

    Running the sweep again right away frees nobody.
    """

    def __init__(self, profile_store: ProfileStore, match_store: MatchStore, credits: CreditService) -> None:
        self.profile_store = profile_store
        self.match_store = match_store
        self.credits = credits

    async def reconcile(self, now: Optional[datetime] = None) -> int:
        """
        Run the sweep.

        Args:
            now (Optional[datetime]): Reference time; defaults to the current UTC time.

        Returns:
            int: Number of users freed.
        """
        now = now or utcnow()
        with sentry_sdk.start_span(op="reconcile.sweep", name="reconcile") as span:
            abandoned = await self._release_abandoned_matches(
                now - timedelta(seconds=settings.MATCH_START_WINDOW_SECONDS)
            )
            orphaned = await self._release_orphaned_reservations(
                now - timedelta(seconds=settings.RESERVATION_GRACE_SECONDS)
            )

            freed = abandoned + orphaned
            span.set_data("users_freed", freed)
            logger.info("Reconciliation finished", users_freed=freed, abandoned=abandoned, orphaned=orphaned)
            return freed

    async def _release_abandoned_matches(self, created_before: datetime) -> int:
        freed = 0
        for match in await self.match_store.find_unstarted_matches(created_before):
            if not await self.match_store.deactivate_match(match.id, utcnow()):
                continue

            pending = await self.credits.get_pending(match.user1_id)
            if pending is not None and pending.match_id == match.id:
                try:
                    await self.credits.cancel(pending.id, match.user1_id, ABANDONED_REASON)
                except TransactionStateError as e:
                    log_error(logger, e, "Pending transaction changed state during sweep", {"match_id": match.id})

            participants = [match.user1_id, match.user2_id]
            released = await self.profile_store.release(participants)
            await invalidate_current_match(participants)
            freed += released
            logger.info("Abandoned match released", match_id=match.id, released=released)
        return freed

    async def _release_orphaned_reservations(self, reserved_before: datetime) -> int:
        orphans: List[str] = []
        for user_id in await self.profile_store.find_reserved(reserved_before):
            if await self.match_store.get_active_match_for_user(user_id) is None:
                orphans.append(user_id)

        if not orphans:
            return 0

        # Conditional on age so a reservation made since the scan is left alone
        released = await self.profile_store.release(orphans, reserved_before=reserved_before)
        await invalidate_current_match(orphans)
        logger.info("Orphaned reservations released", user_ids=orphans, released=released)
        return released
