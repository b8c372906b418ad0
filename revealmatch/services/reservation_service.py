"""Match reservation for the RevealMatch service."""

import asyncio
import uuid
from typing import Iterable, List, Optional

import sentry_sdk

from revealmatch.models import Match, MatchOutcome, MatchResult
from revealmatch.services.candidate_pool import CandidatePool
from revealmatch.services.credit_service import CreditService
from revealmatch.services.matching_service import select_match
from revealmatch.stores.base import MatchStore, ProfileStore
from revealmatch.utils.cache import delete_cache, get_cache_model, set_cache
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import (
    ForbiddenError,
    MatchingError,
    ReservationConflictError,
    RevealMatchError,
    TransactionStateError,
)
from revealmatch.utils.logging import get_logger, log_error

logger = get_logger(__name__)

# Cache keys
CURRENT_MATCH_CACHE_KEY = "match:current:{user_id}"

SUPERSEDED_REASON = "Superseded by a new match"


async def invalidate_current_match(user_ids: Iterable[str]) -> None:
    """Forget the cached current match of the given users."""
    for user_id in user_ids:
        await delete_cache(CURRENT_MATCH_CACHE_KEY.format(user_id=user_id))


class ReservationService:
    """
    Coordinates a match request.

    The requester is reserved before selection and the counterpart right
    after it, both through the profile store's conditional reservation, so a
    user can never be reserved by two requests at once. Anything that goes
    wrong after the requester is reserved releases exactly the reservations
    this request made (and deactivates its match) before the error surfaces.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        match_store: MatchStore,
        pool: CandidatePool,
        credits: CreditService,
    ) -> None:
        self.profile_store = profile_store
        self.match_store = match_store
        self.pool = pool
        self.credits = credits

    async def find_match(self, user_id: str) -> MatchResult:
        """
        Find and reserve a match for a user.

        Args:
            user_id (str): The requesting user.

        Returns:
            MatchResult: `matched` with the match and counterpart, or the
            expected outcomes `no_match` and `already_in_conversation`.

        Raises:
            NotFoundError: If the requester has no profile.
            ForbiddenError: If the requester is blocked.
            ReservationConflictError: If the counterpart was reserved concurrently.
            MatchingError: If any later step failed; all reservations are released.
        """
        with sentry_sdk.start_span(op="match.find", name=user_id) as span:
            requester = await self.profile_store.get_profile(user_id)
            if requester.is_blocked:
                raise ForbiddenError("Blocked users cannot request matches", details={"user_id": user_id})
            if requester.in_conversation:
                span.set_data("outcome", MatchOutcome.ALREADY_IN_CONVERSATION.value)
                return MatchResult(outcome=MatchOutcome.ALREADY_IN_CONVERSATION)

            if not await self.profile_store.try_reserve(user_id, utcnow()):
                logger.info("Requester reserved by a concurrent request", user_id=user_id)
                span.set_data("outcome", MatchOutcome.ALREADY_IN_CONVERSATION.value)
                return MatchResult(outcome=MatchOutcome.ALREADY_IN_CONVERSATION)

            reserved: List[str] = [user_id]
            match: Optional[Match] = None
            try:
                candidates = await self.pool.get_candidates(requester)
                selected = select_match(requester, candidates)
                if selected is None:
                    await self._rollback(reserved, None)
                    logger.info("No match found", user_id=user_id, pool_size=len(candidates))
                    span.set_data("outcome", MatchOutcome.NO_MATCH.value)
                    return MatchResult(outcome=MatchOutcome.NO_MATCH)

                counterpart = selected.candidate
                if not await self.profile_store.try_reserve(counterpart.id, utcnow()):
                    raise ReservationConflictError(
                        "Selected user was reserved by another request",
                        details={"user_id": user_id, "counterpart_id": counterpart.id},
                    )
                reserved.append(counterpart.id)

                match = Match(
                    id=str(uuid.uuid4()),
                    user1_id=user_id,
                    user2_id=counterpart.id,
                    compatibility_score=selected.score,
                    distance_km=selected.distance_km,
                    tier=selected.tier,
                    is_active=True,
                    created_at=utcnow(),
                )
                await self.match_store.insert_match(match)

                stale = await self.credits.get_pending(user_id)
                if stale is not None:
                    logger.warning(
                        "Cancelling stale pending transaction",
                        user_id=user_id,
                        transaction_id=stale.id,
                        match_id=stale.match_id,
                    )
                    await self.credits.cancel(stale.id, user_id, SUPERSEDED_REASON)
                await self.credits.create_pending(user_id, match.id)
            except (Exception, asyncio.CancelledError) as e:
                await self._rollback(reserved, match)
                if isinstance(e, (asyncio.CancelledError, MatchingError, TransactionStateError)):
                    raise
                span.set_status("internal_error")
                log_error(logger, e, "Match attempt failed", {"user_id": user_id})
                raise MatchingError(
                    "Failed to create match, please try again",
                    details={"user_id": user_id, "error": str(e)},
                ) from e

            await invalidate_current_match(reserved)
            logger.info(
                "Match created",
                match_id=match.id,
                user1_id=match.user1_id,
                user2_id=match.user2_id,
                tier=match.tier.value,
                score=match.compatibility_score,
                distance_km=match.distance_km,
            )
            span.set_data("outcome", MatchOutcome.MATCHED.value)
            span.set_data("tier", match.tier.value)
            return MatchResult(outcome=MatchOutcome.MATCHED, match=match, candidate=counterpart)

    async def _rollback(self, reserved: List[str], match: Optional[Match]) -> None:
        # Shielded so a cancelled request still frees its reservations
        await asyncio.shield(self._release(reserved, match))

    async def _release(self, reserved: List[str], match: Optional[Match]) -> None:
        if match is not None:
            try:
                await self.match_store.deactivate_match(match.id, utcnow())
            except RevealMatchError as e:
                log_error(logger, e, "Failed to deactivate match during rollback", {"match_id": match.id})
        released = await self.profile_store.release(reserved)
        logger.info("Reservations released", user_ids=reserved, released=released)

    async def get_current_match(self, user_id: str) -> Optional[Match]:
        """
        Get the user's active match.

        Args:
            user_id (str): The user.

        Returns:
            Optional[Match]: The active match or None.
        """
        with sentry_sdk.start_span(op="match.current", name=user_id) as span:
            cache_key = CURRENT_MATCH_CACHE_KEY.format(user_id=user_id)
            cached = await get_cache_model(cache_key, Match)
            if cached is not None and cached.is_active:
                span.set_data("source", "cache")
                return cached

            match = await self.match_store.get_active_match_for_user(user_id)
            if match is not None:
                await set_cache(cache_key, match)
            span.set_data("source", "database")
            return match
