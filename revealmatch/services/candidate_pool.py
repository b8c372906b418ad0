"""Candidate pool retrieval for the RevealMatch service."""

from typing import List

import sentry_sdk

from revealmatch.config import settings
from revealmatch.models import CandidateFilter, Profile
from revealmatch.stores.base import BlockStore, ProfileStore
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


class CandidatePool:
    """
    Builds the list of profiles a requester may be matched with.

    Hard constraints (mutual gender preference, availability, age bounds) are
    pushed down to the profile store; blocks are applied here in both
    directions. The store's ordering (creation time, then id) is preserved so
    selection over the pool is deterministic.
    """

    def __init__(self, profile_store: ProfileStore, block_store: BlockStore) -> None:
        self.profile_store = profile_store
        self.block_store = block_store

    def build_filter(self, requester: Profile) -> CandidateFilter:
        """Translate the requester's preferences into a store filter."""
        min_age = requester.min_age if requester.min_age is not None else settings.DEFAULT_MIN_AGE
        max_age = requester.max_age if requester.max_age is not None else settings.DEFAULT_MAX_AGE
        return CandidateFilter(
            gender=requester.looking_for,
            looking_for=requester.gender,
            min_age=min_age,
            max_age=max_age,
            exclude_ids=[requester.id],
        )

    async def get_candidates(self, requester: Profile) -> List[Profile]:
        """
        Get eligible candidates for a requester.

        Args:
            requester (Profile): The user looking for a match.

        Returns:
            List[Profile]: Eligible profiles, in store order.

        Raises:
            DatabaseError: If a store query fails.
        """
        with sentry_sdk.start_span(op="match.candidates", name=requester.id) as span:
            candidate_filter = self.build_filter(requester)
            profiles = await self.profile_store.find_candidates(candidate_filter)
            blocked = await self.block_store.blocked_ids(requester.id)

            candidates = [
                profile
                for profile in profiles
                if profile.id != requester.id
                and profile.id not in blocked
                and not profile.in_conversation
                and not profile.is_blocked
            ]

            span.set_data("count", len(candidates))
            logger.debug(
                "Candidate pool built",
                user_id=requester.id,
                fetched=len(profiles),
                eligible=len(candidates),
            )
            return candidates
