"""Tiered match selection for the RevealMatch service."""

from typing import List, Optional, Sequence

import sentry_sdk

from revealmatch.config import settings
from revealmatch.models import MatchCandidate, MatchTier, Profile
from revealmatch.services.compatibility import calculate_compatibility_score
from revealmatch.utils.geo import haversine_distance, is_within_radius
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


def _score(requester: Profile, candidate: Profile) -> int:
    return calculate_compatibility_score(requester.answers, candidate.answers)


def select_proximity(requester: Profile, pool: Sequence[Profile]) -> Optional[MatchCandidate]:
    """
    Pick the best candidate within the requester's search radius.

    Skipped (returns None) when the requester has no usable coordinate.
    Candidates without a coordinate are never considered. Ties on score go
    to the closer candidate.
    """
    if not requester.has_coordinates:
        return None

    radius = requester.max_distance_km or settings.DEFAULT_MAX_DISTANCE_KM
    best: Optional[MatchCandidate] = None

    for candidate in pool:
        coordinates = (requester.latitude, requester.longitude, candidate.latitude, candidate.longitude)
        if not is_within_radius(*coordinates, radius):
            continue
        distance = haversine_distance(*coordinates)

        score = _score(requester, candidate)
        if (
            best is None
            or score > best.score
            or (score == best.score and best.distance_km is not None and distance < best.distance_km)
        ):
            best = MatchCandidate(candidate=candidate, score=score, distance_km=distance, tier=MatchTier.PROXIMITY)

    return best


def select_locality(requester: Profile, pool: Sequence[Profile]) -> Optional[MatchCandidate]:
    """Pick the best candidate in the requester's city (case-insensitive)."""
    if not requester.city or not requester.city.strip():
        return None

    city = requester.city.strip().casefold()
    best: Optional[MatchCandidate] = None

    for candidate in pool:
        if not candidate.city or candidate.city.strip().casefold() != city:
            continue
        score = _score(requester, candidate)
        # Strict comparison keeps the earliest candidate on ties
        if best is None or score > best.score:
            best = MatchCandidate(candidate=candidate, score=score, distance_km=None, tier=MatchTier.LOCALITY)

    return best


def select_global(
    requester: Profile, pool: Sequence[Profile], cap: Optional[int] = None
) -> Optional[MatchCandidate]:
    """
    Pick the best candidate from anywhere.

    The pool is ranked by score (stable, so pool order breaks ties) before
    being truncated to `cap`, then the head of the truncated list wins.
    """
    if not pool:
        return None

    limit = cap or settings.GLOBAL_TIER_CAP
    scored: List[MatchCandidate] = [
        MatchCandidate(candidate=candidate, score=_score(requester, candidate), distance_km=None, tier=MatchTier.GLOBAL)
        for candidate in pool
    ]
    ranked = sorted(scored, key=lambda c: c.score, reverse=True)[:limit]
    return ranked[0] if ranked else None


def select_match(requester: Profile, pool: Sequence[Profile]) -> Optional[MatchCandidate]:
    """
    Select a counterpart for the requester from a candidate pool.

    Tries proximity, then locality, then global, returning the first tier
    that yields a candidate. None means "no match" and is not an error.

    Args:
        requester (Profile): The user looking for a match.
        pool (Sequence[Profile]): Eligible candidates, in store order.

    Returns:
        Optional[MatchCandidate]: The selected candidate with its tier, score and distance.
    """
    with sentry_sdk.start_span(op="match.select", name=requester.id) as span:
        span.set_data("pool_size", len(pool))

        for selector in (select_proximity, select_locality, select_global):
            selected = selector(requester, pool)
            if selected is not None:
                span.set_data("tier", selected.tier.value)
                span.set_data("score", selected.score)
                logger.debug(
                    "Match candidate selected",
                    user_id=requester.id,
                    candidate_id=selected.candidate.id,
                    tier=selected.tier.value,
                    score=selected.score,
                    distance_km=selected.distance_km,
                )
                return selected

        span.set_data("tier", None)
        logger.debug("No match candidate found", user_id=requester.id, pool_size=len(pool))
        return None
