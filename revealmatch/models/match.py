"""Match model for the RevealMatch service."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from revealmatch.models.profile import Profile


class MatchTier(str, Enum):
    """
    Match tier enumeration.

    The selection strategy that produced a match, in the order they are tried.
    """

    PROXIMITY = "proximity"  # Within the requester's search radius
    LOCALITY = "locality"  # Same city, distance unknown
    GLOBAL = "global"  # Anywhere


class MatchOutcome(str, Enum):
    """Outcome of a match request."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    ALREADY_IN_CONVERSATION = "already_in_conversation"


class Match(BaseModel):
    """
    Match model.

    An immutable pairing between the requester (user1) and the counterpart
    (user2). Only `is_active` and `ended_at` change after creation.
    """

    id: str
    user1_id: str
    user2_id: str
    compatibility_score: int = Field(ge=0, le=100)
    distance_km: Optional[float] = None
    tier: MatchTier
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None

    def has_participant(self, user_id: str) -> bool:
        """Check whether a user is one of the two matched users."""
        return user_id in (self.user1_id, self.user2_id)

    def other_participant(self, user_id: str) -> str:
        """Return the id of the participant that is not `user_id`."""
        return self.user2_id if user_id == self.user1_id else self.user1_id


class MatchCandidate(BaseModel):
    """A selected counterpart together with how it was selected."""

    candidate: Profile
    score: int
    distance_km: Optional[float] = None
    tier: MatchTier


class MatchResult(BaseModel):
    """
    Result of a match request.

    "No match" and "already in conversation" are ordinary outcomes, not
    errors, so callers can tell them apart from failures.
    """

    outcome: MatchOutcome
    match: Optional[Match] = None
    candidate: Optional[Profile] = None

    @property
    def matched(self) -> bool:
        """True when a match was created."""
        return self.outcome == MatchOutcome.MATCHED
