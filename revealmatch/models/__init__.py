"""Data models for the RevealMatch service."""

from revealmatch.models.conversation import (
    Conversation,
    ConversationStartOutcome,
    ConversationStartResult,
    Message,
    MessagePage,
    SentMessage,
)
from revealmatch.models.credit import (
    CanStartReason,
    CanStartResult,
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from revealmatch.models.match import Match, MatchCandidate, MatchOutcome, MatchResult, MatchTier
from revealmatch.models.profile import CandidateFilter, CompatibilityAnswers, Gender, Profile

__all__ = [
    "CandidateFilter",
    "CanStartReason",
    "CanStartResult",
    "CompatibilityAnswers",
    "Conversation",
    "ConversationStartOutcome",
    "ConversationStartResult",
    "CreditTransaction",
    "Gender",
    "Match",
    "MatchCandidate",
    "MatchOutcome",
    "MatchResult",
    "MatchTier",
    "Message",
    "MessagePage",
    "Profile",
    "SentMessage",
    "TransactionStatus",
    "TransactionType",
]
