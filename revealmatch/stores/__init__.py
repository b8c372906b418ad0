"""Persistence interfaces and their SQLAlchemy implementations."""

from revealmatch.stores.base import (
    BlockStore,
    ConversationStore,
    CreditStore,
    MatchStore,
    ProfileStore,
    SubscriptionStore,
)

__all__ = [
    "BlockStore",
    "ConversationStore",
    "CreditStore",
    "MatchStore",
    "ProfileStore",
    "SubscriptionStore",
]
