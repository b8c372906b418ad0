"""Interfaces of the external stores the engine depends on.

Every operation is awaited and may fail with a `DatabaseError` (or its
`StoreTimeoutError` subclass). Operations documented as conditional return
a boolean instead of raising when their precondition does not hold.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Set

from revealmatch.models import (
    CandidateFilter,
    Conversation,
    CreditTransaction,
    Match,
    Message,
    Profile,
    TransactionStatus,
)


class ProfileStore(Protocol):
    async def get_profile(self, user_id: str) -> Profile:
        """Return a profile or raise NotFoundError."""
        ...

    async def find_candidates(self, candidate_filter: CandidateFilter) -> List[Profile]:
        """Return unreserved, unblocked profiles satisfying the filter, in a stable order."""
        ...

    async def try_reserve(self, user_id: str, now: datetime) -> bool:
        """Set in_conversation only if it is currently false. True when this call set it."""
        ...

    async def release(self, user_ids: List[str], reserved_before: Optional[datetime] = None) -> int:
        """
        Clear in_conversation for the given users; return how many were reserved.

        With `reserved_before`, only reservations older than that time are cleared.
        """
        ...

    async def find_reserved(self, reserved_before: datetime) -> List[str]:
        """Ids of users reserved before the given time."""
        ...


class MatchStore(Protocol):
    async def insert_match(self, match: Match) -> Match: ...

    async def get_match(self, match_id: str) -> Match:
        """Return a match or raise NotFoundError."""
        ...

    async def get_active_match_for_user(self, user_id: str) -> Optional[Match]: ...

    async def deactivate_match(self, match_id: str, now: datetime) -> bool:
        """Mark a match inactive. False when it already was."""
        ...

    async def find_unstarted_matches(self, created_before: datetime) -> List[Match]:
        """Active matches created before the given time that never got a conversation."""
        ...


class CreditStore(Protocol):
    async def insert_transaction(self, transaction: CreditTransaction) -> CreditTransaction:
        """Insert a transaction; raise PendingTransactionExistsError on a second pending one."""
        ...

    async def get_transaction(self, transaction_id: str, user_id: str) -> Optional[CreditTransaction]: ...

    async def update_transaction_status(
        self,
        transaction_id: str,
        user_id: str,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        description: Optional[str] = None,
    ) -> bool:
        """Move a transaction between states only if it is in `from_status`."""
        ...

    async def confirm_and_debit(self, transaction_id: str, user_id: str, amount: int) -> bool:
        """
        Atomically move a pending transaction to confirmed and debit `amount` credits.

        Returns False (and debits nothing) when the transaction is not pending.
        Raises InsufficientCreditsError, leaving the transaction pending, when
        the balance is too low.
        """
        ...

    async def find_pending_for_user(self, user_id: str) -> Optional[CreditTransaction]: ...

    async def get_balance(self, user_id: str) -> int: ...

    async def list_transactions(self, user_id: str, limit: int) -> List[CreditTransaction]:
        """Newest first."""
        ...


class ConversationStore(Protocol):
    async def insert_conversation(self, conversation: Conversation) -> Conversation:
        """Store a conversation or raise ConversationExistsError if its match already has an active one."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Return a conversation or raise NotFoundError."""
        ...

    async def get_active_for_match(self, match_id: str) -> Optional[Conversation]: ...

    async def update_conversation_progress(
        self, conversation_id: str, step: int, cap: int, now: datetime
    ) -> Optional[Conversation]:
        """
        Atomically add one message and `step` progress (capped) to an active conversation.

        Returns None when the conversation is missing or inactive.
        """
        ...

    async def deactivate_conversation(self, conversation_id: str, ended_by: Optional[str], now: datetime) -> bool: ...

    async def insert_message(self, message: Message) -> Message: ...

    async def list_messages(
        self,
        conversation_id: str,
        before: Optional[datetime],
        limit: int,
        before_id: Optional[str] = None,
    ) -> List[Message]:
        """Newest first, ordered by (created_at, id); strictly older than (before, before_id) when given."""
        ...


class BlockStore(Protocol):
    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        """True when either user has blocked the other."""
        ...

    async def blocked_ids(self, user_id: str) -> Set[str]:
        """Users the given user blocked, plus users who blocked them."""
        ...


class SubscriptionStore(Protocol):
    async def is_subscribed(self, user_id: str) -> bool: ...
