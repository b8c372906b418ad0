"""Chat flow for the RevealMatch service."""

import uuid
from datetime import datetime
from typing import Optional

import sentry_sdk

from revealmatch.models import (
    Conversation,
    ConversationStartOutcome,
    ConversationStartResult,
    CreditTransaction,
    Match,
    Message,
    MessagePage,
    SentMessage,
)
from revealmatch.services.conversation_service import ConversationService
from revealmatch.services.credit_service import CreditService
from revealmatch.stores.base import BlockStore, ConversationStore, MatchStore
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import (
    ConversationClosedError,
    ConversationExistsError,
    ForbiddenError,
    InsufficientCreditsError,
    PendingTransactionExistsError,
    TransactionStateError,
    ValidationError,
)
from revealmatch.utils.logging import get_logger, log_error
from revealmatch.utils.security import sanitize_message

logger = get_logger(__name__)

ENDED_BEFORE_FIRST_MESSAGE = "Conversation ended before first message"
SUPERSEDED_REASON = "Superseded by a new conversation"
BLOCKED_REASON = "Match blocked before conversation start"
UNAFFORDABLE_REASON = "Payer could not afford the first message"


class ChatService:
    """
    Ties the credit ledger to the conversation lifecycle.

    The requester of a match (user1) pays for the conversation. Their pending
    transaction is confirmed when the first user message is sent and
    cancelled when the conversation ends before that.
    """

    def __init__(
        self,
        match_store: MatchStore,
        conversation_store: ConversationStore,
        block_store: BlockStore,
        credits: CreditService,
        conversations: ConversationService,
    ) -> None:
        self.match_store = match_store
        self.conversation_store = conversation_store
        self.block_store = block_store
        self.credits = credits
        self.conversations = conversations

    async def _get_participating(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = await self.conversation_store.get_conversation(conversation_id)
        if not conversation.has_participant(user_id):
            raise ForbiddenError(
                "Not a participant of this conversation",
                details={"conversation_id": conversation_id, "user_id": user_id},
            )
        return conversation

    async def _pending_for_match(self, payer: str, match_id: str) -> Optional[CreditTransaction]:
        pending = await self.credits.get_pending(payer)
        if pending is not None and pending.match_id == match_id:
            return pending
        return None

    async def _cancel_pending(self, transaction: CreditTransaction, reason: str) -> None:
        try:
            await self.credits.cancel(transaction.id, transaction.user_id, reason)
        except TransactionStateError as e:
            # A concurrent request moved it first; its outcome stands
            log_error(logger, e, "Pending transaction changed state before cancel", {"reason": reason})

    async def _ensure_pending(self, payer: str, match_id: str) -> None:
        pending = await self.credits.get_pending(payer)
        if pending is not None and pending.match_id == match_id:
            return
        if pending is not None:
            await self._cancel_pending(pending, SUPERSEDED_REASON)

        try:
            await self.credits.create_pending(payer, match_id)
        except PendingTransactionExistsError:
            # A concurrent start for the same match created it
            if await self._pending_for_match(payer, match_id) is None:
                raise

    async def start_conversation(self, user_id: str, match_id: str) -> ConversationStartResult:
        """
        Start the conversation of an active match.

        Concurrent starts for the same match all get the one conversation
        that won the insert.

        Args:
            user_id (str): A participant of the match.
            match_id (str): The match.

        Returns:
            ConversationStartResult: `started` with the conversation, or
            `no_credits` when the paying user can't afford it.

        Raises:
            NotFoundError: If the match does not exist.
            ForbiddenError: If the user is not a participant or the pair is blocked.
            ConversationClosedError: If the match is no longer active.
        """
        with sentry_sdk.start_span(op="chat.start", name=match_id) as span:
            match = await self.match_store.get_match(match_id)
            if not match.has_participant(user_id):
                raise ForbiddenError(
                    "Not a participant of this match", details={"match_id": match_id, "user_id": user_id}
                )
            if not match.is_active:
                raise ConversationClosedError("Match is no longer active", details={"match_id": match_id})

            existing = await self.conversation_store.get_active_for_match(match_id)
            if existing is not None:
                span.set_data("outcome", "existing")
                return ConversationStartResult(outcome=ConversationStartOutcome.STARTED, conversation=existing)

            if await self.block_store.is_blocked(match.user1_id, match.user2_id):
                await self._dissolve_blocked(match)
                raise ForbiddenError("These users cannot chat with each other", details={"match_id": match_id})

            payer = match.user1_id
            decision = await self.credits.can_start(payer)
            if not decision.allowed:
                logger.info("Conversation start refused", match_id=match_id, payer=payer, reason=decision.reason.value)
                span.set_data("outcome", ConversationStartOutcome.NO_CREDITS.value)
                return ConversationStartResult(
                    outcome=ConversationStartOutcome.NO_CREDITS,
                    credits_remaining=await self.credits.get_balance(payer),
                )

            await self._ensure_pending(payer, match_id)

            try:
                conversation = await self.conversations.start(match)
            except ConversationExistsError:
                winner = await self.conversation_store.get_active_for_match(match_id)
                if winner is None:
                    raise
                logger.info("Conversation started concurrently", match_id=match_id, conversation_id=winner.id)
                conversation = winner

            span.set_data("outcome", ConversationStartOutcome.STARTED.value)
            return ConversationStartResult(
                outcome=ConversationStartOutcome.STARTED,
                conversation=conversation,
                credits_remaining=await self.credits.get_balance(payer),
            )

    async def _dissolve_blocked(self, match: Match) -> None:
        pending = await self._pending_for_match(match.user1_id, match.id)
        if pending is not None:
            await self._cancel_pending(pending, BLOCKED_REASON)
        released = await self.conversations.dissolve(match)
        logger.warning("Blocked match dissolved", match_id=match.id, released=released)

    async def _confirm_first_message(self, user_id: str, conversation: Conversation) -> bool:
        pending = await self._pending_for_match(conversation.user1_id, conversation.match_id)
        if pending is None:
            return False

        try:
            return await self.credits.confirm(pending.id, conversation.user1_id)
        except InsufficientCreditsError:
            # Nothing is stored yet; the conversation cannot go on without a paid start
            logger.warning(
                "Payer can no longer afford the conversation",
                conversation_id=conversation.id,
                payer=conversation.user1_id,
            )
            await self._cancel_pending(pending, UNAFFORDABLE_REASON)
            await self.conversations.end(conversation.id, user_id)
            raise

    async def send_message(self, user_id: str, conversation_id: str, content: Optional[str]) -> SentMessage:
        """
        Send a user message.

        The first message confirms the payer's pending transaction before
        anything is stored; confirm is idempotent, so a retried first message
        never debits twice. If the payer can no longer afford it (credits
        spent or subscription lapsed since the start), the conversation is
        ended, both users are released and the error is raised.

        Raises:
            ValidationError: If the content is empty or too long.
            ForbiddenError: If the user is not a participant.
            ConversationClosedError: If the conversation has ended.
            InsufficientCreditsError: If the payer can no longer afford the conversation.
        """
        with sentry_sdk.start_span(op="chat.send", name=conversation_id) as span:
            conversation = await self._get_participating(user_id, conversation_id)
            if not conversation.is_active:
                raise ConversationClosedError("Conversation has ended", details={"conversation_id": conversation_id})
            text = sanitize_message(content)

            confirmed = False
            if conversation.messages_count == 0:
                confirmed = await self._confirm_first_message(user_id, conversation)

            message = await self.conversation_store.insert_message(
                Message(
                    id=str(uuid.uuid4()),
                    conversation_id=conversation_id,
                    sender_id=user_id,
                    content=text,
                    is_system=False,
                    created_at=utcnow(),
                )
            )
            updated = await self.conversations.record_message(conversation_id)

            span.set_data("reveal_progress", updated.reveal_progress)
            return SentMessage(message=message, conversation=updated, transaction_confirmed=confirmed)

    async def end_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """
        End a conversation on behalf of a participant.

        A transaction still pending for the match is cancelled, so the payer
        keeps the credit.
        """
        with sentry_sdk.start_span(op="chat.end", name=conversation_id):
            conversation = await self._get_participating(user_id, conversation_id)

            if conversation.is_active:
                pending = await self._pending_for_match(conversation.user1_id, conversation.match_id)
                if pending is not None:
                    await self._cancel_pending(pending, ENDED_BEFORE_FIRST_MESSAGE)

            return await self.conversations.end(conversation_id, user_id)

    async def list_messages(
        self,
        user_id: str,
        conversation_id: str,
        before: Optional[datetime] = None,
        limit: int = 50,
        before_id: Optional[str] = None,
    ) -> MessagePage:
        """
        Get a page of messages in chronological order.

        Pages go backwards in time: pass the returned `cursor` and
        `cursor_id` as `before` and `before_id` to load older messages.
        """
        if limit < 1:
            raise ValidationError("limit must be positive", details={"limit": limit})

        await self._get_participating(user_id, conversation_id)
        newest_first = await self.conversation_store.list_messages(
            conversation_id, before, limit + 1, before_id=before_id
        )
        has_more = len(newest_first) > limit
        messages = list(reversed(newest_first[:limit]))
        if has_more and messages:
            return MessagePage(
                messages=messages, has_more=True, cursor=messages[0].created_at, cursor_id=messages[0].id
            )
        return MessagePage(messages=messages, has_more=has_more)
