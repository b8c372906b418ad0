"""Conversation progress tracking for the RevealMatch service."""

import uuid
from typing import Optional

import sentry_sdk

from revealmatch.config import settings
from revealmatch.models import Conversation, Match, Message
from revealmatch.services.reservation_service import invalidate_current_match
from revealmatch.stores.base import ConversationStore, MatchStore, ProfileStore
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import ConversationClosedError, ForbiddenError
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationService:
    """
    Tracks a conversation from start to end.

    Every user message adds one to the message count and advances the reveal
    progress by REVEAL_STEP, capped at REVEAL_MAX. Ending a conversation is
    the normal way a match's reservations are released.
    """

    def __init__(
        self,
        conversation_store: ConversationStore,
        match_store: MatchStore,
        profile_store: ProfileStore,
    ) -> None:
        self.conversation_store = conversation_store
        self.match_store = match_store
        self.profile_store = profile_store

    async def start(self, match: Match) -> Conversation:
        """
        Create a conversation for a match and post the welcome message.

        The welcome message is a system message and does not count toward
        progress.

        Args:
            match (Match): The active match.

        Returns:
            Conversation: The new conversation, with both counters at zero.

        Raises:
            ConversationExistsError: If the match already has an active conversation.
        """
        with sentry_sdk.start_span(op="conversation.start", name=match.id):
            now = utcnow()
            conversation = Conversation(
                id=str(uuid.uuid4()),
                match_id=match.id,
                user1_id=match.user1_id,
                user2_id=match.user2_id,
                messages_count=0,
                reveal_progress=0,
                is_active=True,
                last_activity=now,
                created_at=now,
            )
            await self.conversation_store.insert_conversation(conversation)
            await self.conversation_store.insert_message(
                Message(
                    id=str(uuid.uuid4()),
                    conversation_id=conversation.id,
                    sender_id=None,
                    content=settings.WELCOME_MESSAGE,
                    is_system=True,
                    created_at=now,
                )
            )
            logger.info("Conversation started", conversation_id=conversation.id, match_id=match.id)
            return conversation

    async def dissolve(self, match: Match) -> int:
        """
        Deactivate a match that never got a conversation and release both users.

        Returns:
            int: Number of users released; 0 when the match was already inactive.
        """
        with sentry_sdk.start_span(op="conversation.dissolve", name=match.id):
            if not await self.match_store.deactivate_match(match.id, utcnow()):
                logger.info("Match already inactive", match_id=match.id)
                return 0

            participants = [match.user1_id, match.user2_id]
            released = await self.profile_store.release(participants)
            await invalidate_current_match(participants)
            logger.info("Match dissolved", match_id=match.id, released=released)
            return released

    async def record_message(self, conversation_id: str) -> Conversation:
        """
        Count one user message and advance the reveal progress.

        Args:
            conversation_id (str): The conversation.

        Returns:
            Conversation: The conversation after the update.

        Raises:
            NotFoundError: If the conversation does not exist.
            ConversationClosedError: If the conversation has ended.
        """
        with sentry_sdk.start_span(op="conversation.record_message", name=conversation_id) as span:
            updated = await self.conversation_store.update_conversation_progress(
                conversation_id, settings.REVEAL_STEP, settings.REVEAL_MAX, utcnow()
            )
            if updated is None:
                # Raises NotFoundError when the conversation does not exist
                await self.conversation_store.get_conversation(conversation_id)
                span.set_status("failed_precondition")
                raise ConversationClosedError(
                    "Conversation has ended", details={"conversation_id": conversation_id}
                )

            span.set_data("reveal_progress", updated.reveal_progress)
            logger.debug(
                "Message recorded",
                conversation_id=conversation_id,
                messages_count=updated.messages_count,
                reveal_progress=updated.reveal_progress,
            )
            return updated

    async def end(self, conversation_id: str, ended_by: Optional[str]) -> Conversation:
        """
        End a conversation, its match and both reservations.

        Ending an already ended conversation changes nothing.

        Args:
            conversation_id (str): The conversation.
            ended_by (Optional[str]): The participant ending it, or None for the system.

        Returns:
            Conversation: The conversation after it was ended.

        Raises:
            NotFoundError: If the conversation does not exist.
            ForbiddenError: If `ended_by` is not a participant.
        """
        with sentry_sdk.start_span(op="conversation.end", name=conversation_id):
            conversation = await self.conversation_store.get_conversation(conversation_id)
            if ended_by is not None and not conversation.has_participant(ended_by):
                raise ForbiddenError(
                    "Only participants can end a conversation",
                    details={"conversation_id": conversation_id, "user_id": ended_by},
                )

            now = utcnow()
            if not await self.conversation_store.deactivate_conversation(conversation_id, ended_by, now):
                # Both users may already be in a new match; their flags are no longer ours to clear
                logger.info("Conversation already ended", conversation_id=conversation_id)
                return conversation

            await self.match_store.deactivate_match(conversation.match_id, now)
            participants = [conversation.user1_id, conversation.user2_id]
            released = await self.profile_store.release(participants)
            await invalidate_current_match(participants)

            logger.info(
                "Conversation ended",
                conversation_id=conversation_id,
                ended_by=ended_by,
                released=released,
            )
            return await self.conversation_store.get_conversation(conversation_id)
