"""Conversation and Message models for the RevealMatch service."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """Message model. System messages have no sender."""

    id: str
    conversation_id: str
    sender_id: Optional[str] = None
    content: str
    is_system: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Conversation(BaseModel):
    """
    Conversation model.

    `messages_count` counts user messages only. `reveal_progress` is the
    percentage of the counterpart's photo that is revealed; both counters
    only ever grow, and progress stops at 100.
    """

    id: str
    match_id: str
    user1_id: str
    user2_id: str
    messages_count: int = Field(default=0, ge=0)
    reveal_progress: int = Field(default=0, ge=0, le=100)
    is_active: bool = True
    last_activity: datetime = Field(default_factory=datetime.now)
    created_at: datetime = Field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None

    def has_participant(self, user_id: str) -> bool:
        """Check whether a user takes part in the conversation."""
        return user_id in (self.user1_id, self.user2_id)


class ConversationStartOutcome(str, Enum):
    """Outcome of a conversation start request."""

    STARTED = "started"
    NO_CREDITS = "no_credits"


class ConversationStartResult(BaseModel):
    """Result of a conversation start request."""

    outcome: ConversationStartOutcome
    conversation: Optional[Conversation] = None
    credits_remaining: Optional[int] = None


class SentMessage(BaseModel):
    """A stored user message and the conversation state after it."""

    message: Message
    conversation: Conversation
    transaction_confirmed: bool = False


class MessagePage(BaseModel):
    """
    A chronological page of messages.

    `cursor` and `cursor_id` identify the oldest message of the page; pass
    both back to load the page before it.
    """

    messages: List[Message] = Field(default_factory=list)
    has_more: bool = False
    cursor: Optional[datetime] = None
    cursor_id: Optional[str] = None
