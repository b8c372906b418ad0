import asyncio
from datetime import timedelta

import pytest

from revealmatch.models import ConversationStartOutcome, Message, TransactionStatus
from revealmatch.services import chat_service
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import (
    ConversationClosedError,
    ForbiddenError,
    InsufficientCreditsError,
    TransactionStateError,
    ValidationError,
)
from tests.mocks.profiles import make_man, make_profile


@pytest.fixture
def chat(container):
    return container.chat


@pytest.fixture
async def matched(stores, container):
    stores.profiles.add(make_profile("alice", credits=2))
    stores.profiles.add(make_man("bob", credits=0))
    result = await container.reservations.find_match("alice")
    assert result.matched
    return result.match


async def test_start_conversation(stores, chat, matched):
    result = await chat.start_conversation("bob", matched.id)

    assert result.outcome == ConversationStartOutcome.STARTED
    assert result.conversation.match_id == matched.id
    assert result.credits_remaining == 2
    # Still pending until the first message
    assert (await stores.credits.find_pending_for_user("alice")).match_id == matched.id


async def test_start_conversation_is_idempotent(chat, matched):
    first = await chat.start_conversation("alice", matched.id)
    second = await chat.start_conversation("bob", matched.id)
    assert first.conversation.id == second.conversation.id


async def test_start_conversation_without_credits(stores, chat, matched):
    stores.profiles._set("alice", credits=0)

    result = await chat.start_conversation("alice", matched.id)

    assert result.outcome == ConversationStartOutcome.NO_CREDITS
    assert result.conversation is None
    assert result.credits_remaining == 0
    # The match stays reserved so the payer can top up and retry
    assert stores.profiles.profiles["alice"].in_conversation


async def test_start_conversation_for_subscriber_without_credits(stores, chat, matched):
    stores.profiles._set("alice", credits=0)
    stores.subscriptions.subscribed.add("alice")

    result = await chat.start_conversation("alice", matched.id)

    assert result.outcome == ConversationStartOutcome.STARTED


async def test_start_conversation_recreates_missing_pending(stores, chat, matched, container):
    pending = await stores.credits.find_pending_for_user("alice")
    await container.credits.cancel(pending.id, "alice", "lost")

    await chat.start_conversation("alice", matched.id)

    assert (await stores.credits.find_pending_for_user("alice")).match_id == matched.id


async def test_start_conversation_checks_participant_and_blocks(stores, chat, matched):
    with pytest.raises(ForbiddenError):
        await chat.start_conversation("mallory", matched.id)

    stores.blocks.block("bob", "alice")
    with pytest.raises(ForbiddenError):
        await chat.start_conversation("alice", matched.id)


async def test_start_conversation_when_blocked_dissolves_match(stores, chat, matched):
    pending = await stores.credits.find_pending_for_user("alice")
    stores.blocks.block("bob", "alice")

    with pytest.raises(ForbiddenError):
        await chat.start_conversation("bob", matched.id)

    transaction = stores.credits.transactions[pending.id]
    assert transaction.status == TransactionStatus.CANCELLED
    assert transaction.description == chat_service.BLOCKED_REASON
    assert not stores.matches.matches[matched.id].is_active
    assert not stores.profiles.profiles["alice"].in_conversation
    assert not stores.profiles.profiles["bob"].in_conversation
    assert stores.profiles.profiles["alice"].credits == 2
    assert stores.conversations.conversations == {}

    # A retry sees the dissolved match
    with pytest.raises(ConversationClosedError):
        await chat.start_conversation("alice", matched.id)


async def test_concurrent_starts_share_one_conversation(stores, chat, matched):
    first, second = await asyncio.gather(
        chat.start_conversation("alice", matched.id),
        chat.start_conversation("bob", matched.id),
    )

    assert first.outcome == second.outcome == ConversationStartOutcome.STARTED
    assert first.conversation.id == second.conversation.id
    assert [c.id for c in stores.conversations.conversations.values() if c.is_active] == [first.conversation.id]
    assert [m.is_system for m in stores.conversations.messages] == [True]


async def test_first_message_confirms_and_reveals(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)

    first = await chat.send_message("bob", started.conversation.id, "Hi <3")
    second = await chat.send_message("alice", started.conversation.id, "Hello!")

    assert first.transaction_confirmed is True
    assert second.transaction_confirmed is False
    assert first.message.content == "Hi &lt;3"
    assert second.conversation.reveal_progress == 2
    assert second.conversation.messages_count == 2
    assert stores.profiles.profiles["alice"].credits == 1
    assert len(stores.credits.debits) == 1


async def test_first_message_without_credits_ends_conversation(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    pending = await stores.credits.find_pending_for_user("alice")
    stores.profiles._set("alice", credits=0)

    with pytest.raises(InsufficientCreditsError):
        await chat.send_message("bob", started.conversation.id, "Hi")

    conversation = stores.conversations.conversations[started.conversation.id]
    assert [m.is_system for m in stores.conversations.messages] == [True]
    assert conversation.reveal_progress == 0
    assert not conversation.is_active
    assert conversation.ended_by == "bob"
    transaction = stores.credits.transactions[pending.id]
    assert transaction.status == TransactionStatus.CANCELLED
    assert transaction.description == chat_service.UNAFFORDABLE_REASON
    assert stores.credits.debits == []
    assert not stores.profiles.profiles["alice"].in_conversation
    assert not stores.profiles.profiles["bob"].in_conversation

    # Later sends see a closed conversation instead of the same credit error
    with pytest.raises(ConversationClosedError):
        await chat.send_message("bob", started.conversation.id, "Hi again")


async def test_first_message_after_subscription_lapse_ends_conversation(stores, chat, matched):
    stores.profiles._set("alice", credits=0)
    stores.subscriptions.subscribed.add("alice")
    started = await chat.start_conversation("alice", matched.id)
    stores.subscriptions.subscribed.discard("alice")

    with pytest.raises(InsufficientCreditsError):
        await chat.send_message("alice", started.conversation.id, "Hi")

    assert not stores.conversations.conversations[started.conversation.id].is_active
    assert await stores.credits.find_pending_for_user("alice") is None


async def test_concurrent_first_messages_debit_once(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    conversation_id = started.conversation.id

    sent = await asyncio.gather(
        chat.send_message("alice", conversation_id, "Hi"),
        chat.send_message("bob", conversation_id, "Hey"),
    )

    assert sorted(s.transaction_confirmed for s in sent) == [False, True]
    assert len(stores.credits.debits) == 1
    assert stores.profiles.profiles["alice"].credits == 1
    assert stores.conversations.conversations[conversation_id].messages_count == 2


async def test_end_racing_first_message_settles_once(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    conversation_id = started.conversation.id
    pending = await stores.credits.find_pending_for_user("alice")

    sent, ended = await asyncio.gather(
        chat.send_message("alice", conversation_id, "Hi"),
        chat.end_conversation("bob", conversation_id),
        return_exceptions=True,
    )

    assert not isinstance(ended, Exception)
    if isinstance(sent, Exception):
        assert isinstance(sent, (ConversationClosedError, TransactionStateError))
    status = stores.credits.transactions[pending.id].status
    assert status in (TransactionStatus.CONFIRMED, TransactionStatus.CANCELLED)
    assert len(stores.credits.debits) == (1 if status == TransactionStatus.CONFIRMED else 0)
    assert stores.profiles.profiles["alice"].credits == (1 if status == TransactionStatus.CONFIRMED else 2)
    assert not stores.conversations.conversations[conversation_id].is_active
    assert not stores.matches.matches[matched.id].is_active
    assert not stores.profiles.profiles["alice"].in_conversation
    assert not stores.profiles.profiles["bob"].in_conversation


async def test_send_message_validation(chat, matched):
    started = await chat.start_conversation("alice", matched.id)

    with pytest.raises(ValidationError):
        await chat.send_message("alice", started.conversation.id, "   ")
    with pytest.raises(ValidationError):
        await chat.send_message("alice", started.conversation.id, "x" * 2001)
    with pytest.raises(ForbiddenError):
        await chat.send_message("mallory", started.conversation.id, "hi")


async def test_end_before_first_message_cancels_pending(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    pending = await stores.credits.find_pending_for_user("alice")

    ended = await chat.end_conversation("bob", started.conversation.id)

    transaction = stores.credits.transactions[pending.id]
    assert transaction.status == TransactionStatus.CANCELLED
    assert transaction.description == chat_service.ENDED_BEFORE_FIRST_MESSAGE
    assert stores.profiles.profiles["alice"].credits == 2
    assert not ended.is_active
    assert not stores.profiles.profiles["alice"].in_conversation
    assert not stores.profiles.profiles["bob"].in_conversation


async def test_end_after_first_message_keeps_debit(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    await chat.send_message("alice", started.conversation.id, "Hi")
    pending_id = stores.credits.debits[0][0]

    await chat.end_conversation("alice", started.conversation.id)

    assert stores.credits.transactions[pending_id].status == TransactionStatus.CONFIRMED
    with pytest.raises(ConversationClosedError):
        await chat.send_message("alice", started.conversation.id, "Still there?")


async def test_list_messages_pages_backwards(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    conversation_id = started.conversation.id
    stores.conversations.messages.clear()
    base = utcnow()
    for i in range(5):
        stores.conversations.messages.append(
            Message(
                id=f"msg{i}",
                conversation_id=conversation_id,
                sender_id="alice",
                content=f"message {i}",
                created_at=base + timedelta(seconds=i),
            )
        )

    page = await chat.list_messages("bob", conversation_id, limit=3)
    assert [m.id for m in page.messages] == ["msg2", "msg3", "msg4"]
    assert page.has_more is True
    assert page.cursor == page.messages[0].created_at

    older = await chat.list_messages("bob", conversation_id, before=page.cursor, limit=3)
    assert [m.id for m in older.messages] == ["msg0", "msg1"]
    assert older.has_more is False
    assert older.cursor is None


async def test_list_messages_pages_through_equal_timestamps(stores, chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    conversation_id = started.conversation.id
    stores.conversations.messages.clear()
    sent_at = utcnow()
    for i in range(5):
        stores.conversations.messages.append(
            Message(id=f"msg{i}", conversation_id=conversation_id, sender_id="bob", content="hi", created_at=sent_at)
        )

    page = await chat.list_messages("alice", conversation_id, limit=2)
    seen = [m.id for m in page.messages]
    while page.has_more:
        assert page.cursor == sent_at
        page = await chat.list_messages(
            "alice", conversation_id, before=page.cursor, before_id=page.cursor_id, limit=2
        )
        seen = [m.id for m in page.messages] + seen

    assert seen == ["msg0", "msg1", "msg2", "msg3", "msg4"]


async def test_list_messages_participants_only(chat, matched):
    started = await chat.start_conversation("alice", matched.id)
    with pytest.raises(ForbiddenError):
        await chat.list_messages("mallory", started.conversation.id)
