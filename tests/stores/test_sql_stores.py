import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from revealmatch.models import (
    CandidateFilter,
    Conversation,
    CreditTransaction,
    Gender,
    Match,
    MatchTier,
    Message,
    TransactionStatus,
    TransactionType,
)
from revealmatch.stores import sql
from revealmatch.stores.sql import (
    SqlBlockStore,
    SqlConversationStore,
    SqlCreditStore,
    SqlMatchStore,
    SqlProfileStore,
    SqlSubscriptionStore,
    profile_to_row,
    store_operation,
)
from revealmatch.utils.database import Base, BlockDB, SubscriptionDB, utcnow
from revealmatch.utils.errors import (
    ConversationExistsError,
    DatabaseError,
    InsufficientCreditsError,
    NotFoundError,
    PendingTransactionExistsError,
    StoreTimeoutError,
)
from tests.mocks.profiles import BASE_TIME, make_man, make_profile


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    async with factory() as session, session.begin():
        session.add(profile_to_row(make_profile("alice", credits=1)))
        session.add(profile_to_row(make_man("bob", created_at=BASE_TIME + timedelta(minutes=1))))
        session.add(profile_to_row(make_man("carl", created_at=BASE_TIME + timedelta(minutes=2), age=45)))
        session.add(profile_to_row(make_man("dan", created_at=BASE_TIME, is_blocked=True)))

    yield factory
    await engine.dispose()


def _match(match_id="m1", created_at=None):
    return Match(
        id=match_id,
        user1_id="alice",
        user2_id="bob",
        compatibility_score=75,
        tier=MatchTier.GLOBAL,
        created_at=created_at or utcnow(),
    )


def _pending(transaction_id="t1", match_id="m1"):
    now = utcnow()
    return CreditTransaction(
        id=transaction_id,
        user_id="alice",
        amount=-1,
        type=TransactionType.USAGE,
        status=TransactionStatus.PENDING,
        match_id=match_id,
        created_at=now,
        updated_at=now,
    )


async def test_get_profile_regroups_answers(session_factory):
    store = SqlProfileStore(session_factory)

    profile = await store.get_profile("alice")

    assert profile.gender == Gender.FEMALE
    assert profile.answers.smoker is True
    with pytest.raises(NotFoundError):
        await store.get_profile("nobody")


async def test_find_candidates_applies_filter_and_order(session_factory):
    store = SqlProfileStore(session_factory)
    candidate_filter = CandidateFilter(
        gender=Gender.MALE, looking_for=Gender.FEMALE, min_age=18, max_age=40, exclude_ids=["alice"]
    )

    candidates = await store.find_candidates(candidate_filter)

    # dan is blocked, carl is too old
    assert [p.id for p in candidates] == ["bob"]


async def test_try_reserve_is_conditional(session_factory):
    store = SqlProfileStore(session_factory)
    now = utcnow()

    assert await store.try_reserve("bob", now) is True
    assert await store.try_reserve("bob", now) is False
    assert await store.try_reserve("nobody", now) is False
    assert (await store.get_profile("bob")).reserved_at == now


async def test_release_respects_reservation_age(session_factory):
    store = SqlProfileStore(session_factory)
    now = utcnow()
    await store.try_reserve("bob", now - timedelta(hours=1))
    await store.try_reserve("carl", now)

    assert await store.find_reserved(now - timedelta(minutes=5)) == ["bob"]
    assert await store.release(["bob", "carl"], reserved_before=now - timedelta(minutes=5)) == 1
    assert (await store.get_profile("carl")).in_conversation
    assert await store.release(["bob", "carl"]) == 1
    assert await store.release([]) == 0


async def test_match_lifecycle(session_factory):
    store = SqlMatchStore(session_factory)
    conversations = SqlConversationStore(session_factory)
    old = utcnow() - timedelta(hours=2)
    await store.insert_match(_match("m1", created_at=old))
    await store.insert_match(_match("m2", created_at=old))
    await conversations.insert_conversation(
        Conversation(id="c2", match_id="m2", user1_id="alice", user2_id="bob")
    )

    unstarted = await store.find_unstarted_matches(utcnow() - timedelta(hours=1))
    assert [m.id for m in unstarted] == ["m1"]
    assert (await store.get_match("m1")).tier == MatchTier.GLOBAL
    assert (await store.get_active_match_for_user("bob")) is not None

    assert await store.deactivate_match("m1", utcnow()) is True
    assert await store.deactivate_match("m1", utcnow()) is False
    assert not (await store.get_match("m1")).is_active


async def test_one_pending_transaction_per_user(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlCreditStore(session_factory)
    await store.insert_transaction(_pending("t1"))

    with pytest.raises(PendingTransactionExistsError):
        await store.insert_transaction(_pending("t2"))

    assert (await store.find_pending_for_user("alice")).id == "t1"


async def test_update_status_only_from_expected_state(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlCreditStore(session_factory)
    await store.insert_transaction(_pending())

    assert await store.update_transaction_status(
        "t1", "alice", TransactionStatus.PENDING, TransactionStatus.CANCELLED, description="changed my mind"
    )
    assert not await store.update_transaction_status(
        "t1", "alice", TransactionStatus.PENDING, TransactionStatus.CONFIRMED
    )
    transaction = await store.get_transaction("t1", "alice")
    assert transaction.status == TransactionStatus.CANCELLED
    assert transaction.description == "changed my mind"
    assert await store.get_transaction("t1", "bob") is None


async def test_confirm_and_debit_happens_once(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlCreditStore(session_factory)
    await store.insert_transaction(_pending())

    assert await store.confirm_and_debit("t1", "alice", 1) is True
    assert await store.confirm_and_debit("t1", "alice", 1) is False
    assert await store.get_balance("alice") == 0
    assert (await store.list_transactions("alice", 10))[0].status == TransactionStatus.CONFIRMED


async def test_confirm_without_credits_rolls_back(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlCreditStore(session_factory)
    await store.insert_transaction(_pending())

    with pytest.raises(InsufficientCreditsError):
        await store.confirm_and_debit("t1", "alice", 5)

    assert (await store.get_transaction("t1", "alice")).status == TransactionStatus.PENDING
    assert await store.get_balance("alice") == 1


async def test_progress_update_is_capped(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlConversationStore(session_factory)
    await store.insert_conversation(
        Conversation(id="c1", match_id="m1", user1_id="alice", user2_id="bob", reveal_progress=99, messages_count=99)
    )

    first = await store.update_conversation_progress("c1", 1, 100, utcnow())
    second = await store.update_conversation_progress("c1", 1, 100, utcnow())

    assert (first.reveal_progress, first.messages_count) == (100, 100)
    assert (second.reveal_progress, second.messages_count) == (100, 101)

    assert await store.deactivate_conversation("c1", "bob", utcnow()) is True
    assert await store.update_conversation_progress("c1", 1, 100, utcnow()) is None
    assert (await store.get_conversation("c1")).ended_by == "bob"
    assert await store.get_active_for_match("m1") is None


async def test_list_messages_newest_first(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlConversationStore(session_factory)
    await store.insert_conversation(Conversation(id="c1", match_id="m1", user1_id="alice", user2_id="bob"))
    for i in range(3):
        await store.insert_message(
            Message(
                id=f"msg{i}",
                conversation_id="c1",
                sender_id="bob",
                content=str(i),
                created_at=BASE_TIME + timedelta(seconds=i),
            )
        )

    newest = await store.list_messages("c1", None, 2)
    older = await store.list_messages("c1", newest[-1].created_at, 2)

    assert [m.id for m in newest] == ["msg2", "msg1"]
    assert [m.id for m in older] == ["msg0"]


async def test_list_messages_keyset_keeps_equal_timestamps(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlConversationStore(session_factory)
    await store.insert_conversation(Conversation(id="c1", match_id="m1", user1_id="alice", user2_id="bob"))
    for i in range(4):
        await store.insert_message(
            Message(id=f"msg{i}", conversation_id="c1", sender_id="bob", content=str(i), created_at=BASE_TIME)
        )

    newest = await store.list_messages("c1", None, 2)
    older = await store.list_messages("c1", newest[-1].created_at, 2, before_id=newest[-1].id)

    assert [m.id for m in newest] == ["msg3", "msg2"]
    assert [m.id for m in older] == ["msg1", "msg0"]
    # A timestamp-only cursor skips the rest of the tie
    assert await store.list_messages("c1", newest[-1].created_at, 2) == []


async def test_one_active_conversation_per_match(session_factory):
    await SqlMatchStore(session_factory).insert_match(_match())
    store = SqlConversationStore(session_factory)
    await store.insert_conversation(Conversation(id="c1", match_id="m1", user1_id="alice", user2_id="bob"))

    with pytest.raises(ConversationExistsError):
        await store.insert_conversation(Conversation(id="c2", match_id="m1", user1_id="alice", user2_id="bob"))

    # Ended conversations do not count
    await store.insert_conversation(
        Conversation(id="c3", match_id="m1", user1_id="alice", user2_id="bob", is_active=False)
    )
    assert await store.deactivate_conversation("c1", None, utcnow()) is True
    await store.insert_conversation(Conversation(id="c4", match_id="m1", user1_id="alice", user2_id="bob"))
    assert (await store.get_active_for_match("m1")).id == "c4"


async def test_blocks_and_subscriptions(session_factory):
    async with session_factory() as session, session.begin():
        session.add(BlockDB(blocker_id="bob", blocked_id="alice"))
        session.add(SubscriptionDB(id="s1", user_id="carl", current_period_end=utcnow() + timedelta(days=3)))
        session.add(SubscriptionDB(id="s2", user_id="bob", current_period_end=utcnow() - timedelta(days=3)))

    blocks = SqlBlockStore(session_factory)
    assert await blocks.is_blocked("alice", "bob") is True
    assert await blocks.is_blocked("alice", "carl") is False
    assert await blocks.blocked_ids("alice") == {"bob"}

    subscriptions = SqlSubscriptionStore(session_factory)
    assert await subscriptions.is_subscribed("carl") is True
    assert await subscriptions.is_subscribed("bob") is False


async def test_store_operation_timeout():
    @store_operation("slow query")
    async def slow():
        await asyncio.sleep(1)

    with patch.object(sql.settings, "STORE_TIMEOUT_SECONDS", 0.01):
        with pytest.raises(StoreTimeoutError):
            await slow()


async def test_store_operation_translates_sqlalchemy_errors():
    @store_operation("broken query")
    async def broken():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(DatabaseError) as exc_info:
        await broken()
    assert exc_info.value.details["operation"] == "broken query"
