"""SQLAlchemy implementations of the store interfaces."""

import asyncio
import functools
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar

import sentry_sdk
from sqlalchemy import and_, case, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealmatch.config import settings
from revealmatch.models import (
    CandidateFilter,
    CompatibilityAnswers,
    Conversation,
    CreditTransaction,
    Match,
    Message,
    Profile,
    TransactionStatus,
)
from revealmatch.utils.database import (
    BlockDB,
    ConversationDB,
    CreditTransactionDB,
    MatchDB,
    MessageDB,
    ProfileDB,
    SubscriptionDB,
    utcnow,
)
from revealmatch.utils.errors import (
    ConversationExistsError,
    DatabaseError,
    InsufficientCreditsError,
    NotFoundError,
    PendingTransactionExistsError,
    RevealMatchError,
    StoreTimeoutError,
)
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def store_operation(name: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Wrap a store coroutine with tracing, a time budget and error translation.

    SQLAlchemy failures become `DatabaseError` and an exceeded
    STORE_TIMEOUT_SECONDS becomes `StoreTimeoutError`. Domain errors raised
    by the operation itself pass through untouched.
    """

    def decorator(func_: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func_)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            with sentry_sdk.start_span(op="db.query", name=name) as span:
                try:
                    return await asyncio.wait_for(func_(*args, **kwargs), timeout=settings.STORE_TIMEOUT_SECONDS)
                except RevealMatchError:
                    raise
                except asyncio.TimeoutError as e:
                    span.set_status("deadline_exceeded")
                    logger.error("Store operation timed out", operation=name, timeout=settings.STORE_TIMEOUT_SECONDS)
                    raise StoreTimeoutError(f"Store operation timed out: {name}", details={"operation": name}) from e
                except SQLAlchemyError as e:
                    span.set_status("internal_error")
                    logger.error(f"Failed to execute {name}", error=str(e))
                    raise DatabaseError(
                        f"Database operation failed: {name}",
                        details={"error": str(e), "operation": name},
                    ) from e

        return wrapper

    return decorator


def profile_from_row(row: ProfileDB) -> Profile:
    """Convert a profile row into a Profile, regrouping the answer columns."""
    return Profile(
        id=row.id,
        first_name=row.first_name or "",
        bio=row.bio,
        photo_path=row.photo_path,
        gender=row.gender,
        looking_for=row.looking_for,
        age=row.age,
        min_age=row.min_age,
        max_age=row.max_age,
        latitude=row.latitude,
        longitude=row.longitude,
        city=row.city,
        max_distance_km=row.max_distance_km,
        answers=CompatibilityAnswers(
            smoker=row.smoker,
            serious_relationship=row.serious_relationship,
            morning_person=row.morning_person,
            prefers_city=row.prefers_city,
        ),
        in_conversation=row.in_conversation,
        reserved_at=row.reserved_at,
        is_blocked=row.is_blocked,
        credits=row.credits,
        created_at=row.created_at,
    )


def profile_to_row(profile: Profile) -> ProfileDB:
    """Flatten a Profile into a row (used when seeding the store)."""
    return ProfileDB(
        id=profile.id,
        first_name=profile.first_name,
        bio=profile.bio,
        photo_path=profile.photo_path,
        gender=profile.gender.value,
        looking_for=profile.looking_for.value,
        age=profile.age,
        min_age=profile.min_age,
        max_age=profile.max_age,
        latitude=profile.latitude,
        longitude=profile.longitude,
        city=profile.city,
        max_distance_km=profile.max_distance_km,
        smoker=profile.answers.smoker,
        serious_relationship=profile.answers.serious_relationship,
        morning_person=profile.answers.morning_person,
        prefers_city=profile.answers.prefers_city,
        in_conversation=profile.in_conversation,
        reserved_at=profile.reserved_at,
        is_blocked=profile.is_blocked,
        credits=profile.credits,
        created_at=profile.created_at,
    )


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory


class SqlProfileStore(_SqlStore):
    """Profile store backed by the `profiles` table."""

    @store_operation("select profiles")
    async def get_profile(self, user_id: str) -> Profile:
        async with self._session_factory() as session:
            row = await session.get(ProfileDB, user_id)
            if row is None:
                raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})
            return profile_from_row(row)

    @store_operation("select candidates")
    async def find_candidates(self, candidate_filter: CandidateFilter) -> List[Profile]:
        stmt = select(ProfileDB).where(
            ProfileDB.gender == candidate_filter.gender.value,
            ProfileDB.looking_for == candidate_filter.looking_for.value,
            ProfileDB.in_conversation.is_(False),
            ProfileDB.is_blocked.is_(False),
            ProfileDB.age >= candidate_filter.min_age,
            ProfileDB.age <= candidate_filter.max_age,
        )
        if candidate_filter.exclude_ids:
            stmt = stmt.where(ProfileDB.id.not_in(candidate_filter.exclude_ids))
        stmt = stmt.order_by(ProfileDB.created_at, ProfileDB.id)

        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [profile_from_row(row) for row in rows]

    @store_operation("reserve profile")
    async def try_reserve(self, user_id: str, now: datetime) -> bool:
        stmt = (
            update(ProfileDB)
            .where(ProfileDB.id == user_id, ProfileDB.in_conversation.is_(False))
            .values(in_conversation=True, reserved_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount == 1

    @store_operation("release profiles")
    async def release(self, user_ids: List[str], reserved_before: Optional[datetime] = None) -> int:
        if not user_ids:
            return 0
        stmt = update(ProfileDB).where(ProfileDB.id.in_(user_ids), ProfileDB.in_conversation.is_(True))
        if reserved_before is not None:
            stmt = stmt.where(or_(ProfileDB.reserved_at.is_(None), ProfileDB.reserved_at < reserved_before))
        stmt = stmt.values(in_conversation=False, reserved_at=None).execution_options(synchronize_session=False)
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount

    @store_operation("select reserved profiles")
    async def find_reserved(self, reserved_before: datetime) -> List[str]:
        stmt = (
            select(ProfileDB.id)
            .where(
                ProfileDB.in_conversation.is_(True),
                or_(ProfileDB.reserved_at.is_(None), ProfileDB.reserved_at < reserved_before),
            )
            .order_by(ProfileDB.id)
        )
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())


class SqlMatchStore(_SqlStore):
    """Match store backed by the `matches` table."""

    @store_operation("insert match")
    async def insert_match(self, match: Match) -> Match:
        row = MatchDB(
            id=match.id,
            user1_id=match.user1_id,
            user2_id=match.user2_id,
            compatibility_score=match.compatibility_score,
            distance_km=match.distance_km,
            tier=match.tier.value,
            is_active=match.is_active,
            created_at=match.created_at,
            ended_at=match.ended_at,
        )
        async with self._session_factory() as session, session.begin():
            session.add(row)
        return match

    @store_operation("select match")
    async def get_match(self, match_id: str) -> Match:
        async with self._session_factory() as session:
            row = await session.get(MatchDB, match_id)
            if row is None:
                raise NotFoundError(f"Match not found: {match_id}", details={"match_id": match_id})
            return Match.model_validate(row, from_attributes=True)

    @store_operation("select active match")
    async def get_active_match_for_user(self, user_id: str) -> Optional[Match]:
        stmt = (
            select(MatchDB)
            .where(or_(MatchDB.user1_id == user_id, MatchDB.user2_id == user_id), MatchDB.is_active.is_(True))
            .order_by(MatchDB.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
        return Match.model_validate(row, from_attributes=True) if row else None

    @store_operation("deactivate match")
    async def deactivate_match(self, match_id: str, now: datetime) -> bool:
        stmt = (
            update(MatchDB)
            .where(MatchDB.id == match_id, MatchDB.is_active.is_(True))
            .values(is_active=False, ended_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount == 1

    @store_operation("select unstarted matches")
    async def find_unstarted_matches(self, created_before: datetime) -> List[Match]:
        has_conversation = exists().where(ConversationDB.match_id == MatchDB.id)
        stmt = (
            select(MatchDB)
            .where(MatchDB.is_active.is_(True), MatchDB.created_at < created_before, ~has_conversation)
            .order_by(MatchDB.created_at)
        )
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [Match.model_validate(row, from_attributes=True) for row in rows]


class SqlCreditStore(_SqlStore):
    """Credit store backed by `credit_transactions` and the profile balance."""

    @store_operation("insert credit transaction")
    async def insert_transaction(self, transaction: CreditTransaction) -> CreditTransaction:
        row = CreditTransactionDB(
            id=transaction.id,
            user_id=transaction.user_id,
            amount=transaction.amount,
            type=transaction.type.value,
            status=transaction.status.value,
            description=transaction.description,
            match_id=transaction.match_id,
            created_at=transaction.created_at,
            updated_at=transaction.updated_at,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            if transaction.status != TransactionStatus.PENDING:
                raise
            raise PendingTransactionExistsError(
                "A pending transaction already exists for this user",
                details={"user_id": transaction.user_id},
            ) from e
        return transaction

    @store_operation("select credit transaction")
    async def get_transaction(self, transaction_id: str, user_id: str) -> Optional[CreditTransaction]:
        stmt = select(CreditTransactionDB).where(
            CreditTransactionDB.id == transaction_id, CreditTransactionDB.user_id == user_id
        )
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
        return CreditTransaction.model_validate(row, from_attributes=True) if row else None

    @store_operation("update credit transaction")
    async def update_transaction_status(
        self,
        transaction_id: str,
        user_id: str,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        description: Optional[str] = None,
    ) -> bool:
        values: dict[str, Any] = {"status": to_status.value, "updated_at": utcnow()}
        if description is not None:
            values["description"] = description
        stmt = (
            update(CreditTransactionDB)
            .where(
                CreditTransactionDB.id == transaction_id,
                CreditTransactionDB.user_id == user_id,
                CreditTransactionDB.status == from_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount == 1

    @store_operation("confirm credit transaction")
    async def confirm_and_debit(self, transaction_id: str, user_id: str, amount: int) -> bool:
        confirm_stmt = (
            update(CreditTransactionDB)
            .where(
                CreditTransactionDB.id == transaction_id,
                CreditTransactionDB.user_id == user_id,
                CreditTransactionDB.status == TransactionStatus.PENDING.value,
            )
            .values(status=TransactionStatus.CONFIRMED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        debit_stmt = (
            update(ProfileDB)
            .where(ProfileDB.id == user_id, ProfileDB.credits >= amount)
            .values(credits=ProfileDB.credits - amount)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(confirm_stmt)
            if result.rowcount != 1:
                return False
            if amount > 0:
                debit = await session.execute(debit_stmt)
                if debit.rowcount != 1:
                    # Leaving the block with an exception rolls the confirmation back
                    raise InsufficientCreditsError(
                        "Not enough credits to confirm the transaction",
                        details={"user_id": user_id, "transaction_id": transaction_id, "amount": amount},
                    )
        return True

    @store_operation("select pending transaction")
    async def find_pending_for_user(self, user_id: str) -> Optional[CreditTransaction]:
        stmt = (
            select(CreditTransactionDB)
            .where(
                CreditTransactionDB.user_id == user_id,
                CreditTransactionDB.status == TransactionStatus.PENDING.value,
            )
            .order_by(CreditTransactionDB.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
        return CreditTransaction.model_validate(row, from_attributes=True) if row else None

    @store_operation("select credit balance")
    async def get_balance(self, user_id: str) -> int:
        async with self._session_factory() as session:
            credits = await session.scalar(select(ProfileDB.credits).where(ProfileDB.id == user_id))
        if credits is None:
            raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})
        return credits

    @store_operation("select credit history")
    async def list_transactions(self, user_id: str, limit: int) -> List[CreditTransaction]:
        stmt = (
            select(CreditTransactionDB)
            .where(CreditTransactionDB.user_id == user_id)
            .order_by(CreditTransactionDB.created_at.desc(), CreditTransactionDB.id.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [CreditTransaction.model_validate(row, from_attributes=True) for row in rows]


class SqlConversationStore(_SqlStore):
    """Conversation store backed by `conversations` and `messages`."""

    @store_operation("insert conversation")
    async def insert_conversation(self, conversation: Conversation) -> Conversation:
        row = ConversationDB(**conversation.model_dump())
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            if not conversation.is_active:
                raise
            raise ConversationExistsError(
                "An active conversation already exists for this match",
                details={"match_id": conversation.match_id},
            ) from e
        return conversation

    @store_operation("select conversation")
    async def get_conversation(self, conversation_id: str) -> Conversation:
        async with self._session_factory() as session:
            row = await session.get(ConversationDB, conversation_id)
            if row is None:
                raise NotFoundError(
                    f"Conversation not found: {conversation_id}", details={"conversation_id": conversation_id}
                )
            return Conversation.model_validate(row, from_attributes=True)

    @store_operation("select active conversation")
    async def get_active_for_match(self, match_id: str) -> Optional[Conversation]:
        stmt = select(ConversationDB).where(ConversationDB.match_id == match_id, ConversationDB.is_active.is_(True))
        async with self._session_factory() as session:
            row = await session.scalar(stmt)
        return Conversation.model_validate(row, from_attributes=True) if row else None

    @store_operation("update conversation progress")
    async def update_conversation_progress(
        self, conversation_id: str, step: int, cap: int, now: datetime
    ) -> Optional[Conversation]:
        advanced = ConversationDB.reveal_progress + step
        stmt = (
            update(ConversationDB)
            .where(ConversationDB.id == conversation_id, ConversationDB.is_active.is_(True))
            .values(
                messages_count=ConversationDB.messages_count + 1,
                reveal_progress=case((advanced >= cap, cap), else_=advanced),
                last_activity=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(ConversationDB, conversation_id, populate_existing=True)
            return Conversation.model_validate(row, from_attributes=True)

    @store_operation("deactivate conversation")
    async def deactivate_conversation(self, conversation_id: str, ended_by: Optional[str], now: datetime) -> bool:
        stmt = (
            update(ConversationDB)
            .where(ConversationDB.id == conversation_id, ConversationDB.is_active.is_(True))
            .values(is_active=False, ended_at=now, ended_by=ended_by)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return result.rowcount == 1

    @store_operation("insert message")
    async def insert_message(self, message: Message) -> Message:
        async with self._session_factory() as session, session.begin():
            session.add(MessageDB(**message.model_dump()))
        return message

    @store_operation("select messages")
    async def list_messages(
        self,
        conversation_id: str,
        before: Optional[datetime],
        limit: int,
        before_id: Optional[str] = None,
    ) -> List[Message]:
        stmt = select(MessageDB).where(MessageDB.conversation_id == conversation_id)
        if before is not None and before_id is not None:
            # Keyset on (created_at, id), matching the sort below
            stmt = stmt.where(
                or_(
                    MessageDB.created_at < before,
                    and_(MessageDB.created_at == before, MessageDB.id < before_id),
                )
            )
        elif before is not None:
            stmt = stmt.where(MessageDB.created_at < before)
        stmt = stmt.order_by(MessageDB.created_at.desc(), MessageDB.id.desc()).limit(limit)
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [Message.model_validate(row, from_attributes=True) for row in rows]


class SqlBlockStore(_SqlStore):
    """Block store backed by the `blocks` table."""

    @store_operation("select block")
    async def is_blocked(self, user_a: str, user_b: str) -> bool:
        stmt = select(func.count()).select_from(BlockDB).where(
            or_(
                (BlockDB.blocker_id == user_a) & (BlockDB.blocked_id == user_b),
                (BlockDB.blocker_id == user_b) & (BlockDB.blocked_id == user_a),
            )
        )
        async with self._session_factory() as session:
            count = await session.scalar(stmt)
        return bool(count)

    @store_operation("select blocked ids")
    async def blocked_ids(self, user_id: str) -> Set[str]:
        blocked = select(BlockDB.blocked_id).where(BlockDB.blocker_id == user_id)
        blocking = select(BlockDB.blocker_id).where(BlockDB.blocked_id == user_id)
        async with self._session_factory() as session:
            first = (await session.scalars(blocked)).all()
            second = (await session.scalars(blocking)).all()
        return set(first) | set(second)


class SqlSubscriptionStore(_SqlStore):
    """Subscription status backed by the `subscriptions` table."""

    @store_operation("select subscription")
    async def is_subscribed(self, user_id: str) -> bool:
        stmt = select(func.count()).select_from(SubscriptionDB).where(
            SubscriptionDB.user_id == user_id,
            SubscriptionDB.status == "active",
            SubscriptionDB.current_period_end >= utcnow(),
        )
        async with self._session_factory() as session:
            count = await session.scalar(stmt)
        return bool(count)
