"""Database connection utilities for the RevealMatch service."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from revealmatch.utils.errors import DatabaseError
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Get current UTC time (naive) to replace datetime.utcnow()."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class ProfileDB(Base):
    """Profile database model."""

    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    gender: Mapped[str] = mapped_column(String(20))
    looking_for: Mapped[str] = mapped_column(String(20))
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    max_distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    smoker: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    serious_relationship: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    morning_person: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    prefers_city: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    in_conversation: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    reserved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    credits: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class BlockDB(Base):
    """User-to-user block."""

    __tablename__ = "blocks"

    blocker_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), primary_key=True)
    blocked_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class MatchDB(Base):
    """Match database model."""

    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user1_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    user2_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    compatibility_score: Mapped[int] = mapped_column(Integer, default=0)
    distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tier: Mapped[str] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class ConversationDB(Base):
    """Conversation database model."""

    __tablename__ = "conversations"
    __table_args__ = (
        CheckConstraint("reveal_progress BETWEEN 0 AND 100", name="ck_conversations_reveal_progress"),
        # At most one active conversation per match
        Index(
            "uq_conversations_active_match",
            "match_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    match_id: Mapped[str] = mapped_column(String(50), ForeignKey("matches.id"), index=True)
    user1_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"))
    user2_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"))
    messages_count: Mapped[int] = mapped_column(Integer, default=0)
    reveal_progress: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_activity: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ended_by: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class MessageDB(Base):
    """Chat message database model."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String(50), ForeignKey("conversations.id"), index=True)
    sender_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class CreditTransactionDB(Base):
    """Credit transaction database model."""

    __tablename__ = "credit_transactions"
    __table_args__ = (
        # At most one open pending transaction per user
        Index(
            "uq_credit_transactions_pending_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    description: Mapped[str] = mapped_column(Text, default="")
    match_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey("matches.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class SubscriptionDB(Base):
    """Subscription database model."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    plan_type: Mapped[str] = mapped_column(String(20), default="monthly")
    status: Mapped[str] = mapped_column(String(20), default="active")
    current_period_end: Mapped[datetime] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


def _redact_url(database_url: str) -> str:
    safe_url = database_url
    if "@" in safe_url:
        try:
            part1, part2 = safe_url.rsplit("@", 1)
            if ":" in part1:
                scheme_user, _ = part1.rsplit(":", 1)
                safe_url = f"{scheme_user}:***@{part2}"
        except ValueError:
            safe_url = "REDACTED_MALFORMED_URL"
    return safe_url


def normalize_database_url(database_url: str) -> str:
    """Map plain postgres URLs onto the async psycopg driver."""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


class Database:
    """Singleton async database connection manager."""

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        """Get or create the database engine."""
        if cls._engine is None:
            from revealmatch.config import get_settings

            settings = get_settings()
            database_url = settings.DATABASE_URL

            if not database_url:
                raise DatabaseError("DATABASE_URL is not configured")

            database_url = normalize_database_url(database_url)
            kwargs: dict[str, Any] = {"echo": settings.DEBUG}
            if database_url.startswith("sqlite"):
                # In-memory SQLite must share one connection across sessions
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                kwargs["pool_recycle"] = 300
                kwargs["pool_pre_ping"] = True

            try:
                cls._engine = create_async_engine(database_url, **kwargs)
                logger.info("Database engine created")
            except Exception as e:
                safe_url = _redact_url(database_url)
                logger.error("Failed to create database engine", error=str(e), url=safe_url)
                raise DatabaseError("Failed to connect to database", details={"error": str(e), "url": safe_url}) from e
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if cls._session_factory is None:
            cls._session_factory = async_sessionmaker(bind=cls.get_engine(), expire_on_commit=False)
        return cls._session_factory

    @classmethod
    async def create_tables(cls) -> None:
        """Create all database tables."""
        engine = cls.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @classmethod
    async def dispose(cls) -> None:
        """Dispose of the engine and forget the session factory."""
        if cls._engine is not None:
            await cls._engine.dispose()
        cls._engine = None
        cls._session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the database session factory."""
    return Database.get_session_factory()


async def init_database() -> None:
    """Initialize the database and create tables."""
    await Database.create_tables()
