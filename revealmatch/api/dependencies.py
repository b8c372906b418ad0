"""Service wiring and request dependencies for the HTTP API."""

import hmac
from functools import lru_cache
from typing import Optional

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revealmatch.config import settings
from revealmatch.services import (
    CandidatePool,
    ChatService,
    ConversationService,
    CreditService,
    ReconciliationService,
    ReservationService,
    SubscriptionService,
)
from revealmatch.stores.base import (
    BlockStore,
    ConversationStore,
    CreditStore,
    MatchStore,
    ProfileStore,
    SubscriptionStore,
)
from revealmatch.stores.sql import (
    SqlBlockStore,
    SqlConversationStore,
    SqlCreditStore,
    SqlMatchStore,
    SqlProfileStore,
    SqlSubscriptionStore,
)
from revealmatch.utils.database import get_session_factory
from revealmatch.utils.errors import AuthenticationError, ConfigurationError, ForbiddenError
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """All services, wired over one set of stores."""

    def __init__(
        self,
        profiles: ProfileStore,
        matches: MatchStore,
        credit_store: CreditStore,
        conversation_store: ConversationStore,
        blocks: BlockStore,
        subscription_store: SubscriptionStore,
    ) -> None:
        self.subscriptions = SubscriptionService(subscription_store)
        self.credits = CreditService(credit_store, self.subscriptions)
        self.pool = CandidatePool(profiles, blocks)
        self.reservations = ReservationService(profiles, matches, self.pool, self.credits)
        self.conversations = ConversationService(conversation_store, matches, profiles)
        self.chat = ChatService(matches, conversation_store, blocks, self.credits, self.conversations)
        self.reconciliation = ReconciliationService(profiles, matches, self.credits)

    @classmethod
    def from_session_factory(cls, session_factory: async_sessionmaker[AsyncSession]) -> "ServiceContainer":
        """Build the container over the SQL stores."""
        return cls(
            profiles=SqlProfileStore(session_factory),
            matches=SqlMatchStore(session_factory),
            credit_store=SqlCreditStore(session_factory),
            conversation_store=SqlConversationStore(session_factory),
            blocks=SqlBlockStore(session_factory),
            subscription_store=SqlSubscriptionStore(session_factory),
        )


@lru_cache
def get_container() -> ServiceContainer:
    return ServiceContainer.from_session_factory(get_session_factory())


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the verified user
    id in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Missing user identity")
    return x_user_id.strip()


async def verify_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    """Guard for internal endpoints triggered by the scheduler."""
    if not settings.CRON_SECRET:
        raise ConfigurationError("CRON_SECRET is not configured")
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.CRON_SECRET):
        logger.error("Unauthorized cron attempt")
        raise ForbiddenError("Invalid cron secret")
