"""pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.pop("REDIS_URL", None)
os.environ.pop("SENTRY_DSN", None)

import pytest  # noqa: E402

from revealmatch.api.dependencies import ServiceContainer  # noqa: E402
from revealmatch.utils.database import utcnow  # noqa: E402
from tests.mocks.stores import (  # noqa: E402
    FakeBlockStore,
    FakeConversationStore,
    FakeCreditStore,
    FakeMatchStore,
    FakeProfileStore,
    FakeSubscriptionStore,
)


class FakeStores:
    """One consistent set of in-memory stores."""

    def __init__(self) -> None:
        self.profiles = FakeProfileStore()
        self.conversations = FakeConversationStore()
        self.matches = FakeMatchStore(self.conversations)
        self.credits = FakeCreditStore(self.profiles)
        self.blocks = FakeBlockStore()
        self.subscriptions = FakeSubscriptionStore()


@pytest.fixture
def stores() -> FakeStores:
    return FakeStores()


@pytest.fixture
def container(stores: FakeStores) -> ServiceContainer:
    return ServiceContainer(
        profiles=stores.profiles,
        matches=stores.matches,
        credit_store=stores.credits,
        conversation_store=stores.conversations,
        blocks=stores.blocks,
        subscription_store=stores.subscriptions,
    )


@pytest.fixture
def later() -> datetime:
    """A reference time well past every grace window."""
    return utcnow() + timedelta(days=1)
