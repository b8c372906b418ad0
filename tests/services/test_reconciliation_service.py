import pytest

from revealmatch.models import TransactionStatus
from revealmatch.services import reconciliation_service
from revealmatch.utils.database import utcnow
from tests.mocks.profiles import make_man, make_profile


@pytest.fixture
def sweep(container):
    return container.reconciliation


@pytest.fixture
async def matched(stores, container):
    stores.profiles.add(make_profile("alice"))
    stores.profiles.add(make_man("bob"))
    result = await container.reservations.find_match("alice")
    assert result.matched
    return result.match


async def test_abandoned_match_is_released(stores, sweep, matched, later):
    pending = await stores.credits.find_pending_for_user("alice")

    freed = await sweep.reconcile(now=later)

    assert freed == 2
    assert not stores.matches.matches[matched.id].is_active
    transaction = stores.credits.transactions[pending.id]
    assert transaction.status == TransactionStatus.CANCELLED
    assert transaction.description == reconciliation_service.ABANDONED_REASON
    assert stores.profiles.profiles["alice"].credits == 1
    assert not stores.profiles.profiles["alice"].in_conversation
    assert not stores.profiles.profiles["bob"].in_conversation


async def test_recent_match_is_kept(stores, sweep, matched):
    assert await sweep.reconcile(now=utcnow()) == 0
    assert stores.matches.matches[matched.id].is_active


async def test_started_conversation_is_kept(stores, container, sweep, matched, later):
    await container.chat.start_conversation("alice", matched.id)

    assert await sweep.reconcile(now=later) == 0
    assert stores.profiles.profiles["alice"].in_conversation
    assert stores.profiles.profiles["bob"].in_conversation


async def test_orphaned_reservation_is_released(stores, sweep, later):
    stores.profiles.add(make_profile("carol"))
    await stores.profiles.try_reserve("carol", utcnow())

    assert await sweep.reconcile(now=later) == 1
    assert not stores.profiles.profiles["carol"].in_conversation


async def test_fresh_reservation_is_kept(stores, sweep):
    stores.profiles.add(make_profile("carol"))
    await stores.profiles.try_reserve("carol", utcnow())

    assert await sweep.reconcile(now=utcnow()) == 0
    assert stores.profiles.profiles["carol"].in_conversation


async def test_sweep_is_idempotent(stores, sweep, matched, later):
    stores.profiles.add(make_profile("carol"))
    await stores.profiles.try_reserve("carol", utcnow())

    assert await sweep.reconcile(now=later) == 3
    assert await sweep.reconcile(now=later) == 0
