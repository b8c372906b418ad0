"""Credit ledger for the RevealMatch service."""

import uuid
from typing import List, Optional

import sentry_sdk

from revealmatch.config import settings
from revealmatch.models import (
    CanStartReason,
    CanStartResult,
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from revealmatch.services.subscription_service import SubscriptionService
from revealmatch.stores.base import CreditStore
from revealmatch.utils.database import utcnow
from revealmatch.utils.errors import NotFoundError, PendingTransactionExistsError, TransactionStateError
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)


class CreditService:
    """
    Credit ledger.

    Each conversation start is paid for through a usage transaction that is
    created `pending` when the match is made and moves exactly once to
    `confirmed` (credit debited, on the first message) or `cancelled` (credit
    kept). All transitions are conditional on the current status at the
    store, so a transaction can never be debited twice.
    """

    def __init__(self, store: CreditStore, subscriptions: SubscriptionService) -> None:
        self.store = store
        self.subscriptions = subscriptions

    async def can_start(self, user_id: str) -> CanStartResult:
        """
        Check whether a user may start a conversation.

        Args:
            user_id (str): The paying user.

        Returns:
            CanStartResult: allowed flag and the reason behind it.
        """
        with sentry_sdk.start_span(op="credit.can_start", name=user_id) as span:
            if await self.subscriptions.is_subscribed(user_id):
                result = CanStartResult(allowed=True, reason=CanStartReason.SUBSCRIBED)
            elif await self.store.get_balance(user_id) >= settings.CONVERSATION_COST:
                result = CanStartResult(allowed=True, reason=CanStartReason.HAS_CREDITS)
            else:
                result = CanStartResult(allowed=False, reason=CanStartReason.NO_CREDITS)

            span.set_data("reason", result.reason.value)
            return result

    async def get_pending(self, user_id: str) -> Optional[CreditTransaction]:
        """Get the user's open pending transaction, if any."""
        return await self.store.find_pending_for_user(user_id)

    async def create_pending(self, user_id: str, match_id: str) -> CreditTransaction:
        """
        Open a pending usage transaction for a match.

        Args:
            user_id (str): The paying user.
            match_id (str): The match the transaction pays for.

        Returns:
            CreditTransaction: The stored pending transaction.

        Raises:
            PendingTransactionExistsError: If the user already has an open transaction.
        """
        with sentry_sdk.start_span(op="credit.create_pending", name=user_id) as span:
            existing = await self.store.find_pending_for_user(user_id)
            if existing is not None:
                span.set_status("already_exists")
                raise PendingTransactionExistsError(
                    "A pending transaction already exists for this user",
                    details={"user_id": user_id, "transaction_id": existing.id, "match_id": existing.match_id},
                )

            now = utcnow()
            transaction = CreditTransaction(
                id=str(uuid.uuid4()),
                user_id=user_id,
                amount=-settings.CONVERSATION_COST,
                type=TransactionType.USAGE,
                status=TransactionStatus.PENDING,
                description="Conversation start",
                match_id=match_id,
                created_at=now,
                updated_at=now,
            )
            # The store's unique index is the authority if two requests race past the check above
            stored = await self.store.insert_transaction(transaction)
            logger.info("Pending transaction created", user_id=user_id, transaction_id=stored.id, match_id=match_id)
            return stored

    async def _get_owned(self, transaction_id: str, user_id: str) -> CreditTransaction:
        transaction = await self.store.get_transaction(transaction_id, user_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction not found: {transaction_id}",
                details={"transaction_id": transaction_id, "user_id": user_id},
            )
        return transaction

    async def confirm(self, transaction_id: str, user_id: str) -> bool:
        """
        Confirm a pending transaction and debit its cost.

        Confirming an already confirmed transaction is a no-op. Subscribers
        are confirmed without a debit.

        Args:
            transaction_id (str): Transaction to confirm.
            user_id (str): Owner of the transaction.

        Returns:
            bool: True if this call confirmed the transaction, False if it already was.

        Raises:
            NotFoundError: If the transaction does not exist for the user.
            TransactionStateError: If the transaction was cancelled.
            InsufficientCreditsError: If the balance no longer covers the cost.
        """
        with sentry_sdk.start_span(op="credit.confirm", name=transaction_id) as span:
            transaction = await self._get_owned(transaction_id, user_id)

            if transaction.status == TransactionStatus.CONFIRMED:
                span.set_data("result", "already_confirmed")
                logger.info("Transaction already confirmed", transaction_id=transaction_id, user_id=user_id)
                return False
            if transaction.status == TransactionStatus.CANCELLED:
                span.set_status("failed_precondition")
                raise TransactionStateError(
                    "Cannot confirm a cancelled transaction",
                    details={"transaction_id": transaction_id, "status": transaction.status.value},
                )

            if await self.subscriptions.is_subscribed(user_id):
                confirmed = await self.store.update_transaction_status(
                    transaction_id,
                    user_id,
                    TransactionStatus.PENDING,
                    TransactionStatus.CONFIRMED,
                    description="Conversation start (subscription)",
                )
            else:
                confirmed = await self.store.confirm_and_debit(transaction_id, user_id, abs(transaction.amount))

            if not confirmed:
                # Lost a race with another confirm or cancel; report whichever won
                current = await self._get_owned(transaction_id, user_id)
                if current.status == TransactionStatus.CANCELLED:
                    raise TransactionStateError(
                        "Cannot confirm a cancelled transaction",
                        details={"transaction_id": transaction_id, "status": current.status.value},
                    )
                span.set_data("result", "already_confirmed")
                return False

            span.set_data("result", "confirmed")
            logger.info("Transaction confirmed", transaction_id=transaction_id, user_id=user_id)
            return True

    async def cancel(self, transaction_id: str, user_id: str, reason: str) -> None:
        """
        Cancel a pending transaction without debiting.

        Raises:
            NotFoundError: If the transaction does not exist for the user.
            TransactionStateError: If the transaction is not pending.
        """
        with sentry_sdk.start_span(op="credit.cancel", name=transaction_id) as span:
            transaction = await self._get_owned(transaction_id, user_id)
            cancelled = transaction.status == TransactionStatus.PENDING and await self.store.update_transaction_status(
                transaction_id,
                user_id,
                TransactionStatus.PENDING,
                TransactionStatus.CANCELLED,
                description=reason,
            )
            if not cancelled:
                span.set_status("failed_precondition")
                raise TransactionStateError(
                    "Only pending transactions can be cancelled",
                    details={"transaction_id": transaction_id, "status": transaction.status.value},
                )

            logger.info("Transaction cancelled", transaction_id=transaction_id, user_id=user_id, reason=reason)

    async def get_balance(self, user_id: str) -> int:
        return await self.store.get_balance(user_id)

    async def get_history(self, user_id: str, limit: int = 50) -> List[CreditTransaction]:
        """Most recent transactions first."""
        return await self.store.list_transactions(user_id, limit)
