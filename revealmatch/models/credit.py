"""Credit transaction models for the RevealMatch service."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TransactionType(str, Enum):
    """Kind of credit movement."""

    PURCHASE = "purchase"
    USAGE = "usage"


class TransactionStatus(str, Enum):
    """
    Credit transaction status.

    `pending` is the only non-terminal state; a transaction leaves it exactly
    once, either to `confirmed` (credit debited) or `cancelled` (credit kept).
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CreditTransaction(BaseModel):
    """One credit-affecting event."""

    id: str
    user_id: str
    amount: int  # negative for usage
    type: TransactionType
    status: TransactionStatus = TransactionStatus.PENDING
    description: str = ""
    match_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class CanStartReason(str, Enum):
    """Why a user may or may not start a conversation."""

    SUBSCRIBED = "subscribed"
    HAS_CREDITS = "has_credits"
    NO_CREDITS = "no_credits"


class CanStartResult(BaseModel):
    """Answer of the credit gate."""

    allowed: bool
    reason: CanStartReason
