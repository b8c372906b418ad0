"""Services package for the RevealMatch service."""

from revealmatch.services.candidate_pool import CandidatePool
from revealmatch.services.chat_service import ChatService
from revealmatch.services.compatibility import calculate_compatibility_score
from revealmatch.services.conversation_service import ConversationService
from revealmatch.services.credit_service import CreditService
from revealmatch.services.matching_service import select_global, select_locality, select_match, select_proximity
from revealmatch.services.reconciliation_service import ReconciliationService
from revealmatch.services.reservation_service import ReservationService
from revealmatch.services.subscription_service import SubscriptionService

__all__ = [
    "CandidatePool",
    "ChatService",
    "ConversationService",
    "CreditService",
    "ReconciliationService",
    "ReservationService",
    "SubscriptionService",
    "calculate_compatibility_score",
    "select_global",
    "select_locality",
    "select_match",
    "select_proximity",
]
