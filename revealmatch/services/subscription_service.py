"""Subscription status lookups for the RevealMatch service."""

import sentry_sdk

from revealmatch.stores.base import SubscriptionStore
from revealmatch.utils.cache import get_cache, set_cache
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)

# Cache keys
SUBSCRIPTION_CACHE_KEY = "subscription:{user_id}"


class SubscriptionService:
    """Answers whether a user currently holds an active subscription."""

    def __init__(self, store: SubscriptionStore) -> None:
        self.store = store

    async def is_subscribed(self, user_id: str) -> bool:
        with sentry_sdk.start_span(op="subscription.check", name=user_id) as span:
            cache_key = SUBSCRIPTION_CACHE_KEY.format(user_id=user_id)
            cached = await get_cache(cache_key)
            if cached is not None:
                span.set_data("source", "cache")
                return cached == "1"

            subscribed = await self.store.is_subscribed(user_id)
            await set_cache(cache_key, "1" if subscribed else "0")
            span.set_data("source", "database")
            logger.debug("Subscription status loaded", user_id=user_id, subscribed=subscribed)
            return subscribed
