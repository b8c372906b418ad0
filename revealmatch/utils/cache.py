"""Redis cache utilities for the RevealMatch service."""

import json
from typing import Any, Dict, Optional, Type, TypeVar, Union

import redis.asyncio as redis
import sentry_sdk
from pydantic import BaseModel

from revealmatch.config import settings
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class RedisClient:
    """
    Singleton class for the Redis client.

    Manages the Redis connection pool and provides a unified access point
    for caching operations. Caching is best effort: when Redis is not
    configured or cannot be reached every operation becomes a no-op.
    """

    _instance: Optional[redis.Redis] = None
    _failed: bool = False

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """
        Get or create a Redis client instance.

        Returns:
            Optional[redis.Redis]: Redis client instance or None if unavailable.
        """
        if cls._failed:
            return None

        if cls._instance is None:
            try:
                if settings.REDIS_URL:
                    pool = redis.ConnectionPool.from_url(
                        settings.REDIS_URL,
                        max_connections=10,
                        decode_responses=True,
                    )
                    cls._instance = redis.Redis(connection_pool=pool)
                    logger.info("Redis client initialized")
                else:
                    logger.warning(
                        "No Redis configuration found, caching will be disabled",
                        details={"message": "REDIS_URL is not configured"},
                    )
                    cls._failed = True
                    return None
            except Exception as e:
                logger.warning(
                    "Failed to initialize Redis client, caching will be disabled",
                    error=str(e),
                )
                cls._failed = True
                return None
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        """Close the connection pool, if one was opened."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None


async def set_cache(key: str, value: Union[str, Dict[str, Any], BaseModel], expiration: Optional[int] = None) -> None:
    """
    Set a value in the Redis cache.

    Serializes strings, dicts or Pydantic models before storage and always
    applies an expiration.

    Args:
        key (str): Cache key.
        value (Union[str, Dict[str, Any], BaseModel]): Value to cache.
        expiration (Optional[int]): Seconds to live; defaults to CACHE_TTL_SECONDS.
    """
    expiration = expiration or settings.CACHE_TTL_SECONDS
    with sentry_sdk.start_span(op="cache.set", name=key) as span:
        span.set_data("expiration", expiration)

        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return

        try:
            if isinstance(value, BaseModel):
                cache_value = value.model_dump_json()
            elif isinstance(value, dict):
                cache_value = json.dumps(value)
            else:
                cache_value = str(value)

            await client.set(key, cache_value, ex=expiration)
            logger.debug("Cache set", key=key, expiration=expiration)
            span.set_data("status", "success")
        except Exception as e:
            logger.warning("Failed to set cache, continuing without cache", key=key, error=str(e))
            span.set_status("internal_error")


async def get_cache(key: str) -> Optional[str]:
    """
    Get a string value from the Redis cache.

    Args:
        key (str): Cache key.

    Returns:
        Optional[str]: Cached value or None if missing or Redis is unavailable.
    """
    with sentry_sdk.start_span(op="cache.get", name=key) as span:
        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return None

        try:
            value: Optional[str] = await client.get(key)
            span.set_data("status", "hit" if value else "miss")
            return value or None
        except Exception as e:
            logger.warning("Failed to get cache", key=key, error=str(e))
            span.set_status("internal_error")
            return None


async def get_cache_model(key: str, model_class: Type[T]) -> Optional[T]:
    """
    Get a Pydantic model from the Redis cache.

    Args:
        key (str): Cache key.
        model_class (Type[T]): Pydantic model class to validate against.

    Returns:
        Optional[T]: Model instance, or None on a miss or a corrupt entry.
    """
    value = await get_cache(key)
    if not value:
        return None
    try:
        return model_class.model_validate_json(value)
    except Exception as e:
        logger.error("Failed to parse cached model", key=key, model=model_class.__name__, error=str(e))
        return None


async def delete_cache(key: str) -> None:
    """
    Delete a value from the Redis cache.

    Args:
        key (str): Cache key.
    """
    with sentry_sdk.start_span(op="cache.delete", name=key) as span:
        client = RedisClient.get_client()
        if client is None:
            span.set_data("status", "disabled")
            return

        try:
            await client.delete(key)
            logger.debug("Cache deleted", key=key)
            span.set_data("status", "success")
        except Exception as e:
            logger.warning("Failed to delete cache, continuing without cache", key=key, error=str(e))
            span.set_status("internal_error")
