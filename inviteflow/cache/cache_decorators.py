"""
Cache decorators for easy function result caching.

Keys have the shape ``<prefix>:<scope>:<hash>`` where ``scope`` is the value
of the argument named by ``scope_arg`` (usually the event id). Invalidation
can then target one event with ``<prefix>:<event_id>:*``.
"""
import hashlib
import inspect
import json
from functools import wraps
from typing import Callable, Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from inviteflow.cache import redis_client
from inviteflow.core.config import settings
from inviteflow.core.logging import logger


def cached(key_prefix: str, expire: Optional[int] = None, scope_arg: Optional[str] = None):
    """
    Decorator to cache async function results with configurable TTL.

    Args:
        key_prefix: Prefix for the cache key
        expire: Expiration time in seconds (default: CACHE_TTL_SECONDS)
        scope_arg: Name of the argument whose value is embedded in the key

    Usage:
        @cached('analytics', scope_arg='event_id')
        async def event_stats(db, event_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            scope = str(bound.arguments.get(scope_arg, "all")) if scope_arg else "all"
            cache_key = f"{key_prefix}:{scope}:{_generate_key_from_args(bound.arguments)}"

            cached_value = await redis_client.cache.get(cache_key)
            if cached_value is not None:
                logger.debug(f"Cache hit for key: {cache_key}")
                return cached_value

            logger.debug(f"Cache miss for key: {cache_key}")
            result = await func(*args, **kwargs)
            await redis_client.cache.set(cache_key, result, expire or settings.CACHE_TTL_SECONDS)
            return result
        return wrapper
    return decorator


def _generate_key_from_args(arguments: dict) -> str:
    """MD5 of the call arguments, ignoring database sessions."""
    key_data = {
        name: str(value)
        for name, value in arguments.items()
        if not isinstance(value, AsyncSession)
    }
    key_string = json.dumps(key_data, sort_keys=True)
    return hashlib.md5(key_string.encode()).hexdigest()
