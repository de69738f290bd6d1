"""
Cache utilities for the pick'em engine
Provides a query caching decorator and generation-based invalidation
"""

import functools

from flask import current_app

from pickem import cache

LEADERBOARD = "leaderboard"


def _generation_key(model_name):
    return f"generation_{model_name}"


def get_generation(model_name):
    """Current cache generation for a model; bumped on every invalidation"""
    return cache.get(_generation_key(model_name)) or 0


def cached_query(model_name, timeout=None):
    """
    Decorator for caching query results

    Args:
        model_name: Name of the model for cache key generation
        timeout: Cache timeout in seconds (default LEADERBOARD_CACHE_TIMEOUT)
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            args_str = "_".join(str(arg) for arg in args)
            kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
            generation = get_generation(model_name)
            cache_key = f"query_{model_name}_{generation}_{f.__name__}_{args_str}_{kwargs_str}"

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Query cache hit: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(
                cache_key,
                result,
                timeout=timeout or current_app.config.get("LEADERBOARD_CACHE_TIMEOUT", 60),
            )
            current_app.logger.debug(f"Query cache set: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_model_cache(model_name):
    """
    Invalidate all cache entries for a specific model

    SimpleCache cannot delete by pattern, so entries are orphaned by moving
    the model to a new generation and left to expire.
    """
    try:
        generation = get_generation(model_name) + 1
        cache.set(_generation_key(model_name), generation, timeout=0)
        current_app.logger.info(f"Cache invalidated for {model_name} (generation {generation})")
    except Exception as e:
        current_app.logger.error(f"Failed to invalidate cache for {model_name}: {e}")


def get_cache_stats():
    """Get cache statistics"""
    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
        "leaderboard_generation": get_generation(LEADERBOARD),
    }
