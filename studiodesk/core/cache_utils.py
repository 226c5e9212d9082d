"""
Caching utilities for expensive report queries
Keys carry a generation counter so a whole family can be invalidated
without scanning the cache backend.
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes

DASHBOARD_PREFIX = 'dashboard'
REPORTS_PREFIX = 'reports'


def _generation_key(prefix):
    return f"{prefix}:generation"


def get_generation(prefix):
    generation = cache.get(_generation_key(prefix))
    if generation is None:
        generation = 1
        cache.add(_generation_key(prefix), generation, None)
    return generation


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{get_generation(prefix)}:{key_hash}"


def get_cached(prefix, *args, **kwargs):
    """
    Look up a cached value
    Returns tuple: (cached_data, cache_key)
    """
    cache_key = make_cache_key(prefix, *args, **kwargs)
    try:
        cached_data = cache.get(cache_key)
    except Exception as e:
        logger.warning(f"Cache read failed for {cache_key}: {str(e)}")
        return None, cache_key
    if cached_data is not None:
        logger.debug(f"Cache HIT for {prefix}: {cache_key}")
    else:
        logger.debug(f"Cache MISS for {prefix}: {cache_key}")
    return cached_data, cache_key


def set_cached(cache_key, data, ttl):
    try:
        cache.set(cache_key, data, ttl)
    except Exception as e:
        logger.warning(f"Cache write failed for {cache_key}: {str(e)}")


def invalidate_prefix(prefix):
    """Bump the generation so every key built for `prefix` becomes unreachable"""
    try:
        try:
            cache.incr(_generation_key(prefix))
        except ValueError:
            # Counter missing or evicted
            cache.set(_generation_key(prefix), 2, None)
        logger.debug(f"Invalidated cache family: {prefix}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache family {prefix}: {str(e)}")


def invalidate_report_caches():
    """Invalidate dashboard and report caches"""
    invalidate_prefix(DASHBOARD_PREFIX)
    invalidate_prefix(REPORTS_PREFIX)
