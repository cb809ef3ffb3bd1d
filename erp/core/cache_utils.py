"""
Caching utilities for expensive report queries
Uses Redis (django-redis) in production, the local-memory cache otherwise
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

REPORTS_NAMESPACE = 'reports'


def get_reports_cache_ttl():
    return getattr(settings, 'REPORTS_CACHE_TTL', 300)


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_namespace_version(namespace):
    version = cache.get(f"{namespace}:version")
    if version is None:
        version = 1
        cache.set(f"{namespace}:version", version, None)
    return version


def namespaced_key(namespace, prefix, *args, **kwargs):
    """Cache key that changes whenever the namespace is invalidated"""
    version = get_namespace_version(namespace)
    return make_cache_key(f"{namespace}:v{version}:{prefix}", *args, **kwargs)


def cached_query(cache_ttl=None, key_prefix="query", namespace=REPORTS_NAMESPACE):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(key_prefix="dashboard_stats")
        def build_dashboard_stats(store_id):
            # expensive query here
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = namespaced_key(namespace, key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl if cache_ttl is not None else get_reports_cache_ttl())
            return result
        return wrapper
    return decorator


def uses_redis():
    backend = settings.CACHES.get('default', {}).get('BACKEND', '')
    return backend.startswith('django_redis')


def invalidate_cache_pattern(pattern):
    """
    Delete all Redis keys matching a pattern
    Note: This requires Redis with SCAN command support
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_namespace(namespace):
    """Bump the namespace version; old keys expire on their own or are scanned away on Redis"""
    key = f"{namespace}:version"
    try:
        cache.incr(key)
    except ValueError:
        cache.set(key, 2, None)
    if uses_redis():
        invalidate_cache_pattern(f"{namespace}:v")


def invalidate_reports_cache():
    """Invalidate dashboard and report caches"""
    invalidate_namespace(REPORTS_NAMESPACE)
    logger.debug("Invalidated reports cache")
