# storefront/tasks/cache_purge.py
from typing import List

from celery.exceptions import SoftTimeLimitExceeded

from storefront.celery_worker import celery_app
from storefront.data.redis_client import make_redis
from storefront.services.product_cache import ProductCache
from storefront.utils.settings import CACHE_PURGE_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_client = None


def purge_client():
    """Worker-side redis client with the short purge timeout."""
    global _client
    if _client is None:
        _client = make_redis(socket_timeout=CACHE_PURGE_TIMEOUT_SECONDS)
    return _client


@celery_app.task(
    name="storefront.tasks.cache_purge.purge_product_caches",
    ignore_result=True,
    soft_time_limit=CACHE_PURGE_TIMEOUT_SECONDS,
    time_limit=CACHE_PURGE_TIMEOUT_SECONDS + 5,
)
def purge_product_caches(product_ids: List[str], keys: List[str], patterns: List[str] | None = None):
    """
    Second, wider invalidation pass after a product write: the products'
    own keys, the listing keys they appear in and, for searches that
    cannot be enumerated up front, every key matching ``patterns``.
    """
    cache = ProductCache(purge_client(), repo=None, log=logger)
    try:
        removed = cache.invalidate_many(product_ids, *keys)
        for pattern in patterns or []:
            removed += cache.invalidate_matching(pattern)
    except SoftTimeLimitExceeded:
        logger.error(f"Cache purge for {len(product_ids)} products timed out")
        return
    except Exception as e:
        logger.error(f"Cache purge for {len(product_ids)} products failed: {e}")
        return
    logger.info(f"Cache purge removed {removed} keys")
