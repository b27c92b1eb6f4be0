# storefront/data/redis_client.py
import redis

from storefront.utils.settings import REDIS_URL, REDIS_SOCKET_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def make_redis(url: str | None = None, socket_timeout: float | None = None) -> redis.Redis:
    """
    Shared client; redis-py keeps a connection pool per client so one
    instance is safe to use from every request thread.
    """
    timeout = REDIS_SOCKET_TIMEOUT if socket_timeout is None else socket_timeout
    client = redis.Redis.from_url(
        url or REDIS_URL,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        health_check_interval=30,
    )
    logger.info(f"Redis client created for {url or REDIS_URL} (timeout {timeout}s)")
    return client


# cache and cart key namespace
def product_key(product_id) -> str:
    return f"product:{product_id}"


ALL_PRODUCTS_KEY = "all_products"


def seller_products_key(seller_id) -> str:
    return f"products_by_seller:{seller_id}"


def name_products_key(name: str) -> str:
    return f"products_by_name:{name}"


def type_products_key(product_type: str) -> str:
    return f"products_by_type:{product_type}"


def cart_key(user_id) -> str:
    return f"cart:{user_id}"


def checkout_lock_key(user_id) -> str:
    return f"checkout:{user_id}"
