# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import requests
import redis

# only transport failures are worth another attempt; a 4xx or a
# WRONGTYPE reply will fail the same way every time
_HTTP_TRANSIENT = (requests.ConnectionError, requests.Timeout)
_REDIS_TRANSIENT = (redis.ConnectionError, redis.TimeoutError)


def http_retry(attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(_HTTP_TRANSIENT),
    )


def redis_retry(attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(_REDIS_TRANSIENT),
    )
