# storefront/services/product_cache.py
from typing import Callable, Iterable, List, TypeVar
from uuid import UUID

import redis
from pydantic import TypeAdapter, ValidationError

from storefront.data.redis_client import (
    ALL_PRODUCTS_KEY,
    name_products_key,
    product_key,
    seller_products_key,
    type_products_key,
)
from storefront.domain.errors import ProductNotFoundError
from storefront.domain.schemas import Product
from storefront.repos.product_repo import ProductRepo, to_product, to_products
from storefront.utils.retry import redis_retry
from storefront.utils.settings import PRODUCT_CACHE_TTL_SECONDS, PRODUCT_BATCH_CACHE_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_product_list = TypeAdapter(List[Product])


class ProductCache:
    """
    Read-through cache over ProductRepo.

    - reads: cache hit -> return; miss or unparseable value -> repo, then
      write back with a TTL
    - redis down: reads pass straight through to the repo
    - cache writes are best-effort (logged, never raised)
    - invalidate() is synchronous and must run on every product write
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        repo: ProductRepo,
        ttl: int = PRODUCT_CACHE_TTL_SECONDS,
        batch_ttl: int = PRODUCT_BATCH_CACHE_TTL_SECONDS,
        log=None,
    ):
        self.redis = redis_client
        self.repo = repo
        self.ttl = ttl
        self.batch_ttl = batch_ttl
        self.log = log or logger

    # =====================================================
    # helpers
    # =====================================================
    def _read(self, key: str, parse: Callable[[str], T]) -> T | None:
        try:
            raw = self.redis.get(key)
        except redis.RedisError as e:
            self.log.warning(f"Cache GET {key} failed, falling back to store: {e}")
            return None
        except UnicodeDecodeError:
            self.log.warning(f"Cache value under {key} is not valid UTF-8, treating as miss")
            return None
        if raw is None:
            return None
        try:
            return parse(raw)
        except ValidationError as e:
            self.log.warning(f"Cache value under {key} is unreadable, treating as miss: {e}")
            return None

    def _write(self, key: str, payload: str, ttl: int) -> None:
        try:
            self.redis.set(key, payload, ex=ttl)
        except redis.RedisError as e:
            self.log.warning(f"Failed to set cache {key}: {e}")

    def _read_through_list(self, key: str, load: Callable[[], list]) -> List[Product]:
        cached = self._read(key, _product_list.validate_json)
        if cached is not None:
            self.log.info(f"Cache hit {key}")
            return cached

        products = to_products(load())
        self._write(key, _product_list.dump_json(products).decode(), self.ttl)
        return products

    # =====================================================
    # reads
    # =====================================================
    def get(self, product_id: UUID) -> Product:
        key = product_key(product_id)
        cached = self._read(key, Product.model_validate_json)
        if cached is not None:
            self.log.debug(f"Cache hit {key}")
            return cached

        row = self.repo.get_by_id(product_id)
        if row is None:
            raise ProductNotFoundError(product_id)

        product = to_product(row)
        self._write(key, product.model_dump_json(), self.ttl)
        return product

    def get_many(self, ids: Iterable[UUID]) -> List[Product]:
        """
        One MGET for every key, one store query for whatever missed, one
        pipeline to write the misses back. Unknown ids are simply absent
        from the result. Order follows ``ids``.
        """
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []

        found: dict[UUID, Product] = {}
        keys = [product_key(pid) for pid in wanted]
        try:
            values = self.redis.mget(keys)
        except redis.RedisError as e:
            self.log.warning(f"MGET failed, loading {len(wanted)} products from store: {e}")
            values = [None] * len(wanted)
        except UnicodeDecodeError:
            # one undecodable value spoils the whole reply; read key by key
            self.log.warning(f"MGET returned a non UTF-8 value, reading {len(keys)} keys one by one")
            values = [self._read(k, str) for k in keys]

        for pid, raw in zip(wanted, values):
            if raw is None:
                continue
            try:
                found[pid] = Product.model_validate_json(raw)
            except ValidationError:
                self.log.warning(f"Cache value for product {pid} is unreadable, treating as miss")

        missed = [pid for pid in wanted if pid not in found]
        if missed:
            self.log.info(f"Cache miss for {len(missed)} of {len(wanted)} products")
            fetched = to_products(self.repo.get_by_ids(missed))
            for product in fetched:
                found[product.id] = product
            self._write_many(fetched)

        return [found[pid] for pid in wanted if pid in found]

    def _write_many(self, products: List[Product]) -> None:
        if not products:
            return
        try:
            pipe = self.redis.pipeline(transaction=False)
            for product in products:
                pipe.set(product_key(product.id), product.model_dump_json(), ex=self.batch_ttl)
            pipe.execute()
        except redis.RedisError as e:
            self.log.error(f"Failed to write {len(products)} products back to cache: {e}")

    def get_all(self) -> List[Product]:
        return self._read_through_list(ALL_PRODUCTS_KEY, self.repo.list_all)

    def get_by_seller(self, seller_id: UUID) -> List[Product]:
        return self._read_through_list(
            seller_products_key(seller_id), lambda: self.repo.list_by_seller(seller_id)
        )

    def get_by_name(self, name: str) -> List[Product]:
        return self._read_through_list(name_products_key(name), lambda: self.repo.search_by_name(name))

    def get_by_type(self, product_type: str) -> List[Product]:
        return self._read_through_list(
            type_products_key(product_type), lambda: self.repo.list_by_type(product_type)
        )

    # =====================================================
    # invalidation
    # =====================================================
    @redis_retry()
    def invalidate(self, product_id: UUID, *extra_keys: str) -> None:
        keys = [product_key(product_id), ALL_PRODUCTS_KEY, *extra_keys]
        self.redis.delete(*keys)
        self.log.info(f"Cache keys {keys} invalidated")

    @redis_retry()
    def invalidate_many(self, product_ids: Iterable[UUID], *extra_keys: str) -> int:
        keys = [ALL_PRODUCTS_KEY, *extra_keys, *(product_key(pid) for pid in product_ids)]
        removed = self.redis.delete(*keys)
        self.log.info(f"Invalidated {len(keys)} cache keys ({removed} present)")
        return removed

    def invalidate_matching(self, pattern: str, batch: int = 100) -> int:
        """SCAN-and-delete every key matching ``pattern``; never KEYS."""
        removed = 0
        chunk: list[str] = []
        for key in self.redis.scan_iter(match=pattern, count=batch):
            chunk.append(key)
            if len(chunk) >= batch:
                removed += self.redis.delete(*chunk)
                chunk = []
        if chunk:
            removed += self.redis.delete(*chunk)
        return removed

    def invalidate_all(self, batch: int = 100) -> int:
        self.log.info("Starting to reset ALL product caches...")
        removed = self.redis.delete(ALL_PRODUCTS_KEY)
        for pattern in ("product:*", "products_by_*"):
            removed += self.invalidate_matching(pattern, batch)
        self.log.info(f"Successfully reset {removed} product cache keys")
        return removed


def listing_keys(products: Iterable[Product]) -> List[str]:
    """Seller and type listing keys the given products appear under."""
    products = list(products)
    keys = {seller_products_key(p.seller_id) for p in products}
    keys |= {type_products_key(p.type) for p in products if p.type}
    return sorted(keys)


# name searches are keyed by the search term, so they can only be found by scanning
NAME_LISTINGS_PATTERN = "products_by_name:*"
