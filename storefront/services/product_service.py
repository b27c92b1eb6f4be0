# storefront/services/product_service.py
from typing import List
from uuid import UUID

import redis
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.data.redis_client import seller_products_key, type_products_key
from storefront.domain.errors import ProductNotFoundError, ProductNotOwnedError
from storefront.domain.schemas import Product, ProductIn, StockItem
from storefront.repos.product_repo import ProductRepo, to_product, to_products
from storefront.services.product_cache import NAME_LISTINGS_PATTERN, ProductCache, listing_keys
from storefront.tasks import cache_purge
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ADMIN_ROLE = "admin"


class ProductService:
    """
    Catalog use cases. Reads go through ProductCache; every write
    invalidates the product's cache keys before returning.
    """

    def __init__(
        self,
        db: Session,
        cache_client: redis.Redis,
        background_purge: bool = False,
        log=None,
    ):
        self.repo = ProductRepo(db)
        self.log = log or logger
        self.cache = ProductCache(cache_client, self.repo, log=self.log)
        self.background_purge = background_purge

    # query
    def get_product(self, product_id: UUID) -> Product:
        return self.cache.get(product_id)

    def get_products(self, ids: List[UUID]) -> List[Product]:
        return self.cache.get_many(ids)

    def list_products(self) -> List[Product]:
        return self.cache.get_all()

    def list_by_seller(self, seller_id: UUID) -> List[Product]:
        return self.cache.get_by_seller(seller_id)

    def search_by_name(self, name: str) -> List[Product]:
        return self.cache.get_by_name(name)

    def list_by_type(self, product_type: str) -> List[Product]:
        return self.cache.get_by_type(product_type)

    # commands
    def create_product(self, seller_id: UUID, payload: ProductIn) -> Product:
        row = self.repo.create(
            ProductModel(
                seller_id=seller_id,
                name=payload.name,
                price=payload.price,
                stock=payload.stock,
                discount=payload.discount,
                type=payload.type,
                description=payload.description or None,
            )
        )
        self.log.info(f"Seller {seller_id} created product {row.id}")
        product = to_product(row)
        self._invalidate(row.id, seller_products_key(seller_id), type_products_key(payload.type))
        self._schedule_purge([product], [], [NAME_LISTINGS_PATTERN])
        return product

    def update_product(self, product_id: UUID, payload: ProductIn, actor_id: UUID, role: str) -> Product:
        row = self._owned(product_id, actor_id, role)
        old_type = row.type or ""

        row = self.repo.update(
            row,
            name=payload.name,
            price=payload.price,
            stock=payload.stock,
            discount=payload.discount,
            type=payload.type,
            description=payload.description or None,
        )
        self.log.info(f"Product {product_id} updated by {actor_id}")
        self._invalidate(
            product_id,
            seller_products_key(row.seller_id),
            type_products_key(old_type),
            type_products_key(payload.type),
        )
        product = to_product(row)
        self._schedule_purge([product], [], [NAME_LISTINGS_PATTERN])
        return product

    def delete_product(self, product_id: UUID, actor_id: UUID, role: str) -> Product:
        row = self._owned(product_id, actor_id, role)
        row = self.repo.soft_delete(row)
        self.log.info(f"Product {product_id} deleted by {actor_id}")
        self._invalidate(product_id, seller_products_key(row.seller_id), type_products_key(row.type or ""))
        product = to_product(row)
        self._schedule_purge([product], [], [NAME_LISTINGS_PATTERN])
        return product

    def decrease_stock(self, items: List[StockItem]) -> List[Product]:
        """All lines or none: any line short of stock rolls back the batch."""
        try:
            rows = [self.repo.decrease_stock(i.product_id, i.quantity) for i in items]
            products = to_products(rows)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        self.log.info(f"Stock decreased for {len(products)} products")
        self.after_stock_change(products)
        return products

    def increase_stock(self, items: List[StockItem]) -> List[Product]:
        try:
            rows = [self.repo.increase_stock(i.product_id, i.quantity) for i in items]
            products = to_products(rows)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        self.log.info(f"Stock increased for {len(products)} products")
        self.after_stock_change(products)
        return products

    def reset_caches(self) -> int:
        return self.cache.invalidate_all()

    # helpers
    def _owned(self, product_id: UUID, actor_id: UUID, role: str) -> ProductModel:
        row = self.repo.get_by_id(product_id)
        if row is None:
            raise ProductNotFoundError(product_id)
        if role != ADMIN_ROLE and row.seller_id != actor_id:
            raise ProductNotOwnedError(product_id)
        return row

    def _invalidate(self, product_id: UUID, *extra_keys: str) -> None:
        try:
            self.cache.invalidate(product_id, *extra_keys)
        except redis.RedisError as e:
            # the write is already committed; TTL bounds the stale window
            self.log.error(f"Failed to clear product cache for {product_id}: {e}")

    def after_stock_change(self, products: List[Product]) -> None:
        """
        Synchronous invalidation of the touched products, then a detached
        purge of the listing keys they appear in.
        """
        if not products:
            return
        try:
            self.cache.invalidate_many([p.id for p in products])
        except redis.RedisError as e:
            self.log.error(f"Failed to invalidate caches after stock update: {e}")
        self._schedule_purge(products, listing_keys(products))

    def _schedule_purge(self, products: List[Product], keys: List[str], patterns: List[str] | None = None) -> None:
        if not self.background_purge:
            return
        try:
            cache_purge.purge_product_caches.delay([str(p.id) for p in products], keys, patterns or [])
        except Exception as e:
            # the synchronous pass already ran; only the widened purge is lost
            self.log.warning(f"Failed to queue cache purge for {len(products)} products: {e}")
