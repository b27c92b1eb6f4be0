# storefront/services/checkout_service.py
from datetime import datetime, timezone
from typing import List, Tuple
from uuid import UUID

import redis
from sqlalchemy.orm import Session

from storefront.domain.errors import (
    CartAlreadyCheckedOutError,
    CartEmptyError,
    EventPublishError,
    InfrastructureError,
)
from storefront.domain.schemas import CartItem, OrderCreatedEvent, OrderOut, Product
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo, to_products
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.product_cache import ProductCache, listing_keys
from storefront.utils.settings import CHECKOUT_LOCK_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Turns the user's materialized cart into an order.

    0. take the per-user checkout lock; held -> CartAlreadyCheckedOutError
    1. load the cart; empty -> CartEmptyError, nothing written
    2. one relational transaction: order row, then per line an order item
       (price copied from the product now) and a conditional stock
       decrement; then the total
    3. commit; any failure before this point rolls everything back
    4. after commit, best-effort: clear the ordered lines from redis and
       invalidate the products' cache keys and the seller and type
       listings they appear in
    5. publish OrderCreated; a publish failure raises EventPublishError,
       which carries the committed order

    The lock is released on every exit path.
    """

    def __init__(
        self,
        db: Session,
        cart_service: CartService,
        cart_store: CartStore,
        product_cache: ProductCache,
        notifier: NotificationService,
        locks: LockService | None = None,
        lock_ttl: int = CHECKOUT_LOCK_TTL_SECONDS,
        log=None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.products = ProductRepo(db)
        self.cart_service = cart_service
        self.cart_store = cart_store
        self.product_cache = product_cache
        self.notifier = notifier
        self.log = log or logger
        self.locks = locks or LockService(cart_store.redis, log=self.log)
        self.lock_ttl = lock_ttl

    def checkout(self, user_id: UUID) -> OrderOut:
        token = self._lock(user_id)
        try:
            return self._checkout(user_id)
        finally:
            self._unlock(user_id, token)

    def _checkout(self, user_id: UUID) -> OrderOut:
        cart = self.cart_service.get_cart(user_id)
        if not cart.items:
            raise CartEmptyError(user_id)

        order_out, products = self._place_order(user_id, cart.items)
        self.log.info(f"Order {order_out.id} committed for user {user_id}, total {order_out.total_amount}")

        self._clear_cart_lines(user_id, [i.product_id for i in order_out.items])
        self._invalidate_products(products)

        event = OrderCreatedEvent(
            order_id=str(order_out.id),
            user_id=str(user_id),
            total_amount=order_out.total_amount,
            order_date=order_out.order_date,
            product_ids=[str(i.product_id) for i in order_out.items],
            quantities={str(i.product_id): i.quantity for i in order_out.items},
        )
        try:
            self.notifier.publish_order_created(event)
        except Exception as e:
            self.log.error(f"Error publishing OrderCreated for order {order_out.id}: {e}")
            raise EventPublishError(order_out, e) from e

        return order_out

    def _lock(self, user_id: UUID) -> str:
        try:
            token = self.locks.acquire_checkout_lock(user_id, self.lock_ttl)
        except redis.RedisError as e:
            self.log.error(f"Failed to take checkout lock for user {user_id}: {e}")
            raise InfrastructureError(f"checkout lock unavailable: {e}") from e
        if token is None:
            self.log.warning(f"Checkout already in progress for user {user_id}")
            raise CartAlreadyCheckedOutError(user_id)
        return token

    def _unlock(self, user_id: UUID, token: str) -> None:
        try:
            self.locks.release_checkout_lock(user_id, token)
        except redis.RedisError as e:
            # the lock still expires on its own after lock_ttl
            self.log.warning(f"Failed to release checkout lock for user {user_id}: {e}")

    def _place_order(self, user_id: UUID, lines: List[CartItem]) -> Tuple[OrderOut, List[Product]]:
        try:
            order = self.orders.create_order(user_id, datetime.now(timezone.utc))
            total = 0
            rows = []
            for line in lines:
                self.orders.add_item(order, line.product_id, line.quantity, line.price)
                # raises InsufficientStockError when the row has fewer than quantity left
                rows.append(self.products.decrease_stock(line.product_id, line.quantity))
                total += line.price * line.quantity
            self.orders.update_total(order, total)
            self.db.commit()
        except BaseException:
            # also covers KeyboardInterrupt / cancellation mid-transaction
            self.db.rollback()
            raise
        return OrderOut.model_validate(order), to_products(rows)

    def _clear_cart_lines(self, user_id: UUID, product_ids: List[UUID]) -> None:
        for product_id in product_ids:
            try:
                self.cart_store.remove(user_id, product_id)
            except Exception as e:
                self.log.warning(
                    f"Failed to clear product {product_id} from user {user_id}'s cart after checkout: {e}"
                )

    def _invalidate_products(self, products: List[Product]) -> None:
        try:
            self.product_cache.invalidate_many([p.id for p in products], *listing_keys(products))
        except redis.RedisError as e:
            self.log.error(f"Failed to invalidate product caches after checkout: {e}")
