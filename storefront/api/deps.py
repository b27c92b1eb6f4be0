# storefront/api/deps.py
from functools import lru_cache
from typing import Optional

import redis
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from storefront.api.errors import to_http
from storefront.data.database import SessionLocal, get_db
from storefront.data.redis_client import make_redis
from storefront.domain.errors import AccountServiceError, ForbiddenError, UnauthorizedError
from storefront.domain.schemas import TokenInfo
from storefront.repos.product_repo import ProductRepo
from storefront.services.account_client import AccountClient
from storefront.services.cart_service import CartService
from storefront.services.cart_store import CartStore
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.product_cache import ProductCache
from storefront.services.product_service import ProductService


# process-wide collaborators
@lru_cache
def get_redis() -> redis.Redis:
    return make_redis()


@lru_cache
def get_account_client() -> AccountClient:
    return AccountClient()


@lru_cache
def get_notifier() -> NotificationService:
    return NotificationService()


def get_session_factory():
    return SessionLocal


# per-request services
def get_product_service(
    db: Session = Depends(get_db),
    cache_client: redis.Redis = Depends(get_redis),
) -> ProductService:
    return ProductService(db, cache_client, background_purge=True)


def get_cart_store(
    client: redis.Redis = Depends(get_redis),
    session_factory=Depends(get_session_factory),
) -> CartStore:
    return CartStore(client, backup=True, session_factory=session_factory)


def get_cart_service(
    db: Session = Depends(get_db),
    store: CartStore = Depends(get_cart_store),
    cache_client: redis.Redis = Depends(get_redis),
    accounts: AccountClient = Depends(get_account_client),
) -> CartService:
    return CartService(store, ProductCache(cache_client, ProductRepo(db)), accounts)


def get_checkout_service(
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service),
    store: CartStore = Depends(get_cart_store),
    notifier: NotificationService = Depends(get_notifier),
) -> CheckoutService:
    return CheckoutService(db, cart_service, store, cart_service.products, notifier)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


# auth
def get_current_user(
    authorization: Optional[str] = Header(None),
    accounts: AccountClient = Depends(get_account_client),
) -> TokenInfo:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise to_http(UnauthorizedError("missing bearer token"))
    token = authorization.split(" ", 1)[1].strip()
    try:
        info = accounts.validate_token(token)
    except AccountServiceError as e:
        # auth backend unreachable
        raise HTTPException(status_code=503, detail=str(e))
    if not info.valid or info.user_id is None:
        raise to_http(UnauthorizedError(info.error or "invalid user session"))
    return info


def require_admin(user: TokenInfo = Depends(get_current_user)) -> TokenInfo:
    if user.role != "admin":
        raise to_http(ForbiddenError("admin role required"))
    return user
