#storefront/api/routers/carts.py
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from storefront.api.deps import get_cart_service, get_checkout_service, get_current_user
from storefront.api.errors import to_http
from storefront.domain.errors import EventPublishError, StorefrontError
from storefront.domain.schemas import (
    CartItem,
    CartItemIn,
    CartItemUpdate,
    CheckedIn,
    CheckoutOut,
    MaterializedCart,
    TokenInfo,
)
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=MaterializedCart)
def get_cart(
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.get_cart(user.user_id)
    except StorefrontError as e:
        raise to_http(e)


@router.get("/items/{product_id}", response_model=CartItem)
def get_cart_item(
    product_id: UUID,
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.get_cart_item(user.user_id, product_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/items", response_model=MaterializedCart)
def add_item(
    payload: CartItemIn,
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.add_item(user.user_id, payload.product_id, payload.quantity, payload.description)
    except StorefrontError as e:
        raise to_http(e)


@router.put("/items/{product_id}", response_model=MaterializedCart)
def update_item(
    product_id: UUID,
    payload: CartItemUpdate,
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.update_item(user.user_id, product_id, payload.quantity, payload.description)
    except StorefrontError as e:
        raise to_http(e)


@router.patch("/items/{product_id}/checked", response_model=MaterializedCart)
def set_checked(
    product_id: UUID,
    payload: CheckedIn,
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.set_checked(user.user_id, product_id, payload.checked)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("/items/{product_id}", response_model=MaterializedCart)
def remove_item(
    product_id: UUID,
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_item(user.user_id, product_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/restore", response_model=MaterializedCart)
def restore_cart(
    user: TokenInfo = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.restore_cart(user.user_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/checkout", response_model=CheckoutOut, status_code=201)
def checkout(
    user: TokenInfo = Depends(get_current_user),
    svc: CheckoutService = Depends(get_checkout_service),
):
    try:
        order = svc.checkout(user.user_id)
    except EventPublishError as e:
        # the order exists; only the notification is missing
        body = CheckoutOut(order=e.order, event_published=False, message=str(e))
        return JSONResponse(status_code=202, content=body.model_dump(mode="json"))
    except StorefrontError as e:
        raise to_http(e)
    return CheckoutOut(order=order)
