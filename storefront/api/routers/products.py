from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_current_user, get_product_service, require_admin
from storefront.api.errors import to_http
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import Product, ProductIn, StockAdjustIn, TokenInfo
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/", response_model=List[Product])
def list_products(
    seller_id: Optional[UUID] = Query(None),
    name: Optional[str] = Query(None, min_length=1),
    type: Optional[str] = Query(None, min_length=1),
    svc: ProductService = Depends(get_product_service),
):
    if seller_id is not None:
        return svc.list_by_seller(seller_id)
    if name is not None:
        return svc.search_by_name(name)
    if type is not None:
        return svc.list_by_type(type)
    return svc.list_products()


@router.get("/{product_id}", response_model=Product)
def get_product(product_id: UUID, svc: ProductService = Depends(get_product_service)):
    try:
        return svc.get_product(product_id)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/", response_model=Product, status_code=201)
def create_product(
    payload: ProductIn,
    user: TokenInfo = Depends(get_current_user),
    svc: ProductService = Depends(get_product_service),
):
    return svc.create_product(user.user_id, payload)


@router.put("/{product_id}", response_model=Product)
def update_product(
    product_id: UUID,
    payload: ProductIn,
    user: TokenInfo = Depends(get_current_user),
    svc: ProductService = Depends(get_product_service),
):
    try:
        return svc.update_product(product_id, payload, user.user_id, user.role)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("/{product_id}", response_model=Product)
def delete_product(
    product_id: UUID,
    user: TokenInfo = Depends(get_current_user),
    svc: ProductService = Depends(get_product_service),
):
    try:
        return svc.delete_product(product_id, user.user_id, user.role)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/stock/decrease", response_model=List[Product])
def decrease_stock(
    payload: StockAdjustIn,
    _admin: TokenInfo = Depends(require_admin),
    svc: ProductService = Depends(get_product_service),
):
    try:
        return svc.decrease_stock(payload.items)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/stock/increase", response_model=List[Product])
def increase_stock(
    payload: StockAdjustIn,
    _admin: TokenInfo = Depends(require_admin),
    svc: ProductService = Depends(get_product_service),
):
    try:
        return svc.increase_stock(payload.items)
    except StorefrontError as e:
        raise to_http(e)


@router.post("/cache/reset")
def reset_caches(
    _admin: TokenInfo = Depends(require_admin),
    svc: ProductService = Depends(get_product_service),
):
    return {"removed": svc.reset_caches()}
