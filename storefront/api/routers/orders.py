# storefront/api/routers/orders.py
from uuid import UUID

from fastapi import APIRouter, Depends

from storefront.api.deps import get_current_user, get_order_service
from storefront.api.errors import to_http
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import OrderOut, TokenInfo
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: UUID,
    user: TokenInfo = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    """
    Order details with items; only the owner may read it.
    """
    try:
        return svc.get_order(order_id, user.user_id)
    except StorefrontError as e:
        raise to_http(e)
