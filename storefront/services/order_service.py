# storefront/services/order_service.py
from uuid import UUID

from sqlalchemy.orm import Session

from storefront.domain.errors import ForbiddenError, OrderNotFoundError
from storefront.domain.schemas import OrderOut
from storefront.repos.order_repo import OrderRepo


class OrderService:
    """Read side of orders. Orders are only created by checkout."""

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    def get_order(self, order_id: UUID, user_id: UUID) -> OrderOut:
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFoundError(order_id)

        if order.user_id != user_id:
            raise ForbiddenError("no access to this order")

        return OrderOut.model_validate(order)
