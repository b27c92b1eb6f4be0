# storefront/repos/order_repo.py
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel


class OrderRepo:
    """
    Order writes happen inside the checkout transaction: nothing here
    commits, the caller does.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, user_id: UUID, order_date: datetime) -> OrderModel:
        order = OrderModel(
            user_id=user_id,
            status="Pending",
            total_amount=0,
            order_date=order_date,
            created_at=order_date,
            updated_at=order_date,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def add_item(self, order: OrderModel, product_id: UUID, quantity: int, price: int) -> OrderItemModel:
        item = OrderItemModel(
            order_id=order.id,
            product_id=product_id,
            quantity=quantity,
            price=price,
        )
        order.items.append(item)
        self.db.flush()
        return item

    def update_total(self, order: OrderModel, total_amount: int) -> OrderModel:
        order.total_amount = total_amount
        order.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return order

    def get_order(self, order_id: UUID) -> OrderModel | None:
        stmt = select(OrderModel).where(OrderModel.id == order_id).options(selectinload(OrderModel.items))
        return self.db.execute(stmt).scalar_one_or_none()

    def count_orders(self, user_id: UUID | None = None) -> int:
        stmt = select(OrderModel.id)
        if user_id is not None:
            stmt = stmt.where(OrderModel.user_id == user_id)
        return len(self.db.execute(stmt).all())
