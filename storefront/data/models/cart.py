#storefront/data/models/cart.py
from sqlalchemy import Column, Integer, String, DateTime, Uuid, UniqueConstraint
from datetime import datetime, timezone
import uuid

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartBackupModel(Base):
    """
    Relational mirror of the redis cart. Written best-effort after each
    mutation, read only when restoring a lost cart.
    """

    __tablename__ = "cart"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    product_id = Column(Uuid, nullable=False)

    quantity = Column(Integer, nullable=False)
    description = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="u_cart_user_product"),)
