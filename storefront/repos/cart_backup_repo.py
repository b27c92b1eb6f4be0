# storefront/repos/cart_backup_repo.py
from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartBackupModel


class CartBackupRepo:
    """Mirror rows keyed by (user_id, product_id)."""

    def __init__(self, db: Session):
        self.db = db

    def get_item(self, user_id: UUID, product_id: UUID) -> CartBackupModel | None:
        stmt = select(CartBackupModel).where(
            CartBackupModel.user_id == user_id,
            CartBackupModel.product_id == product_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_items(self, user_id: UUID) -> List[CartBackupModel]:
        stmt = select(CartBackupModel).where(CartBackupModel.user_id == user_id)
        return list(self.db.execute(stmt).scalars().all())

    def upsert_item(self, user_id: UUID, product_id: UUID, quantity: int, description: str) -> CartBackupModel:
        row = self.get_item(user_id, product_id)
        if row is None:
            row = CartBackupModel(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                description=description or None,
            )
            self.db.add(row)
        else:
            row.quantity = quantity
            row.description = description or None
            row.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        return row

    def delete_item(self, user_id: UUID, product_id: UUID) -> int:
        res = self.db.execute(
            delete(CartBackupModel).where(
                CartBackupModel.user_id == user_id,
                CartBackupModel.product_id == product_id,
            )
        )
        self.db.commit()
        return res.rowcount

    def delete_all(self, user_id: UUID) -> int:
        res = self.db.execute(delete(CartBackupModel).where(CartBackupModel.user_id == user_id))
        self.db.commit()
        return res.rowcount
