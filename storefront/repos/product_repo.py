# storefront/repos/product_repo.py
from datetime import datetime, timezone
from typing import Iterable, List
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.domain.errors import InsufficientStockError, ProductNotFoundError
from storefront.domain.schemas import Product


def to_product(row: ProductModel) -> Product:
    return Product(
        id=row.id,
        seller_id=row.seller_id,
        name=row.name,
        price=row.price,
        stock=row.stock,
        discount=row.discount or 0,
        type=row.type or "",
        description=row.description or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def to_products(rows: Iterable[ProductModel]) -> List[Product]:
    return [to_product(r) for r in rows]


class ProductRepo:
    """Relational access to product rows. Soft-deleted rows are invisible."""

    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return select(ProductModel).where(ProductModel.deleted_at.is_(None))

    # reads
    def get_by_id(self, product_id: UUID) -> ProductModel | None:
        stmt = self._live().where(ProductModel.id == product_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_ids(self, ids: Iterable[UUID]) -> List[ProductModel]:
        ids = list(ids)
        if not ids:
            return []
        stmt = self._live().where(ProductModel.id.in_(ids))
        return list(self.db.execute(stmt).scalars().all())

    def list_all(self) -> List[ProductModel]:
        stmt = self._live().order_by(ProductModel.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def list_by_seller(self, seller_id: UUID) -> List[ProductModel]:
        stmt = self._live().where(ProductModel.seller_id == seller_id).order_by(ProductModel.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def search_by_name(self, name: str) -> List[ProductModel]:
        stmt = self._live().where(ProductModel.name.ilike(f"%{name}%")).order_by(ProductModel.name)
        return list(self.db.execute(stmt).scalars().all())

    def list_by_type(self, product_type: str) -> List[ProductModel]:
        stmt = self._live().where(ProductModel.type == product_type).order_by(ProductModel.name)
        return list(self.db.execute(stmt).scalars().all())

    # writes
    def create(self, product: ProductModel) -> ProductModel:
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def update(self, product: ProductModel, **fields) -> ProductModel:
        for key, value in fields.items():
            setattr(product, key, value)
        product.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(product)
        return product

    def soft_delete(self, product: ProductModel) -> ProductModel:
        product.deleted_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(product)
        return product

    # stock; both run inside the caller's transaction and never commit
    def decrease_stock(self, product_id: UUID, quantity: int) -> ProductModel:
        """
        Conditional decrement: ``stock = stock - q WHERE stock >= q``.
        The UPDATE takes the row lock, so concurrent decrements serialize
        and a loser sees rowcount 0 instead of driving stock negative.
        """
        res = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.deleted_at.is_(None),
                ProductModel.stock >= quantity,
            )
            .values(stock=ProductModel.stock - quantity, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            row = self.get_by_id(product_id)
            if row is None:
                raise ProductNotFoundError(product_id)
            raise InsufficientStockError(product_id, row.name, quantity)
        return self._refreshed(product_id)

    def increase_stock(self, product_id: UUID, quantity: int) -> ProductModel:
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.deleted_at.is_(None))
            .values(stock=ProductModel.stock + quantity, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            raise ProductNotFoundError(product_id)
        return self._refreshed(product_id)

    def _refreshed(self, product_id: UUID) -> ProductModel:
        stmt = select(ProductModel).where(ProductModel.id == product_id).execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
