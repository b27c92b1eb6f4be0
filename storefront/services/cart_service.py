from typing import Dict, List
from uuid import UUID

from storefront.domain.errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidRequestError,
)
from storefront.domain.schemas import CartEntry, CartItem, MaterializedCart, Product
from storefront.services.account_client import AccountClient
from storefront.services.cart_store import CartStore
from storefront.services.product_cache import ProductCache
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Use cases for the cart.
    commands (add, update, remove, check) change the redis cart
    query (get) joins the raw entries with product and seller data
    """

    def __init__(
        self,
        cart_store: CartStore,
        product_cache: ProductCache,
        accounts: AccountClient,
        log=None,
    ):
        self.store = cart_store
        self.products = product_cache
        self.accounts = accounts
        self.log = log or logger

    # query
    def get_cart(self, user_id: UUID) -> MaterializedCart:
        entries = self.store.get_all(user_id)
        if not entries:
            return MaterializedCart(user_id=user_id, items=[], total_items=0)

        items = self._assemble(user_id, entries)
        return MaterializedCart(user_id=user_id, items=items, total_items=len(items))

    def get_cart_item(self, user_id: UUID, product_id: UUID) -> CartItem:
        entry = self.store.get(user_id, product_id)
        items = self._assemble(user_id, {product_id: entry})
        if not items:
            raise CartItemNotFoundError(user_id, product_id)
        return items[0]

    def _assemble(self, user_id: UUID, entries: Dict[UUID, CartEntry]) -> List[CartItem]:
        """
        Two batch lookups then a join: one get_many for every product, one
        account call for every seller. Lines whose product or seller
        cannot be resolved are dropped with a warning.
        """
        products: Dict[UUID, Product] = {p.id: p for p in self.products.get_many(entries.keys())}
        seller_ids = {p.seller_id for p in products.values()}
        sellers = self.accounts.get_sellers(seller_ids) if seller_ids else {}

        items: List[CartItem] = []
        ordered = sorted(entries.items(), key=lambda kv: (kv[1].created_at, str(kv[0])))
        for product_id, entry in ordered:
            product = products.get(product_id)
            if product is None:
                self.log.warning(f"Dropping cart item {product_id} for user {user_id}: product not found")
                continue
            seller_name = sellers.get(product.seller_id)
            if seller_name is None:
                self.log.warning(
                    f"Dropping cart item {product_id} for user {user_id}: "
                    f"seller {product.seller_id} not found"
                )
                continue
            items.append(
                CartItem(
                    product_id=product_id,
                    product_name=product.name,
                    price=product.price,
                    stock=product.stock,
                    seller_id=product.seller_id,
                    seller_name=seller_name,
                    quantity=entry.quantity,
                    description=entry.description,
                    checked=entry.checked,
                    created_at=entry.created_at,
                    updated_at=entry.updated_at,
                )
            )
        return items

    # commands
    def add_item(self, user_id: UUID, product_id: UUID, quantity: int, description: str = "") -> MaterializedCart:
        if quantity == 0:
            raise InvalidRequestError("quantity must not be zero")

        if quantity > 0:
            product = self.products.get(product_id)
            current = self._current_quantity(user_id, product_id)
            if current + quantity > product.stock:
                raise InsufficientStockError(product.id, product.name, current + quantity)

        self.log.info(f"User {user_id} adds {quantity} x {product_id} to cart")
        self.store.add_or_accumulate(user_id, product_id, quantity, description)
        return self.get_cart(user_id)

    def update_item(self, user_id: UUID, product_id: UUID, quantity: int, description: str = "") -> MaterializedCart:
        if quantity <= 0:
            self.store.remove(user_id, product_id)
            return self.get_cart(user_id)

        product = self.products.get(product_id)
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, quantity)

        self.log.info(f"User {user_id} sets {product_id} quantity to {quantity}")
        self.store.set_quantity(user_id, product_id, quantity, description)
        return self.get_cart(user_id)

    def remove_item(self, user_id: UUID, product_id: UUID) -> MaterializedCart:
        self.store.remove(user_id, product_id)
        return self.get_cart(user_id)

    def set_checked(self, user_id: UUID, product_id: UUID, checked: bool) -> MaterializedCart:
        self.store.set_checked(user_id, product_id, checked)
        return self.get_cart(user_id)

    def restore_cart(self, user_id: UUID) -> MaterializedCart:
        restored = self.store.restore_from_backup(user_id)
        self.log.info(f"Cart restore for user {user_id}: {restored} items")
        return self.get_cart(user_id)

    def _current_quantity(self, user_id: UUID, product_id: UUID) -> int:
        try:
            return self.store.get(user_id, product_id).quantity
        except CartItemNotFoundError:
            return 0
