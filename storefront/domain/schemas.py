# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Dict, Optional
from uuid import UUID
from datetime import datetime


# =====================================================
# PRODUCT
# =====================================================
class Product(BaseModel):
    """Domain product. Also the JSON shape stored in the product cache."""

    id: UUID
    seller_id: UUID
    name: str
    price: int
    stock: int
    discount: int = 0
    type: str = ""
    description: str = ""
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductIn(BaseModel):
    """Payload for creating or updating a product."""

    name: str = Field(..., min_length=3, max_length=100)
    price: int = Field(..., gt=0, description="Price in minor currency units")
    stock: int = Field(..., ge=0)
    discount: int = Field(0, ge=0, le=100, description="Discount in percent")
    type: str = Field(..., pattern=r"^[A-Za-z]+$", description="Letters only")
    description: str = ""


class StockItem(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)


class StockAdjustIn(BaseModel):
    items: List[StockItem] = Field(..., min_length=1)


# =====================================================
# CART
# =====================================================
class CartEntry(BaseModel):
    """Value stored under cart:{user_id} -> {product_id} in redis."""

    quantity: int = Field(..., ge=1)
    description: str = ""
    checked: bool = False
    created_at: datetime
    updated_at: datetime


class CartItemIn(BaseModel):
    product_id: UUID
    quantity: int = Field(..., description="Delta added to the current quantity")
    description: str = ""


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., description="Absolute quantity, <= 0 removes the item")
    description: str = ""


class CheckedIn(BaseModel):
    checked: bool


class CartItem(BaseModel):
    """One enriched cart line."""

    product_id: UUID
    product_name: str
    price: int
    stock: int
    seller_id: UUID
    seller_name: str
    quantity: int
    description: str = ""
    checked: bool = False
    created_at: datetime
    updated_at: datetime


class MaterializedCart(BaseModel):
    user_id: UUID
    items: List[CartItem] = []
    # number of lines, not the sum of quantities
    total_items: int = 0


# =====================================================
# ORDER
# =====================================================
class OrderItemOut(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    price: int

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: UUID
    user_id: UUID
    total_amount: int
    status: str
    order_date: datetime
    items: List[OrderItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class OrderCreatedEvent(BaseModel):
    order_id: str
    user_id: str
    total_amount: int
    order_date: datetime
    product_ids: List[str]
    quantities: Dict[str, int]


class CheckoutOut(BaseModel):
    order: OrderOut
    event_published: bool = True
    message: str = "checkout successful"


# =====================================================
# ACCOUNT
# =====================================================
class TokenInfo(BaseModel):
    valid: bool
    user_id: Optional[UUID] = None
    username: str = ""
    role: str = ""
    error: str = ""
