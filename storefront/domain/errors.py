# storefront/domain/errors.py
from uuid import UUID


class StorefrontError(Exception):
    """Base for every error the services raise on purpose."""


# validation
class InvalidRequestError(StorefrontError, ValueError):
    pass


# not found
class NotFoundError(StorefrontError, LookupError):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"product {product_id} not found")


class CartItemNotFoundError(NotFoundError):
    def __init__(self, user_id, product_id):
        self.user_id = user_id
        self.product_id = product_id
        super().__init__(f"cart item {product_id} not found for user {user_id}")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"order {order_id} not found")


# business rules
class BusinessRuleError(StorefrontError, ValueError):
    pass


class InsufficientStockError(BusinessRuleError):
    def __init__(self, product_id: UUID, product_name: str | None = None, requested: int | None = None):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        label = product_name or str(product_id)
        super().__init__(f"insufficient stock for product {label}")


class CartEmptyError(BusinessRuleError):
    def __init__(self, user_id=None):
        self.user_id = user_id
        super().__init__("cart is empty")


class CartAlreadyCheckedOutError(BusinessRuleError):
    def __init__(self, user_id=None):
        self.user_id = user_id
        super().__init__("cart is already checked out")


# access
class UnauthorizedError(StorefrontError, PermissionError):
    pass


class ForbiddenError(StorefrontError, PermissionError):
    pass


class ProductNotOwnedError(ForbiddenError):
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__("product does not belong to this seller")


# infrastructure
class InfrastructureError(StorefrontError, RuntimeError):
    pass


class AccountServiceError(InfrastructureError):
    pass


class EventPublishError(StorefrontError):
    """
    Checkout committed but the order-created event could not be handed to
    the event sink. Callers get the order back through ``order``.
    """

    def __init__(self, order, cause: Exception):
        self.order = order
        self.cause = cause
        super().__init__(f"checkout successful but failed to publish event: {cause}")
