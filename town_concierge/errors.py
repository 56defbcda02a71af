"""Error types shared by the catalog, checkout and order operations.

Each error carries the HTTP status the web tier should answer with and a
message that is safe to show to the caller.
"""


class TownError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigError(TownError):
    pass


class ValidationError(TownError):
    status_code = 400


class NotFoundError(TownError):
    status_code = 404


class ConflictError(TownError):
    status_code = 409


# Checkout
class EmptyCartError(ValidationError):
    def __init__(self):
        super().__init__("User ID and items are required")


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class ProductNotFoundError(ValidationError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ProductUnavailableError(ValidationError):
    def __init__(self, title: str):
        super().__init__(f"Product {title} is not available")
        self.title = title


class InsufficientStockError(ValidationError):
    def __init__(self, title: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {title}. Available: {available}, requested: {requested}"
        )
        self.title = title
        self.available = available
        self.requested = requested


# Orders
class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidStatusError(ValidationError):
    def __init__(self, status: str):
        super().__init__(f"Invalid status: {status}")


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target


# Catalog
class SellerNotFoundError(NotFoundError):
    def __init__(self, seller_id: str):
        super().__init__("Seller not found")
        self.seller_id = seller_id


class ProductMissingError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__("Product not found")
        self.product_id = product_id
