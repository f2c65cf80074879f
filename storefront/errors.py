"""Custom exceptions for the order pipeline."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class CheckoutValidationError(StorefrontError):
    """Raised when checkout input is rejected before any side effect."""

    pass


class EmptyCartError(CheckoutValidationError):
    """Raised when checkout is attempted with no cart lines."""

    def __init__(self):
        super().__init__("Cart is empty")


class PaymentError(StorefrontError):
    """Base for payment problems that block an order commit."""

    def __init__(self, intent_ref: str | None, msg: str):
        self.intent_ref = intent_ref
        super().__init__(msg)


class PaymentNotCompletedError(PaymentError):
    """The payment intent exists but has not settled."""

    def __init__(self, intent_ref: str, state: str | None = None):
        self.state = state
        super().__init__(intent_ref, "Payment not completed")


class PaymentInvalidError(PaymentError):
    """The payment intent could not be looked up (unknown ref, timeout, gateway error)."""

    def __init__(self, intent_ref: str | None, reason: str | None = None):
        self.reason = reason
        super().__init__(intent_ref, "Payment could not be verified")


class PaymentAlreadyUsedError(PaymentError):
    """The payment intent already settled another order."""

    def __init__(self, intent_ref: str):
        super().__init__(intent_ref, "Payment has already been used for an order")


class PaymentMismatchError(PaymentError):
    """The settled amount or currency differs from the order total."""

    def __init__(self, intent_ref: str, paid: str, due: str):
        self.paid = paid
        self.due = due
        super().__init__(intent_ref, f"Payment of {paid} does not match order total {due}")


class PaymentGatewayError(StorefrontError):
    """Raised when a payment intent cannot be created."""

    pass


class CommitError(StorefrontError):
    """Raised when an order cannot be committed. Nothing was written."""

    def __init__(self, msg: str = "Order could not be placed"):
        super().__init__(msg)


class InsufficientInventoryError(CommitError):
    """Raised when a line asks for more units than remain in stock."""

    def __init__(self, product_id: int, requested: int):
        self.product_id = product_id
        self.requested = requested
        super().__init__(f"Insufficient stock for product_id {product_id}")


class ProductUnavailableError(CommitError):
    """Raised when a cart line points at a missing or inactive product."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not available")


class OrderNotFoundError(StorefrontError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class IllegalTransitionError(StorefrontError):
    """Raised when a requested status change is not allowed from the current state."""

    def __init__(self, field: str, current: str, target: str, reason: str | None = None):
        self.field = field
        self.current = current
        self.target = target
        msg = f"Cannot transition {field} from {current} to {target}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class ReviewRequestError(StorefrontError):
    """Raised when a review request is not allowed for an order."""

    pass


class ImmutableRecordError(StorefrontError):
    """Raised when a flush would rewrite a field of an immutable record."""

    def __init__(self, table: str, fields: list[str]):
        self.table = table
        self.fields = fields
        super().__init__(f"{table} is immutable; attempted to change: {', '.join(fields)}")
