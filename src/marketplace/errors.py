"""Marketplace error taxonomy.

Conflicts are ``ValidationError`` subclasses so that they abort the enclosing
unit of work and map to 400 at the HTTP edge. Upstream processor failures are
kept separate: they are retryable and never roll back committed orders.
"""

from protean.exceptions import ValidationError


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------
class OutOfStock(ValidationError):
    def __init__(self, product_id, requested, available):
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        super().__init__(
            {"stock": [f"Out of stock: product {product_id} has {available} available, {requested} requested"]}
        )


class ShippingMethodMismatch(ValidationError):
    def __init__(self, message="Shipping method does not match cart"):
        super().__init__({"shipping_method_id": [message]})


class DuplicateShopCoupon(ValidationError):
    def __init__(self, shop_id):
        self.shop_id = str(shop_id)
        super().__init__({"coupons": [f"Coupon already applied to this shop: {shop_id}"]})


class CouponRejected(ValidationError):
    def __init__(self, code, reason, message):
        self.code = code
        self.reason = reason
        super().__init__({"coupons": [f"{code}: {message}"]})


class OrderNotCancellable(ValidationError):
    def __init__(self, order_id, status):
        self.order_id = str(order_id)
        self.status = status
        super().__init__({"status": [f"Order not cancellable in status {status}"]})


class EmptyCart(ValidationError):
    def __init__(self):
        super().__init__({"cart": ["Cart is empty"]})


class PaymentAlreadySettled(ValidationError):
    """The processor already took, or is taking, the money for an authorization."""

    def __init__(self, authorization_id, status):
        self.authorization_id = authorization_id
        self.status = status
        super().__init__({"payment": [f"Payment {authorization_id} is already {status}"]})


# ---------------------------------------------------------------------------
# Upstream failures
# ---------------------------------------------------------------------------
class PaymentGatewayError(Exception):
    """Raised by gateway adapters when the processor rejects or fails a call."""

    def __init__(self, message, code=None, retryable=True):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class AuthorizationFailed(PaymentGatewayError):
    pass


class RefundFailed(PaymentGatewayError):
    pass


class PaymentNotSucceeded(Exception):
    def __init__(self, authorization_id, status):
        self.authorization_id = authorization_id
        self.status = status
        super().__init__(f"Payment not successful: {status}")
