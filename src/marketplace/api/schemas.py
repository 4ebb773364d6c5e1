"""Pydantic request/response schemas for the marketplace API.

These are external contracts, kept separate from the internal Protean
commands they are translated into.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    street: str
    city: str
    state: str | None = None
    zip: str
    country: str


class CouponSelectionSchema(BaseModel):
    shop_id: str
    code: str


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class OpenCartRequest(BaseModel):
    user_id: str | None = None
    guest_token: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": None,
                    "guest_token": "guest-7f3a",
                }
            ]
        }
    }


class AddCartLineRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)
    variant: dict[str, str] | None = None


class UpdateCartLineRequest(BaseModel):
    quantity: int = Field(ge=1)


class MergeCartsRequest(BaseModel):
    guest_token: str
    user_id: str


class CartLineResponse(BaseModel):
    line_id: str
    product_id: str
    variant: dict[str, str]
    quantity: int


class CartResponse(BaseModel):
    cart_id: str
    user_id: str | None = None
    guest_token: str | None = None
    lines: list[CartLineResponse]
    total_items: int
    subtotal: float


class CartIdResponse(BaseModel):
    cart_id: str | None


class LineIdResponse(BaseModel):
    line_id: str


# ---------------------------------------------------------------------------
# Checkout & settlement
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    cart_id: str
    shipping_method_id: str
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    coupons: list[CouponSelectionSchema] = Field(default_factory=list)
    guest_email: str | None = None
    customer_name: str | None = None
    notes: str | None = None


class CheckoutResponse(BaseModel):
    checkout_id: str
    order_ids: list[str]
    order_numbers: list[str]
    authorization_id: str
    client_secret: str | None = None
    amount: float
    currency: str
    charge_type: str


class ConfirmPaymentRequest(BaseModel):
    authorization_id: str
    order_ids: list[str] | None = None


class ConfirmPaymentResponse(BaseModel):
    authorization_id: str
    confirmed: list[str]
    already_confirmed: list[str]
    refunded: list[str] = []


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CancelOrderRequest(BaseModel):
    actor: str = "customer"
    reason: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str
    changed_by: str = "vendor"
    note: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


# ---------------------------------------------------------------------------
# Vendor notifications
# ---------------------------------------------------------------------------
class NotificationResponse(BaseModel):
    notification_id: str
    notification_type: str
    title: str
    message: str
    order_id: str | None = None
    order_number: str | None = None
    amount: float | None = None
    link: str | None = None
    is_read: bool


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int


class WebhookResponse(BaseModel):
    received: bool = True
    type: str | None = None
    handled: bool
