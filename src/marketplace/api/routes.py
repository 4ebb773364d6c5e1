"""FastAPI routes — carts, checkout, orders, webhooks and vendor inboxes."""

import json

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddCartLineRequest,
    CancelOrderRequest,
    CartIdResponse,
    CartLineResponse,
    CartResponse,
    CheckoutRequest,
    CheckoutResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    LineIdResponse,
    MergeCartsRequest,
    NotificationListResponse,
    NotificationResponse,
    OpenCartRequest,
    OrderStatusResponse,
    StatusResponse,
    UpdateCartLineRequest,
    UpdateOrderStatusRequest,
    WebhookResponse,
)
from marketplace.cart.cart import Cart
from marketplace.cart.lines import AddCartLine, ClearCart, RemoveCartLine, UpdateCartLine
from marketplace.cart.management import MergeCarts, OpenCart
from marketplace.checkout.service import CheckoutService
from marketplace.errors import PaymentGatewayError
from marketplace.ledger.notification import MarkAllNotificationsRead, MarkNotificationRead, Notification
from marketplace.order.cancellation import OrderCompensator
from marketplace.order.status import UpdateOrderStatus
from marketplace.settlement.webhook import WebhookProcessor

# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def open_cart(body: OpenCartRequest) -> CartIdResponse:
    cart_id = current_domain.process(
        OpenCart(user_id=body.user_id, guest_token=body.guest_token),
        asynchronous=False,
    )
    return CartIdResponse(cart_id=cart_id)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str) -> CartResponse:
    cart = current_domain.repository_for(Cart).get(cart_id)
    return CartResponse(
        cart_id=str(cart.id),
        user_id=str(cart.user_id) if cart.user_id else None,
        guest_token=cart.guest_token,
        lines=[
            CartLineResponse(
                line_id=str(line.id),
                product_id=str(line.product_id),
                variant=line.variant_options,
                quantity=line.quantity,
            )
            for line in cart.lines
        ],
        total_items=cart.total_items,
        subtotal=cart.subtotal,
    )


@cart_router.post("/merge", response_model=CartIdResponse)
async def merge_carts(body: MergeCartsRequest) -> CartIdResponse:
    cart_id = current_domain.process(
        MergeCarts(guest_token=body.guest_token, user_id=body.user_id),
        asynchronous=False,
    )
    return CartIdResponse(cart_id=cart_id)


@cart_router.post("/{cart_id}/lines", status_code=201, response_model=LineIdResponse)
async def add_cart_line(cart_id: str, body: AddCartLineRequest) -> LineIdResponse:
    line_id = current_domain.process(
        AddCartLine(
            cart_id=cart_id,
            product_id=body.product_id,
            quantity=body.quantity,
            variant=json.dumps(body.variant or {}),
        ),
        asynchronous=False,
    )
    return LineIdResponse(line_id=line_id)


@cart_router.patch("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def update_cart_line(cart_id: str, line_id: str, body: UpdateCartLineRequest) -> StatusResponse:
    current_domain.process(
        UpdateCartLine(cart_id=cart_id, line_id=line_id, quantity=body.quantity),
        asynchronous=False,
    )
    return StatusResponse()


@cart_router.delete("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def remove_cart_line(cart_id: str, line_id: str) -> StatusResponse:
    current_domain.process(RemoveCartLine(cart_id=cart_id, line_id=line_id), asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/clear", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
# Endpoints that call the processor or send email are sync; FastAPI runs
# them in its threadpool.
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


def _checkout_response(result) -> CheckoutResponse:
    return CheckoutResponse(
        checkout_id=result.checkout_id,
        order_ids=result.order_ids,
        order_numbers=result.order_numbers,
        authorization_id=result.authorization_id,
        client_secret=result.client_secret,
        amount=result.amount,
        currency=result.currency,
        charge_type=result.charge_type,
    )


@checkout_router.post("", status_code=201, response_model=CheckoutResponse)
def checkout(body: CheckoutRequest) -> CheckoutResponse:
    result = CheckoutService().checkout(
        cart_id=body.cart_id,
        shipping_method_id=body.shipping_method_id,
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        coupons=[coupon.model_dump() for coupon in body.coupons],
        guest_email=body.guest_email,
        customer_name=body.customer_name,
        notes=body.notes,
    )
    return _checkout_response(result)


@checkout_router.post("/{checkout_id}/authorize", response_model=CheckoutResponse)
def retry_authorization(checkout_id: str) -> CheckoutResponse:
    return _checkout_response(CheckoutService().authorize_existing(checkout_id))


@checkout_router.post("/confirm", response_model=ConfirmPaymentResponse)
def confirm_payment(body: ConfirmPaymentRequest) -> ConfirmPaymentResponse:
    result = CheckoutService().confirm_payment(body.authorization_id, order_ids=body.order_ids)
    return ConfirmPaymentResponse(
        authorization_id=result.authorization_id,
        confirmed=result.confirmed,
        already_confirmed=result.already_confirmed,
        refunded=result.refunded,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/{order_id}/cancel", response_model=OrderStatusResponse)
def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderStatusResponse:
    status = OrderCompensator().cancel(order_id, reason=body.reason, actor=body.actor)
    return OrderStatusResponse(order_id=order_id, status=status)


@order_router.put("/{order_id}/status", response_model=OrderStatusResponse)
def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderStatusResponse:
    status = current_domain.process(
        UpdateOrderStatus(order_id=order_id, status=body.status, changed_by=body.changed_by, note=body.note),
        asynchronous=False,
    )
    return OrderStatusResponse(order_id=order_id, status=status)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(request: Request, stripe_signature: str = Header(default="")) -> WebhookResponse:
    payload = await request.body()
    try:
        outcome = await run_in_threadpool(WebhookProcessor().process, payload, stripe_signature)
    except PaymentGatewayError as exc:
        if exc.code != "invalid_signature":
            raise
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from exc
    return WebhookResponse(type=outcome["type"], handled=outcome["handled"])


# ---------------------------------------------------------------------------
# Vendor Notification Router
# ---------------------------------------------------------------------------
shop_router = APIRouter(prefix="/shops", tags=["shops"])


@shop_router.get("/{shop_id}/notifications", response_model=NotificationListResponse)
async def list_notifications(shop_id: str, unread_only: bool = False) -> NotificationListResponse:
    repo = current_domain.repository_for(Notification)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                notification_id=str(n.id),
                notification_type=n.notification_type,
                title=n.title,
                message=n.message,
                order_id=str(n.order_id) if n.order_id else None,
                order_number=n.order_number,
                amount=n.amount,
                link=n.link,
                is_read=n.is_read,
            )
            for n in repo.for_shop(shop_id, unread_only=unread_only)
        ],
        unread_count=repo.unread_count(shop_id),
    )


@shop_router.post("/{shop_id}/notifications/{notification_id}/read", response_model=StatusResponse)
async def mark_notification_read(shop_id: str, notification_id: str) -> StatusResponse:
    found = current_domain.process(
        MarkNotificationRead(shop_id=shop_id, notification_id=notification_id),
        asynchronous=False,
    )
    if not found:
        raise ObjectNotFoundError(f"Notification {notification_id} not found")
    return StatusResponse()


@shop_router.post("/{shop_id}/notifications/read-all", response_model=StatusResponse)
async def mark_all_notifications_read(shop_id: str) -> StatusResponse:
    current_domain.process(MarkAllNotificationsRead(shop_id=shop_id), asynchronous=False)
    return StatusResponse()
