from marketplace.api.routes import cart_router, checkout_router, order_router, shop_router, webhook_router

__all__ = ["cart_router", "checkout_router", "order_router", "shop_router", "webhook_router"]
