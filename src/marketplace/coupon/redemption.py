"""Coupon redemption bookkeeping, run once orders carrying a coupon exist."""

from protean.utils.globals import current_domain

from marketplace.coupon.coupon import Coupon, CouponUsage


def record_redemption(coupon_id, order_id, user_id=None, discount_amount=0.0):
    """Bump the coupon's usage counter and log who used it on which order."""
    repo = current_domain.repository_for(Coupon)
    coupon = repo.get(coupon_id)
    coupon.record_use()
    repo.add(coupon)

    current_domain.repository_for(CouponUsage).add(
        CouponUsage(
            coupon_id=str(coupon_id),
            user_id=str(user_id) if user_id else None,
            order_id=str(order_id),
            discount_amount=discount_amount,
        )
    )
