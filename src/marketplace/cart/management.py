"""Cart lifecycle — opening carts and merging a guest cart on sign-in."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.cart.lines import refresh_totals
from marketplace.cart.locks import owner_lock
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Cart")
class OpenCart:
    """Return the owner's cart, creating it on first use."""

    user_id = Identifier()
    guest_token = String(max_length=255)


@marketplace.command(part_of="Cart")
class MergeCarts:
    guest_token = String(required=True, max_length=255)
    user_id = Identifier(required=True)


@marketplace.command_handler(part_of=Cart)
class CartLifecycleHandler:
    @handle(OpenCart)
    def open_cart(self, command):
        if bool(command.user_id) == bool(command.guest_token):
            raise ValidationError({"cart": ["Provide exactly one of user_id or guest_token"]})

        repo = current_domain.repository_for(Cart)
        cart = repo.for_user(command.user_id) if command.user_id else repo.for_guest(command.guest_token)
        if cart is None:
            cart = Cart.create(user_id=command.user_id, guest_token=command.guest_token)
            repo.add(cart)
        return str(cart.id)

    @handle(MergeCarts)
    def merge(self, command):
        """Fold the guest cart into the user's cart and delete the guest cart.

        Silently does nothing when the guest has no cart or an empty one.
        """
        with owner_lock(command.user_id, command.guest_token):
            repo = current_domain.repository_for(Cart)
            guest_cart = repo.for_guest(command.guest_token)
            if guest_cart is None or not guest_cart.lines:
                logger.debug("No guest cart to merge", guest_token=command.guest_token)
                return None

            user_cart = repo.for_user(command.user_id) or Cart.create(user_id=command.user_id)
            merged = user_cart.absorb(guest_cart)
            refresh_totals(user_cart)
            repo.add(user_cart)
            repo.remove(guest_cart)

            logger.info(
                "Guest cart merged",
                user_id=str(command.user_id),
                cart_id=str(user_cart.id),
                lines_merged=merged,
            )
            return str(user_cart.id)
