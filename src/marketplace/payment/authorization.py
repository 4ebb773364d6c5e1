"""Recording an authorization: one pending Payment per order in the group.

Voiding retires every still-open Payment of an authorization once the
processor has cancelled it.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.payment.payment import ChargeType, Payment


@marketplace.command(part_of="Payment")
class RecordAuthorization:
    authorization_id = String(required=True, max_length=255)
    order_ids = Text(required=True)  # JSON list
    checkout_id = Identifier()
    currency = String(max_length=3, default="usd")
    charge_type = String(max_length=20, default=ChargeType.PLATFORM.value)
    connected_account_id = String(max_length=255)
    application_fee_amount = Float()
    provider = String(max_length=50, default="stripe")


@marketplace.command(part_of="Payment")
class VoidAuthorization:
    authorization_id = String(required=True, max_length=255)
    reason = String(max_length=500)


@marketplace.command_handler(part_of=Payment)
class RecordAuthorizationHandler:
    @handle(RecordAuthorization)
    def record_authorization(self, command):
        """Open a pending Payment per order."""
        payment_repo = current_domain.repository_for(Payment)
        orders = current_domain.repository_for(Order).by_ids(json.loads(command.order_ids))

        payment_ids = []
        for order in orders:
            payment = Payment.open(
                order_id=order.id,
                authorization_id=command.authorization_id,
                amount=order.total_amount,
                currency=command.currency,
                checkout_id=command.checkout_id,
                charge_type=command.charge_type,
                connected_account_id=command.connected_account_id,
                application_fee_amount=command.application_fee_amount,
                provider=command.provider,
            )
            payment_repo.add(payment)
            payment_ids.append(str(payment.id))
        return payment_ids

    @handle(VoidAuthorization)
    def void_authorization(self, command):
        payment_repo = current_domain.repository_for(Payment)

        voided = []
        for payment in payment_repo.for_authorization(command.authorization_id):
            if payment.cancel(command.reason or "Authorization voided"):
                payment_repo.add(payment)
                voided.append(str(payment.order_id))
        return voided
