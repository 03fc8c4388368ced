"""Payment attempts — commands and handler.

Each command records one step of talking to the provider in its own unit of
work. ``PaymentCoordinator`` issues them around the gateway calls.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.config import settings
from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.payment.payment import AttemptKind, Payment


def payment_for_order(order_id):
    repo = current_domain.repository_for(Payment)
    results = repo._dao.query.filter(order_id=str(order_id)).all()
    return results.items[0] if results.items else None


def _require_payment(order_id):
    payment = payment_for_order(order_id)
    if payment is None:
        raise ObjectNotFoundError(f"No payment recorded for order {order_id}")
    return payment


@marketplace.command(part_of="Payment")
class StartChargeAttempt:
    order_id = Identifier(required=True)
    method = String(required=True, max_length=30)
    idempotency_key = String(required=True, max_length=255)


@marketplace.command(part_of="Payment")
class RecordAuthorization:
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    provider_reference = String(required=True, max_length=255)


@marketplace.command(part_of="Payment")
class RecordProviderReference:
    """The provider accepted the charge and will answer through a webhook."""

    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    provider_reference = String(required=True, max_length=255)


@marketplace.command(part_of="Payment")
class RecordDecline:
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="Payment")
class RecordCapture:
    order_id = Identifier(required=True)


@marketplace.command(part_of="Payment")
class StartCompensation:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    kind = String(choices=AttemptKind)
    amount = Float()


@marketplace.command(part_of="Payment")
class CompleteCompensation:
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    provider_reference = String(max_length=255)


@marketplace.command_handler(part_of=Payment)
class PaymentAttemptsHandler:
    @handle(StartChargeAttempt)
    def start_charge(self, command):
        repo = current_domain.repository_for(Payment)
        payment = payment_for_order(command.order_id)
        if payment is None:
            order = current_domain.repository_for(Order).get(command.order_id)
            payment = Payment.open(
                order_id=str(order.id),
                customer_id=str(order.customer_id),
                amount=order.pricing.total,
                currency=order.pricing.currency,
            )
        attempt = payment.start_charge(
            command.method,
            command.idempotency_key,
            max_attempts=settings().max_payment_attempts,
        )
        repo.add(payment)
        return str(attempt.id)

    @handle(RecordAuthorization)
    def record_authorization(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _require_payment(command.order_id)
        payment.authorize(command.attempt_id, command.provider_reference)
        repo.add(payment)

    @handle(RecordProviderReference)
    def record_provider_reference(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _require_payment(command.order_id)
        payment.note_provider_reference(command.attempt_id, command.provider_reference)
        repo.add(payment)

    @handle(RecordDecline)
    def record_decline(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _require_payment(command.order_id)
        payment.decline(command.attempt_id, command.reason, max_attempts=settings().max_payment_attempts)
        repo.add(payment)
        return payment.can_retry(settings().max_payment_attempts)

    @handle(RecordCapture)
    def record_capture(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _require_payment(command.order_id)
        payment.capture()
        repo.add(payment)

    @handle(StartCompensation)
    def start_compensation(self, command):
        repo = current_domain.repository_for(Payment)
        payment = payment_for_order(command.order_id)
        if payment is None:
            return None
        kind = AttemptKind(command.kind) if command.kind else None
        attempt = payment.start_compensation(command.reason, kind=kind, amount=command.amount)
        if attempt is None:
            return None
        repo.add(payment)
        return str(attempt.id)

    @handle(CompleteCompensation)
    def complete_compensation(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _require_payment(command.order_id)
        payment.complete_compensation(command.attempt_id, command.provider_reference)
        repo.add(payment)
