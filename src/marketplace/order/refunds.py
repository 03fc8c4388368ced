"""Order refunds — commands, handler and the refund workflow.

A refund request has its own sub-state (Requested → Approved → Completed, or
Rejected). The order stays Delivered until ``complete_refund`` has refunded
the captured payment; only then does it move to Refunded.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import PaymentDeclined
from marketplace.order.inflight import single_flight
from marketplace.order.order import CompensationStatus, Order, RefundStatus
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.payment.payment import AttemptKind

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class RequestRefund:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    amount = Float()  # Optional, defaults to the order total


@marketplace.command(part_of="Order")
class ApproveRefund:
    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    note = String(max_length=500)


@marketplace.command(part_of="Order")
class RejectRefund:
    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    note = String(max_length=500)


@marketplace.command(part_of="Order")
class CompleteRefund:
    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)


@marketplace.command_handler(part_of=Order)
class RefundHandler:
    @handle(RequestRefund)
    def request_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        refund_id = order.request_refund(reason=command.reason, amount=command.amount)
        repo.add(order)
        return refund_id

    @handle(ApproveRefund)
    def approve_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.approve_refund(command.refund_id, command.note)
        repo.add(order)

    @handle(RejectRefund)
    def reject_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.reject_refund(command.refund_id, command.note)
        repo.add(order)

    @handle(CompleteRefund)
    def complete_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.complete_refund(command.refund_id)
        repo.add(order)


def request_refund(order_id, reason, amount=None) -> str:
    """Customer action; a duplicate request while one is running is rejected."""
    with single_flight(order_id, "refund"):
        return current_domain.process(
            RequestRefund(order_id=order_id, reason=reason, amount=amount),
            asynchronous=False,
        )


def complete_refund(order_id, refund_id, coordinator=None):
    """Refund the captured payment, then complete the refund request."""
    coordinator = coordinator or PaymentCoordinator()
    with single_flight(order_id, "refund"):
        order = current_domain.repository_for(Order).get(order_id)
        refund = order.find_refund(refund_id)
        if refund is None or refund.status != RefundStatus.APPROVED.value:
            # Let the aggregate produce the precise validation error
            order.complete_refund(refund_id)

        result = coordinator.compensate(order_id, refund.reason, kind=AttemptKind.REFUND, amount=refund.amount)
        if result.status is CompensationStatus.FAILED:
            raise PaymentDeclined(result.reason or "Refund was declined", order_id=str(order_id))

        current_domain.process(CompleteRefund(order_id=order_id, refund_id=refund_id), asynchronous=False)
    logger.info("Order refunded", order_id=str(order_id), refund_id=str(refund_id), amount=refund.amount)
