"""Order cancellation — commands, handler and the cancel workflow.

``cancel_order`` runs the whole customer action: check the order can be
cancelled, decide the payment compensation, cancel, then void or refund and
record how that went on the order.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.inflight import single_flight
from marketplace.order.order import ActorKind, Compensation, CompensationStatus, Order
from marketplace.payment.coordinator import PaymentCoordinator

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor_kind = String(choices=ActorKind, default=ActorKind.CUSTOMER.value)
    compensation = String(choices=Compensation, default=Compensation.NONE.value)


@marketplace.command(part_of="Order")
class RecordCompensation:
    order_id = Identifier(required=True)
    compensation_status = String(required=True, choices=CompensationStatus)


@marketplace.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(
            reason=command.reason,
            actor_kind=ActorKind(command.actor_kind),
            compensation=Compensation(command.compensation),
        )
        repo.add(order)

    @handle(RecordCompensation)
    def record_compensation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_compensation(command.compensation_status)
        repo.add(order)


@dataclass(frozen=True)
class CancellationResult:
    order_id: str
    status: str
    compensation: str
    compensation_status: str | None


def cancel_order(order_id, reason, actor_kind=ActorKind.CUSTOMER, coordinator=None) -> CancellationResult:
    coordinator = coordinator or PaymentCoordinator()
    with single_flight(order_id, "cancel"):
        order = current_domain.repository_for(Order).get(order_id)
        order.ensure_cancellable()

        compensation = coordinator.compensation_for(order_id)
        current_domain.process(
            CancelOrder(
                order_id=order_id,
                reason=reason,
                actor_kind=ActorKind(actor_kind).value,
                compensation=compensation.value,
            ),
            asynchronous=False,
        )

        compensation_status = None
        if compensation is not Compensation.NONE:
            result = coordinator.compensate(order_id, reason)
            compensation_status = (result.status or CompensationStatus.FAILED).value
            current_domain.process(
                RecordCompensation(order_id=order_id, compensation_status=compensation_status),
                asynchronous=False,
            )

    logger.info(
        "Order cancelled",
        order_id=str(order_id),
        compensation=compensation.value,
        compensation_status=compensation_status,
    )
    order = current_domain.repository_for(Order).get(order_id)
    return CancellationResult(
        order_id=str(order_id),
        status=order.current_status,
        compensation=order.compensation,
        compensation_status=order.compensation_status,
    )
