"""Shipping an order captures its authorized payment first."""

import structlog
from protean.utils.globals import current_domain

from marketplace.order.lifecycle import ShipOrder
from marketplace.order.order import Order, OrderStatus
from marketplace.payment.attempts import payment_for_order
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.payment.payment import AttemptStatus

logger = structlog.get_logger(__name__)


def ship_order(order_id, carrier=None, tracking_number=None, coordinator=None):
    order = current_domain.repository_for(Order).get(order_id)
    if OrderStatus(order.current_status) is not OrderStatus.PROCESSING:
        # Let the aggregate reject the transition before any money moves
        order.ship(carrier=carrier, tracking_number=tracking_number)

    payment = payment_for_order(order_id)
    charge = payment.active_charge if payment else None
    if charge is not None and charge.status == AttemptStatus.AUTHORIZED.value:
        (coordinator or PaymentCoordinator()).capture(order_id)
    else:
        logger.warning("Shipping order without an authorized payment to capture", order_id=str(order_id))

    current_domain.process(
        ShipOrder(order_id=order_id, carrier=carrier, tracking_number=tracking_number),
        asynchronous=False,
    )
