"""Order placement — idempotent creation of one order per vendor group.

``OrderPlacement`` remembers which order was created for a dedupe key. A
``PlaceOrder`` retried with the same key returns the order created the first
time instead of creating a second one.
"""

import json
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.config import settings
from marketplace.domain import marketplace
from marketplace.order.order import Order, generate_order_number

logger = structlog.get_logger(__name__)


@marketplace.aggregate
class OrderPlacement:
    dedupe_key = String(required=True, max_length=255, unique=True)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    placed_at = DateTime()

    def as_result(self) -> dict:
        return {"order_id": str(self.order_id), "order_number": self.order_number}


def find_placement(dedupe_key):
    repo = current_domain.repository_for(OrderPlacement)
    results = repo._dao.query.filter(dedupe_key=dedupe_key).all()
    return results.items[0] if results.items else None


@marketplace.command(part_of="Order")
class PlaceOrder:
    dedupe_key = String(required=True, max_length=255)
    request = Text(required=True)  # JSON: frozen order-creation request


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        existing = find_placement(command.dedupe_key)
        if existing is not None:
            logger.info("Order already placed for dedupe key", dedupe_key=command.dedupe_key)
            return existing.as_result()

        request = json.loads(command.request) if isinstance(command.request, str) else command.request
        order = Order.place(
            request,
            order_number=generate_order_number(settings().order_number_prefix),
            dedupe_key=command.dedupe_key,
        )
        current_domain.repository_for(Order).add(order)

        placement = OrderPlacement(
            dedupe_key=command.dedupe_key,
            order_id=str(order.id),
            order_number=order.order_number,
            placed_at=datetime.now(UTC),
        )
        current_domain.repository_for(OrderPlacement).add(placement)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            vendor_id=str(order.vendor_id),
            total=order.pricing.total,
        )
        return placement.as_result()
