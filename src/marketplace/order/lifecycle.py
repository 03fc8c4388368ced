"""Order status transitions driven by payment and by operators — commands and handler.

Confirm and Fail come from the payment side; the rest are operator actions
moving the order through fulfillment.
"""

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.command(part_of="Order")
class ConfirmOrder:
    """Payment was authorized for the order."""

    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class FailOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="Order")
class RecordOrderPaymentStatus:
    order_id = Identifier(required=True)
    payment_status = String(required=True, max_length=30)
    note = String(max_length=500)


@marketplace.command(part_of="Order")
class StartProcessing:
    """The vendor started picking and packing."""

    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class ShipOrder:
    order_id = Identifier(required=True)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)


@marketplace.command(part_of="Order")
class DispatchOrder:
    """The parcel is out with the courier."""

    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class DeliverOrder:
    order_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class ReviewOrder:
    order_id = Identifier(required=True)
    rating = Integer(required=True)
    comment = Text()


@marketplace.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(ConfirmOrder)
    def confirm(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.confirm()
        repo.add(order)

    @handle(FailOrder)
    def fail(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.fail(command.reason)
        repo.add(order)

    @handle(RecordOrderPaymentStatus)
    def record_payment_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_status(command.payment_status, command.note)
        repo.add(order)

    @handle(StartProcessing)
    def start_processing(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.start_processing()
        repo.add(order)

    @handle(ShipOrder)
    def ship(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.ship(carrier=command.carrier, tracking_number=command.tracking_number)
        repo.add(order)

    @handle(DispatchOrder)
    def dispatch(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.dispatch()
        repo.add(order)

    @handle(DeliverOrder)
    def deliver(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.deliver()
        repo.add(order)

    @handle(ReviewOrder)
    def review(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.add_review(command.rating, command.comment)
        repo.add(order)
