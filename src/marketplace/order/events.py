"""Domain events for the Order aggregate.

Order is event sourced: these events are the only record of an order and
its state is rebuilt from them on every load.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """An order was created for one vendor group of a checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    checkout_token = String()
    dedupe_key = String()
    items = Text(required=True)  # JSON: list of item dicts
    subtotal = Float(required=True)
    item_discount_total = Float(default=0.0)
    coupon_discount = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    total = Float(required=True)
    currency = String(default="USD")
    coupon_code = String()
    delivery_address = Text()  # JSON: address snapshot
    contact_phone = String()
    contact_email = String()
    comment = Text()
    payment_method = String()
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderConfirmed:
    """Payment was authorized; the order left its initial state."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String()
    confirmed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderProcessingStarted:
    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    carrier = String()
    tracking_number = String()
    shipped_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderOutForDelivery:
    __version__ = 1

    order_id = Identifier(required=True)
    dispatched_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled; ``compensation`` names the payment action it triggered."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    actor_kind = String(required=True)
    compensation = String(required=True)  # None, Void, Refund
    compensation_status = String()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class CompensationRecorded:
    __version__ = 1

    order_id = Identifier(required=True)
    compensation = String(required=True)
    compensation_status = String(required=True)
    recorded_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaymentUpdated:
    """The payment status shown on the order changed. Order status is unaffected."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_status = String(required=True)
    note = String()
    updated_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class RefundRequested:
    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    reason = String(required=True)
    amount = Float(required=True)
    requested_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class RefundApproved:
    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    note = String()
    decided_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class RefundRejected:
    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    note = String()
    decided_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderRefunded:
    """The refund request completed and the order reached Refunded."""

    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderReviewed:
    __version__ = 1

    order_id = Identifier(required=True)
    rating = Integer(required=True)
    comment = Text()
    reviewed_at = DateTime(required=True)
