"""Order aggregate (Event Sourced) — one vendor's share of a checkout.

All state changes are captured as domain events and the current state is
rebuilt by replaying them via @apply handlers. Nothing about an order is kept
in memory between requests; an order that waits in Pending for an
asynchronous payment is simply reloaded from its stream.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → OUT_FOR_DELIVERY → DELIVERED
    PENDING → FAILED
    PENDING/CONFIRMED/PROCESSING → CANCELLED
    DELIVERED → REFUNDED (only when a refund request completes)

Every transition appends a StatusEvent to ``status_history``; the current
status is always the status of the last entry.

Refund requests run their own sub-state independent of the order status:
    REQUESTED → APPROVED → COMPLETED
    REQUESTED → REJECTED
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import apply
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from marketplace.address.address_book import ADDRESS_FIELDS
from marketplace.domain import marketplace
from marketplace.errors import (
    AlreadyInProgress,
    CancellationNotAllowed,
    IllegalTransition,
    OrderAlreadyCancelled,
    RefundNotAllowed,
)
from marketplace.order.events import (
    CompensationRecorded,
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderFailed,
    OrderOutForDelivery,
    OrderPaymentUpdated,
    OrderPlaced,
    OrderProcessingStarted,
    OrderRefunded,
    OrderReviewed,
    OrderShipped,
    RefundApproved,
    RefundRejected,
    RefundRequested,
)
from marketplace.pricing import PriceBreakdown
from marketplace.pricing.money import to_cents


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "OutForDelivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"
    FAILED = "Failed"


class ActorKind(Enum):
    CUSTOMER = "Customer"
    SYSTEM = "System"
    OPERATOR = "Operator"


class Compensation(Enum):
    NONE = "None"
    VOID = "Void"
    REFUND = "Refund"


class CompensationStatus(Enum):
    REQUESTED = "Requested"
    COMPLETED = "Completed"
    FAILED = "Failed"


class RefundStatus(Enum):
    REQUESTED = "Requested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}

# States from which the customer may cancel
_CANCELLABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
}

TERMINAL_STATES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)

_OPEN_REFUND_STATES = {RefundStatus.REQUESTED.value, RefundStatus.APPROVED.value}


def generate_order_number(prefix: str, now: datetime | None = None) -> str:
    """Human-readable order number, ``<PREFIX>-<YYMMDD>-<8 hex>``."""
    now = now or datetime.now(UTC)
    return f"{prefix}-{now:%y%m%d}-{uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class PriceSnapshot:
    """The order's share of the checkout breakdown, frozen at placement."""

    subtotal = Float(default=0.0)
    item_discount_total = Float(default=0.0)
    coupon_discount = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="USD")

    def breakdown(self) -> PriceBreakdown:
        return PriceBreakdown(
            subtotal=self.subtotal,
            item_discount_total=self.item_discount_total,
            coupon_discount=self.coupon_discount,
            delivery_fee=self.delivery_fee,
            total=self.total,
        )


@marketplace.value_object(part_of="Order")
class OrderAddress:
    """Where the order goes. A copy; later address book edits never reach it."""

    address_id = Identifier()
    recipient_name = String(max_length=255)
    phone = String(max_length=30)
    line1 = String(max_length=255)
    entrance = String(max_length=20)
    floor = String(max_length=20)
    apartment = String(max_length=20)
    intercom = String(max_length=20)
    city = String(max_length=100)
    region = String(max_length=100)
    postal_code = String(max_length=20)
    instructions = Text()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    """Immutable copy of the cart line that produced it."""

    source_line_id = Identifier()
    product_id = Identifier(required=True)
    title = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    compare_at_price = Float()
    quantity = Integer(required=True, min_value=1)
    line_total = Float(required=True, min_value=0.0)

    def as_cart_line(self, vendor_id) -> dict:
        return {
            "product_id": str(self.product_id),
            "vendor_id": str(vendor_id),
            "title": self.title,
            "unit_price": self.unit_price,
            "compare_at_price": self.compare_at_price,
            "quantity": self.quantity,
        }


@marketplace.entity(part_of="Order")
class StatusEvent:
    status = String(choices=OrderStatus, required=True)
    timestamp = DateTime(required=True)
    actor_kind = String(choices=ActorKind, required=True)
    note = String(max_length=500)


@marketplace.entity(part_of="Order")
class RefundRequest:
    reason = String(required=True, max_length=500)
    amount = Float(required=True, min_value=0.0)
    status = String(choices=RefundStatus, default=RefundStatus.REQUESTED.value)
    requested_at = DateTime(required=True)
    decided_at = DateTime()
    note = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@marketplace.aggregate(is_event_sourced=True)
class Order:
    order_number = String(max_length=50)
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    checkout_token = String(max_length=64)
    dedupe_key = String(max_length=255)
    items = HasMany(OrderItem)
    pricing = ValueObject(PriceSnapshot)
    coupon_code = String(max_length=50)
    delivery_address = ValueObject(OrderAddress)
    contact_phone = String(max_length=30)
    contact_email = String(max_length=254)
    comment = Text()
    payment_method = String(max_length=30)
    payment_status = String(max_length=30)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    status_history = HasMany(StatusEvent)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    cancellation_reason = String(max_length=500)
    compensation = String(choices=Compensation)
    compensation_status = String(choices=CompensationStatus)
    refund_requests = HasMany(RefundRequest)
    rating = Integer(min_value=1, max_value=5)
    review = Text()
    created_at = DateTime()
    updated_at = DateTime()
    cancelled_at = DateTime()
    delivered_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, request: dict, order_number: str, dedupe_key: str | None = None):
        """Create a Pending order from a frozen order-creation request.

        Args:
            request: Dict with customer_id, vendor_id, checkout_token, items,
                     pricing, currency, coupon_code, delivery_address,
                     contact_phone, contact_email, comment, payment_method.
            order_number: Human-readable number, see ``generate_order_number``.
            dedupe_key: Idempotency key of the vendor group.
        """
        pricing = request.get("pricing") or {}
        # Validates the frozen breakdown before anything is recorded
        PriceBreakdown(**pricing)

        items_with_ids = [{**item, "id": str(uuid4())} for item in request.get("items", [])]
        if not items_with_ids:
            raise ValidationError({"items": ["An order needs at least one item"]})

        order = cls._create_new()
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=str(request["customer_id"]),
                vendor_id=str(request["vendor_id"]),
                checkout_token=request.get("checkout_token"),
                dedupe_key=dedupe_key,
                items=json.dumps(items_with_ids),
                subtotal=pricing.get("subtotal", 0.0),
                item_discount_total=pricing.get("item_discount_total", 0.0),
                coupon_discount=pricing.get("coupon_discount", 0.0),
                delivery_fee=pricing.get("delivery_fee", 0.0),
                total=pricing.get("total", 0.0),
                currency=request.get("currency") or "USD",
                coupon_code=request.get("coupon_code"),
                delivery_address=json.dumps(request.get("delivery_address") or {}),
                contact_phone=request.get("contact_phone"),
                contact_email=request.get("contact_email"),
                comment=request.get("comment"),
                payment_method=request.get("payment_method"),
                placed_at=datetime.now(UTC),
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> str:
        """The status of the last ledger entry."""
        return self.status_history[-1].status if self.status_history else self.status

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.current_status) in TERMINAL_STATES

    def find_refund(self, refund_id):
        return next((r for r in self.refund_requests if str(r.id) == str(refund_id)), None)

    @property
    def open_refund(self):
        return next((r for r in self.refund_requests if r.status in _OPEN_REFUND_STATES), None)

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def can_transition_to(self, target_status) -> bool:
        return OrderStatus(target_status) in _VALID_TRANSITIONS[OrderStatus(self.current_status)]

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        if not self.can_transition_to(target_status):
            raise IllegalTransition(
                f"Cannot transition from {self.current_status} to {target_status.value}",
                order_id=str(self.id),
            )

    def _append_history(self, status: OrderStatus, timestamp, actor_kind: ActorKind, note=None):
        self.add_status_history(
            StatusEvent(
                status=status.value,
                timestamp=timestamp,
                actor_kind=actor_kind.value,
                note=note,
            )
        )
        self.status = status.value
        self.updated_at = timestamp

    # -------------------------------------------------------------------
    # Payment driven transitions
    # -------------------------------------------------------------------
    def confirm(self):
        """Payment was authorized."""
        self._assert_can_transition(OrderStatus.CONFIRMED)
        self.raise_(
            OrderConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                confirmed_at=datetime.now(UTC),
            )
        )

    def fail(self, reason):
        self._assert_can_transition(OrderStatus.FAILED)
        self.raise_(OrderFailed(order_id=str(self.id), reason=reason, failed_at=datetime.now(UTC)))

    def record_payment_status(self, payment_status, note=None):
        if payment_status == self.payment_status:
            return
        self.raise_(
            OrderPaymentUpdated(
                order_id=str(self.id),
                payment_status=payment_status,
                note=note,
                updated_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Operator transitions
    # -------------------------------------------------------------------
    def start_processing(self):
        self._assert_can_transition(OrderStatus.PROCESSING)
        self.raise_(OrderProcessingStarted(order_id=str(self.id), started_at=datetime.now(UTC)))

    def ship(self, carrier=None, tracking_number=None):
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.raise_(
            OrderShipped(
                order_id=str(self.id),
                carrier=carrier,
                tracking_number=tracking_number,
                shipped_at=datetime.now(UTC),
            )
        )

    def dispatch(self):
        """Hand the parcel to the courier for the last mile."""
        self._assert_can_transition(OrderStatus.OUT_FOR_DELIVERY)
        self.raise_(OrderOutForDelivery(order_id=str(self.id), dispatched_at=datetime.now(UTC)))

    def deliver(self):
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=datetime.now(UTC)))

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def ensure_cancellable(self):
        current = OrderStatus(self.current_status)
        if current is OrderStatus.CANCELLED:
            raise OrderAlreadyCancelled("Order is already cancelled", order_id=str(self.id))
        if current not in _CANCELLABLE_STATES:
            raise CancellationNotAllowed(
                f"Cannot cancel an order that is {current.value}",
                order_id=str(self.id),
                status=current.value,
            )

    def cancel(self, reason, actor_kind: ActorKind = ActorKind.CUSTOMER, compensation=Compensation.NONE):
        """Cancel the order and record which payment compensation it triggers."""
        self.ensure_cancellable()
        if not (reason or "").strip():
            raise ValidationError({"reason": ["A cancellation reason is required"]})
        self._assert_can_transition(OrderStatus.CANCELLED)

        compensation = Compensation(compensation)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason.strip(),
                actor_kind=ActorKind(actor_kind).value,
                compensation=compensation.value,
                compensation_status=(
                    None if compensation is Compensation.NONE else CompensationStatus.REQUESTED.value
                ),
                cancelled_at=datetime.now(UTC),
            )
        )

    def record_compensation(self, compensation_status):
        if self.compensation in (None, Compensation.NONE.value):
            raise ValidationError({"compensation": ["This order has no payment compensation to record"]})
        self.raise_(
            CompensationRecorded(
                order_id=str(self.id),
                compensation=self.compensation,
                compensation_status=CompensationStatus(compensation_status).value,
                recorded_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def request_refund(self, reason, amount=None) -> str:
        """Open a refund request. Returns the refund_id for tracking."""
        current = OrderStatus(self.current_status)
        if current is not OrderStatus.DELIVERED:
            raise RefundNotAllowed(
                f"Refunds can only be requested for delivered orders, not {current.value}",
                order_id=str(self.id),
            )
        if self.open_refund is not None:
            raise AlreadyInProgress("A refund request is already open", order_id=str(self.id))
        if not (reason or "").strip():
            raise ValidationError({"reason": ["A refund reason is required"]})

        amount = self.pricing.total if amount is None else amount
        if amount <= 0 or to_cents(amount) > to_cents(self.pricing.total):
            raise ValidationError({"amount": [f"Refund amount must be between 0 and {self.pricing.total}"]})

        refund_id = str(uuid4())
        self.raise_(
            RefundRequested(
                order_id=str(self.id),
                refund_id=refund_id,
                reason=reason.strip(),
                amount=amount,
                requested_at=datetime.now(UTC),
            )
        )
        return refund_id

    def _require_refund(self, refund_id, expected: RefundStatus):
        refund = self.find_refund(refund_id)
        if refund is None:
            raise ValidationError({"refund_id": ["Refund request not found"]})
        if refund.status != expected.value:
            raise ValidationError({"refund": [f"Refund request is {refund.status}, expected {expected.value}"]})
        return refund

    def approve_refund(self, refund_id, note=None):
        self._require_refund(refund_id, RefundStatus.REQUESTED)
        self.raise_(
            RefundApproved(order_id=str(self.id), refund_id=str(refund_id), note=note, decided_at=datetime.now(UTC))
        )

    def reject_refund(self, refund_id, note=None):
        self._require_refund(refund_id, RefundStatus.REQUESTED)
        self.raise_(
            RefundRejected(order_id=str(self.id), refund_id=str(refund_id), note=note, decided_at=datetime.now(UTC))
        )

    def complete_refund(self, refund_id):
        """The money went back to the customer; the order becomes Refunded."""
        refund = self._require_refund(refund_id, RefundStatus.APPROVED)
        self._assert_can_transition(OrderStatus.REFUNDED)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refund_id=str(refund_id),
                amount=refund.amount,
                refunded_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------
    def add_review(self, rating, comment=None):
        if OrderStatus(self.current_status) is not OrderStatus.DELIVERED:
            raise ValidationError({"status": ["Only delivered orders can be reviewed"]})
        if self.rating is not None:
            raise ValidationError({"rating": ["This order has already been reviewed"]})
        if not 1 <= rating <= 5:
            raise ValidationError({"rating": ["Rating must be between 1 and 5"]})
        self.raise_(
            OrderReviewed(order_id=str(self.id), rating=rating, comment=comment, reviewed_at=datetime.now(UTC))
        )

    # -------------------------------------------------------------------
    # @apply methods: rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_order_placed(self, event: OrderPlaced):
        self.id = event.order_id
        self.order_number = event.order_number
        self.customer_id = event.customer_id
        self.vendor_id = event.vendor_id
        self.checkout_token = event.checkout_token
        self.dedupe_key = event.dedupe_key
        self.coupon_code = event.coupon_code
        self.contact_phone = event.contact_phone
        self.contact_email = event.contact_email
        self.comment = event.comment
        self.payment_method = event.payment_method
        self.payment_status = "Unpaid"
        self.created_at = event.placed_at

        items_data = json.loads(event.items) if isinstance(event.items, str) else []
        self.items = [OrderItem(**item_data) for item_data in items_data]

        address = json.loads(event.delivery_address) if isinstance(event.delivery_address, str) else {}
        if address:
            self.delivery_address = OrderAddress(
                address_id=address.get("address_id"),
                **{field: address.get(field) for field in ADDRESS_FIELDS},
            )

        self.pricing = PriceSnapshot(
            subtotal=event.subtotal,
            item_discount_total=event.item_discount_total or 0.0,
            coupon_discount=event.coupon_discount or 0.0,
            delivery_fee=event.delivery_fee or 0.0,
            total=event.total,
            currency=event.currency or "USD",
        )
        self._append_history(OrderStatus.PENDING, event.placed_at, ActorKind.SYSTEM, "Order placed")

    @apply
    def _on_order_confirmed(self, event: OrderConfirmed):
        self.payment_status = "Authorized"
        self._append_history(OrderStatus.CONFIRMED, event.confirmed_at, ActorKind.SYSTEM, "Payment authorized")

    @apply
    def _on_order_failed(self, event: OrderFailed):
        self._append_history(OrderStatus.FAILED, event.failed_at, ActorKind.SYSTEM, event.reason)

    @apply
    def _on_payment_updated(self, event: OrderPaymentUpdated):
        self.payment_status = event.payment_status
        self.updated_at = event.updated_at

    @apply
    def _on_processing_started(self, event: OrderProcessingStarted):
        self._append_history(OrderStatus.PROCESSING, event.started_at, ActorKind.OPERATOR)

    @apply
    def _on_order_shipped(self, event: OrderShipped):
        self.carrier = event.carrier
        self.tracking_number = event.tracking_number
        self._append_history(OrderStatus.SHIPPED, event.shipped_at, ActorKind.OPERATOR)

    @apply
    def _on_out_for_delivery(self, event: OrderOutForDelivery):
        self._append_history(OrderStatus.OUT_FOR_DELIVERY, event.dispatched_at, ActorKind.OPERATOR)

    @apply
    def _on_order_delivered(self, event: OrderDelivered):
        self.delivered_at = event.delivered_at
        self._append_history(OrderStatus.DELIVERED, event.delivered_at, ActorKind.OPERATOR)

    @apply
    def _on_order_cancelled(self, event: OrderCancelled):
        self.cancellation_reason = event.reason
        self.compensation = event.compensation
        self.compensation_status = event.compensation_status
        self.cancelled_at = event.cancelled_at
        self._append_history(OrderStatus.CANCELLED, event.cancelled_at, ActorKind(event.actor_kind), event.reason)

    @apply
    def _on_compensation_recorded(self, event: CompensationRecorded):
        self.compensation = event.compensation
        self.compensation_status = event.compensation_status
        self.updated_at = event.recorded_at

    @apply
    def _on_refund_requested(self, event: RefundRequested):
        self.add_refund_requests(
            RefundRequest(
                id=event.refund_id,
                reason=event.reason,
                amount=event.amount,
                status=RefundStatus.REQUESTED.value,
                requested_at=event.requested_at,
            )
        )
        self.updated_at = event.requested_at

    @apply
    def _on_refund_approved(self, event: RefundApproved):
        refund = self.find_refund(event.refund_id)
        if refund:
            refund.status = RefundStatus.APPROVED.value
            refund.decided_at = event.decided_at
            refund.note = event.note
        self.updated_at = event.decided_at

    @apply
    def _on_refund_rejected(self, event: RefundRejected):
        refund = self.find_refund(event.refund_id)
        if refund:
            refund.status = RefundStatus.REJECTED.value
            refund.decided_at = event.decided_at
            refund.note = event.note
        self.updated_at = event.decided_at

    @apply
    def _on_order_refunded(self, event: OrderRefunded):
        refund = self.find_refund(event.refund_id)
        if refund:
            refund.status = RefundStatus.COMPLETED.value
        self.payment_status = "Refunded"
        self._append_history(OrderStatus.REFUNDED, event.refunded_at, ActorKind.OPERATOR, "Refund completed")

    @apply
    def _on_order_reviewed(self, event: OrderReviewed):
        self.rating = event.rating
        self.review = event.comment
        self.updated_at = event.reviewed_at
