"""Order summary — lightweight listing view, one row per order."""

import json

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderFailed,
    OrderOutForDelivery,
    OrderPaymentUpdated,
    OrderPlaced,
    OrderProcessingStarted,
    OrderRefunded,
    OrderShipped,
)
from marketplace.order.order import Order, OrderStatus


@marketplace.projection
class OrderSummary:
    order_id = Identifier(identifier=True, required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    checkout_token = String()
    status = String(required=True)
    payment_status = String()
    item_count = Integer(default=0)
    total = Float()
    currency = String(default="USD")
    created_at = DateTime()
    updated_at = DateTime()


@marketplace.projector(projector_for=OrderSummary, aggregates=[Order])
class OrderSummaryProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        items = json.loads(event.items) if isinstance(event.items, str) else []
        current_domain.repository_for(OrderSummary).add(
            OrderSummary(
                order_id=event.order_id,
                order_number=event.order_number,
                customer_id=event.customer_id,
                vendor_id=event.vendor_id,
                checkout_token=event.checkout_token,
                status=OrderStatus.PENDING.value,
                payment_status="Unpaid",
                item_count=sum(item.get("quantity", 0) for item in items),
                total=event.total,
                currency=event.currency or "USD",
                created_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    def _update(self, order_id, updated_at=None, **changes):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(order_id)
        for name, value in changes.items():
            setattr(summary, name, value)
        if updated_at:
            summary.updated_at = updated_at
        repo.add(summary)

    @on(OrderConfirmed)
    def on_order_confirmed(self, event):
        self._update(
            event.order_id,
            event.confirmed_at,
            status=OrderStatus.CONFIRMED.value,
            payment_status="Authorized",
        )

    @on(OrderFailed)
    def on_order_failed(self, event):
        self._update(event.order_id, event.failed_at, status=OrderStatus.FAILED.value)

    @on(OrderPaymentUpdated)
    def on_payment_updated(self, event):
        self._update(event.order_id, event.updated_at, payment_status=event.payment_status)

    @on(OrderProcessingStarted)
    def on_processing_started(self, event):
        self._update(event.order_id, event.started_at, status=OrderStatus.PROCESSING.value)

    @on(OrderShipped)
    def on_order_shipped(self, event):
        self._update(event.order_id, event.shipped_at, status=OrderStatus.SHIPPED.value)

    @on(OrderOutForDelivery)
    def on_out_for_delivery(self, event):
        self._update(event.order_id, event.dispatched_at, status=OrderStatus.OUT_FOR_DELIVERY.value)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        self._update(event.order_id, event.delivered_at, status=OrderStatus.DELIVERED.value)

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        self._update(event.order_id, event.cancelled_at, status=OrderStatus.CANCELLED.value)

    @on(OrderRefunded)
    def on_order_refunded(self, event):
        self._update(
            event.order_id,
            event.refunded_at,
            status=OrderStatus.REFUNDED.value,
            payment_status="Refunded",
        )
