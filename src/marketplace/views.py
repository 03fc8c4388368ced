"""Read views for the presentation layer.

``cart_view`` and ``checkout_state`` are computed from the aggregates on
every call, so prices and groupings are never stale. Order listings read the
``OrderSummary`` projection; ``order_detail`` rebuilds the event-sourced
order itself.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.checkout.allocation import FeeAllocation, allocate
from marketplace.checkout.session import CheckoutSession, SessionStatus, SubmissionCursor
from marketplace.config import settings
from marketplace.order.order import Order, OrderStatus
from marketplace.payment.attempts import payment_for_order
from marketplace.projections.order_summary import OrderSummary
from marketplace.pricing.money import to_amount
from marketplace.pricing.policy import line_total_cents
from marketplace.vendor.vendor import delivery_rule_for, vendor_directory

ORDER_SORTS = ("newest", "oldest", "total_desc", "total_asc")


def _iso(value):
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
def active_session_for(cart_id):
    """The checkout session still drafting against ``cart_id``, if any."""
    sessions = (
        current_domain.repository_for(CheckoutSession)
        ._dao.query.filter(cart_id=str(cart_id), status=SessionStatus.ACTIVE.value)
        .all()
        .items
    )
    drafting = [s for s in sessions if s.cursor == SubmissionCursor.DRAFTING.value]
    return max(drafting, key=lambda s: s.updated_at) if drafting else None


def _line_view(line) -> dict:
    data = line.snapshot()
    data["line_total"] = to_amount(line_total_cents(line)) if line.available else 0.0
    return data


def cart_view(cart_id, session_id=None) -> dict:
    """Cart lines grouped by vendor, each group and the whole cart priced.

    The coupon comes from ``session_id`` or, when omitted, from the cart's
    active checkout session.
    """
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    if session_id:
        session = current_domain.repository_for(CheckoutSession).get(session_id)
    else:
        session = active_session_for(cart_id)
    coupon = session.coupon_descriptor() if session else None

    vendor_ids = cart.vendor_ids()
    rule = delivery_rule_for(vendor_ids)
    directory = vendor_directory(vendor_ids)
    breakdown = cart.breakdown(coupon=coupon, delivery_rule=rule)
    allocations = {
        allocation.vendor_id: allocation.breakdown
        for allocation in allocate(cart.lines, coupon, rule, FeeAllocation(settings().fee_allocation))
    }

    groups = []
    for group in cart.group_by_vendor():
        vendor = directory.get(group.vendor_id)
        group_breakdown = allocations.get(group.vendor_id)
        groups.append(
            {
                "vendor_id": group.vendor_id,
                "vendor_name": vendor.name if vendor else None,
                "min_order_amount": vendor.min_order_amount if vendor else None,
                "lines": [_line_view(line) for line in group.lines],
                "breakdown": group_breakdown.to_dict() if group_breakdown else None,
            }
        )

    return {
        "cart_id": str(cart.id),
        "customer_id": str(cart.customer_id) if cart.customer_id else None,
        "groups": groups,
        "item_count": sum(line.quantity for line in cart.lines if line.available),
        "unavailable_line_ids": [str(line.id) for line in cart.unavailable_lines()],
        "coupon_code": coupon.code if coupon else None,
        "coupon_notice": session.coupon_notice if session else None,
        "breakdown": breakdown.to_dict(),
        "currency": settings().currency,
    }


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
def checkout_state(session_id) -> dict:
    session = current_domain.repository_for(CheckoutSession).get(session_id)
    return {
        "session_id": str(session.id),
        "token": session.token,
        "customer_id": str(session.customer_id),
        "cart_id": str(session.cart_id),
        "step": session.step,
        "status": session.status,
        "cursor": session.cursor,
        "selected_address_id": str(session.selected_address_id) if session.selected_address_id else None,
        "payment_method": session.payment_method,
        "contact_phone": session.contact_phone,
        "contact_email": session.contact_email,
        "comment": session.comment,
        "coupon_code": session.coupon.code if session.coupon else None,
        "coupon_notice": session.coupon_notice,
        "submissions": [
            {
                "vendor_id": str(s.vendor_id),
                "status": s.status,
                "order_id": str(s.order_id) if s.order_id else None,
                "order_number": s.order_number,
                "failure_reason": s.failure_reason,
            }
            for s in session.submissions
        ],
    }


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
def _summary_dict(summary) -> dict:
    return {
        "order_id": str(summary.order_id),
        "order_number": summary.order_number,
        "customer_id": str(summary.customer_id),
        "vendor_id": str(summary.vendor_id),
        "status": summary.status,
        "payment_status": summary.payment_status,
        "item_count": summary.item_count,
        "total": summary.total,
        "currency": summary.currency,
        "created_at": _iso(summary.created_at),
        "updated_at": _iso(summary.updated_at),
    }


def order_summary(order_id) -> dict:
    summary = current_domain.repository_for(OrderSummary).get(order_id)
    return _summary_dict(summary)


def order_detail(order_id) -> dict:
    order = current_domain.repository_for(Order).get(order_id)
    payment = payment_for_order(order_id)

    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "vendor_id": str(order.vendor_id),
        "status": order.current_status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "items": [
            {
                "item_id": str(item.id),
                "product_id": str(item.product_id),
                "title": item.title,
                "unit_price": item.unit_price,
                "compare_at_price": item.compare_at_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
            }
            for item in order.items
        ],
        "pricing": order.pricing.breakdown().to_dict() if order.pricing else None,
        "currency": order.pricing.currency if order.pricing else settings().currency,
        "coupon_code": order.coupon_code,
        "delivery_address": order.delivery_address.to_dict() if order.delivery_address else None,
        "contact_phone": order.contact_phone,
        "contact_email": order.contact_email,
        "comment": order.comment,
        "carrier": order.carrier,
        "tracking_number": order.tracking_number,
        "cancellation_reason": order.cancellation_reason,
        "compensation": order.compensation,
        "compensation_status": order.compensation_status,
        "status_history": [
            {
                "status": entry.status,
                "timestamp": _iso(entry.timestamp),
                "actor_kind": entry.actor_kind,
                "note": entry.note,
            }
            for entry in order.status_history
        ],
        "refunds": [
            {
                "refund_id": str(refund.id),
                "reason": refund.reason,
                "amount": refund.amount,
                "status": refund.status,
                "requested_at": _iso(refund.requested_at),
                "decided_at": _iso(refund.decided_at),
            }
            for refund in order.refund_requests
        ],
        "payment_attempts": [
            {
                "attempt_id": str(attempt.id),
                "kind": attempt.kind,
                "method": attempt.method,
                "amount": attempt.amount,
                "status": attempt.status,
                "failure_reason": attempt.failure_reason,
                "attempted_at": _iso(attempt.attempted_at),
            }
            for attempt in (payment.attempts if payment else [])
        ],
        "rating": order.rating,
        "review": order.review,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


@dataclass(frozen=True)
class OrderFilter:
    customer_id: str | None = None
    vendor_id: str | None = None
    status: str | None = None
    sort: str = "newest"
    limit: int = 50
    offset: int = 0

    def __post_init__(self):
        errors = {}
        if self.status is not None and self.status not in {s.value for s in OrderStatus}:
            errors["status"] = [f"Unknown order status {self.status}"]
        if self.sort not in ORDER_SORTS:
            errors["sort"] = [f"Sort must be one of {', '.join(ORDER_SORTS)}"]
        if self.limit < 1 or self.offset < 0:
            errors["limit"] = ["limit must be positive and offset not negative"]
        if errors:
            raise ValidationError(errors)

    def criteria(self) -> dict:
        values = {"customer_id": self.customer_id, "vendor_id": self.vendor_id, "status": self.status}
        return {name: value for name, value in values.items() if value is not None}


def _sort_key(sort):
    if sort in ("total_desc", "total_asc"):
        return lambda summary: summary.total or 0.0
    return lambda summary: summary.created_at


def list_orders(order_filter: OrderFilter | None = None) -> list[dict]:
    order_filter = order_filter or OrderFilter()
    query = current_domain.repository_for(OrderSummary)._dao.query
    criteria = order_filter.criteria()
    if criteria:
        query = query.filter(**criteria)
    summaries = sorted(
        query.all().items,
        key=_sort_key(order_filter.sort),
        reverse=order_filter.sort in ("newest", "total_desc"),
    )
    page = summaries[order_filter.offset : order_filter.offset + order_filter.limit]
    return [_summary_dict(summary) for summary in page]
