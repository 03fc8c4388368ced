"""Checkout Saga — submits a checkout session as one order per vendor group.

Steps, each idempotent and each recorded on the session before the next one
starts:

    1. revalidate → coupon, item availability and vendor minimums
    2. freeze     → one order-creation request per vendor group (BeginSubmission)
    3. place      → PlaceOrder per group, keyed by ``<token>:<vendor_id>``
    4. authorize  → PaymentCoordinator.authorize per placed order
    5. complete   → session Completed, purchased lines cleared from the cart

A group that fails is reported and left for a retry; the orders of the other
groups stand. Calling ``submit`` again for the same session resumes from the
persisted cursor and only touches groups that have not succeeded.
"""

import json
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.address.address_book import address_book_for
from marketplace.cart.cart import ShoppingCart, group_by_vendor
from marketplace.cart.items import ClearCart
from marketplace.checkout.allocation import FeeAllocation, allocate
from marketplace.checkout.coupons import RevalidateCheckoutCoupon
from marketplace.checkout.session import (
    CheckoutSession,
    CheckoutStep,
    SessionStatus,
    SubmissionCursor,
    SubmissionStatus,
)
from marketplace.checkout.submission import (
    BeginSubmission,
    CompleteCheckout,
    RecordVendorFailure,
    RecordVendorOrder,
    RecordVendorPayment,
)
from marketplace.config import settings
from marketplace.errors import (
    BelowVendorMinimum,
    ConflictError,
    CouponInvalidated,
    ItemUnavailable,
    TransportError,
)
from marketplace.order.placement import PlaceOrder
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.pricing.money import to_amount, to_cents
from marketplace.pricing.policy import line_total_cents
from marketplace.vendor.vendor import delivery_rule_for, vendor_directory

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GroupResult:
    vendor_id: str
    status: str
    order_id: str | None = None
    order_number: str | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.AUTHORIZED.value


@dataclass(frozen=True)
class SubmissionReport:
    session_id: str
    cursor: str
    completed: bool
    groups: tuple = field(default_factory=tuple)

    @property
    def failed_groups(self):
        return tuple(group for group in self.groups if not group.succeeded)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "cursor": self.cursor,
            "completed": self.completed,
            "groups": [
                {
                    "vendor_id": group.vendor_id,
                    "status": group.status,
                    "order_id": group.order_id,
                    "order_number": group.order_number,
                    "reason": group.reason,
                }
                for group in self.groups
            ],
        }


def report_for(session) -> SubmissionReport:
    return SubmissionReport(
        session_id=str(session.id),
        cursor=session.cursor,
        completed=session.status == SessionStatus.COMPLETED.value,
        groups=tuple(
            GroupResult(
                vendor_id=str(s.vendor_id),
                status=s.status,
                order_id=str(s.order_id) if s.order_id else None,
                order_number=s.order_number,
                reason=s.failure_reason,
            )
            for s in session.submissions
        ),
    )


def finish_if_settled(session_id) -> bool:
    """Complete the session and clear the purchased lines once every group is authorized."""
    session = current_domain.repository_for(CheckoutSession).get(session_id)
    if session.status == SessionStatus.COMPLETED.value:
        return True
    if not session.all_settled:
        return False

    current_domain.process(CompleteCheckout(session_id=str(session.id)), asynchronous=False)
    vendor_ids = [str(s.vendor_id) for s in session.submissions]
    current_domain.process(
        ClearCart(cart_id=str(session.cart_id), vendor_ids=json.dumps(vendor_ids)),
        asynchronous=False,
    )
    logger.info("Checkout completed", session_id=str(session.id), order_count=len(vendor_ids))
    return True


class CheckoutSaga:
    def __init__(self, coordinator=None, fee_allocation: FeeAllocation | None = None):
        self._coordinator = coordinator
        self._fee_allocation = fee_allocation

    @property
    def coordinator(self):
        return self._coordinator or PaymentCoordinator()

    @property
    def fee_allocation(self) -> FeeAllocation:
        return self._fee_allocation or FeeAllocation(settings().fee_allocation)

    def _session(self, session_id):
        return current_domain.repository_for(CheckoutSession).get(session_id)

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def submit(self, session_id) -> SubmissionReport:
        session = self._session(session_id)
        if session.status == SessionStatus.COMPLETED.value:
            return report_for(session)
        if CheckoutStep(session.step) is not CheckoutStep.CONFIRM:
            raise ValidationError({"step": ["Checkout can only be submitted from the Confirm step"]})

        if session.cursor == SubmissionCursor.DRAFTING.value:
            self.revalidate(session)
            self.freeze(session)

        self.place(self._session(session_id))
        self.authorize(self._session(session_id))
        finish_if_settled(session_id)

        report = report_for(self._session(session_id))
        logger.info(
            "Checkout submission finished",
            session_id=str(session_id),
            cursor=report.cursor,
            failed_groups=[group.vendor_id for group in report.failed_groups],
        )
        return report

    # -------------------------------------------------------------------
    # Step 1: revalidate
    # -------------------------------------------------------------------
    def revalidate(self, session):
        cart = current_domain.repository_for(ShoppingCart).get(session.cart_id)
        if not cart.lines:
            raise ValidationError({"cart_id": ["Cannot check out an empty cart"]})

        if session.coupon is not None:
            notice = current_domain.process(
                RevalidateCheckoutCoupon(session_id=str(session.id)),
                asynchronous=False,
            )
            if notice:
                raise CouponInvalidated(notice, coupon_code=session.coupon.code)

        unavailable = cart.unavailable_lines()
        if unavailable:
            raise ItemUnavailable(
                "Some items are no longer available",
                line_ids=[str(line.id) for line in unavailable],
            )

        directory = vendor_directory(cart.vendor_ids())
        for group in cart.group_by_vendor():
            vendor = directory.get(group.vendor_id)
            minimum = vendor.min_order_amount if vendor else None
            if minimum and to_cents(group.merchandise_total) < to_cents(minimum):
                raise BelowVendorMinimum(
                    f"Order from {vendor.name} must be at least {minimum}",
                    vendor_id=group.vendor_id,
                    minimum=minimum,
                    merchandise_total=group.merchandise_total,
                )

        book = address_book_for(session.customer_id)
        if book is None or book.find(session.selected_address_id) is None:
            raise ValidationError({"selected_address_id": ["The selected address no longer exists"]})

    # -------------------------------------------------------------------
    # Step 2: freeze
    # -------------------------------------------------------------------
    def build_requests(self, session) -> list[dict]:
        cart = current_domain.repository_for(ShoppingCart).get(session.cart_id)
        rule = delivery_rule_for(cart.vendor_ids())
        allocations = {
            allocation.vendor_id: allocation
            for allocation in allocate(cart.lines, session.coupon_descriptor(), rule, self.fee_allocation)
        }
        address = address_book_for(session.customer_id).find(session.selected_address_id).snapshot()
        currency = settings().currency

        requests = []
        for group in group_by_vendor(cart.lines):
            allocation = allocations.get(group.vendor_id)
            if allocation is None:
                continue
            requests.append(
                {
                    "vendor_id": group.vendor_id,
                    "customer_id": str(session.customer_id),
                    "checkout_token": session.token,
                    "items": [
                        {
                            "source_line_id": str(line.id),
                            "product_id": str(line.product_id),
                            "title": line.title,
                            "unit_price": line.unit_price,
                            "compare_at_price": line.compare_at_price,
                            "quantity": line.quantity,
                            "line_total": to_amount(line_total_cents(line)),
                        }
                        for line in group.available_lines
                    ],
                    "pricing": allocation.breakdown.to_dict(),
                    "currency": currency,
                    "coupon_code": session.coupon.code if session.coupon else None,
                    "delivery_address": address,
                    "contact_phone": session.contact_phone,
                    "contact_email": session.contact_email,
                    "comment": session.comment,
                    "payment_method": session.payment_method,
                }
            )
        return requests

    def freeze(self, session):
        requests = self.build_requests(session)
        current_domain.process(
            BeginSubmission(session_id=str(session.id), requests=json.dumps(requests)),
            asynchronous=False,
        )

    # -------------------------------------------------------------------
    # Step 3: place
    # -------------------------------------------------------------------
    def place(self, session):
        for submission in session.submissions:
            if not submission.needs_order:
                continue
            try:
                placed = current_domain.process(
                    PlaceOrder(dedupe_key=submission.dedupe_key, request=submission.request),
                    asynchronous=False,
                )
            except (ValidationError, ConflictError, TransportError) as exc:
                reason = getattr(exc, "message", None) or str(exc)
                logger.warning(
                    "Order placement failed for vendor group",
                    session_id=str(session.id),
                    vendor_id=str(submission.vendor_id),
                    reason=reason,
                )
                current_domain.process(
                    RecordVendorFailure(session_id=str(session.id), vendor_id=str(submission.vendor_id), reason=reason),
                    asynchronous=False,
                )
                continue

            current_domain.process(
                RecordVendorOrder(
                    session_id=str(session.id),
                    vendor_id=str(submission.vendor_id),
                    order_id=placed["order_id"],
                    order_number=placed["order_number"],
                ),
                asynchronous=False,
            )

    # -------------------------------------------------------------------
    # Step 4: authorize
    # -------------------------------------------------------------------
    def authorize(self, session):
        for submission in session.submissions:
            if not submission.needs_payment:
                continue
            try:
                outcome = self.coordinator.authorize(submission.order_id, session.payment_method)
            except (ValidationError, ConflictError) as exc:
                reason = getattr(exc, "message", None) or str(exc)
                current_domain.process(
                    RecordVendorFailure(session_id=str(session.id), vendor_id=str(submission.vendor_id), reason=reason),
                    asynchronous=False,
                )
                continue

            current_domain.process(
                RecordVendorPayment(
                    session_id=str(session.id),
                    vendor_id=str(submission.vendor_id),
                    outcome=outcome.outcome,
                    failure_reason=outcome.reason,
                ),
                asynchronous=False,
            )
