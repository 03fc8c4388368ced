"""CheckoutSession aggregate (CQRS) — the checkout wizard and its submission cursor.

Wizard steps:
    Address → Payment → Confirm

Moving forward is gated (an address before Payment, a payment method and a
phone before Confirm). Moving back is always allowed and keeps every value
already entered.

Submission cursor:
    Drafting → Submitting → (AwaitingPayment) → Completed

The cursor and one ``VendorSubmission`` per vendor group are persisted, so a
retried or resumed submission picks up where the previous one stopped. Each
submission carries the frozen order-creation request of its group and the
dedupe key ``<token>:<vendor_id>``.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String, Text, ValueObject

from marketplace.checkout.events import (
    CheckoutCompleted,
    CheckoutCouponApplied,
    CheckoutCouponDetached,
    CheckoutCouponRemoved,
    CheckoutStarted,
    CheckoutStepChanged,
    CheckoutSubmitted,
    VendorGroupFailed,
    VendorOrderPlaced,
    VendorPaymentRecorded,
)
from marketplace.domain import marketplace
from marketplace.pricing import DiscountDescriptor, DiscountKind


class CheckoutStep(Enum):
    ADDRESS = "Address"
    PAYMENT = "Payment"
    CONFIRM = "Confirm"


_STEP_ORDER = [CheckoutStep.ADDRESS, CheckoutStep.PAYMENT, CheckoutStep.CONFIRM]


class SessionStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


class SubmissionCursor(Enum):
    DRAFTING = "Drafting"
    SUBMITTING = "Submitting"
    AWAITING_PAYMENT = "AwaitingPayment"
    COMPLETED = "Completed"


class SubmissionStatus(Enum):
    PENDING = "Pending"
    ORDER_PLACED = "OrderPlaced"
    AUTHORIZED = "Authorized"
    AWAITING_PAYMENT = "AwaitingPayment"
    PAYMENT_DECLINED = "PaymentDeclined"
    FAILED = "Failed"


class PaymentMethodKind(Enum):
    CARD = "card"
    WALLET = "wallet"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentOutcome(Enum):
    AUTHORIZED = "authorized"
    PENDING = "pending"
    DECLINED = "declined"


_OUTCOME_STATUS = {
    PaymentOutcome.AUTHORIZED: SubmissionStatus.AUTHORIZED,
    PaymentOutcome.PENDING: SubmissionStatus.AWAITING_PAYMENT,
    PaymentOutcome.DECLINED: SubmissionStatus.PAYMENT_DECLINED,
}


def dedupe_key(token, vendor_id) -> str:
    return f"{token}:{vendor_id}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="CheckoutSession")
class AppliedCoupon:
    """An accepted coupon. Held by the checkout, never by the cart."""

    code = String(required=True, max_length=50)
    kind = String(choices=DiscountKind, required=True)
    value = Float(required=True)
    vendor_id = Identifier()
    max_discount = Float()

    @classmethod
    def from_descriptor(cls, descriptor: DiscountDescriptor):
        return cls(
            code=descriptor.code,
            kind=descriptor.kind.value,
            value=descriptor.value,
            vendor_id=descriptor.vendor_id,
            max_discount=descriptor.max_discount,
        )

    def descriptor(self) -> DiscountDescriptor:
        return DiscountDescriptor(
            code=self.code,
            kind=DiscountKind(self.kind),
            value=self.value,
            vendor_id=str(self.vendor_id) if self.vendor_id else None,
            max_discount=self.max_discount,
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="CheckoutSession")
class VendorSubmission:
    vendor_id = Identifier(required=True)
    dedupe_key = String(required=True, max_length=255)
    request = Text(required=True)  # JSON: frozen order-creation request
    status = String(choices=SubmissionStatus, default=SubmissionStatus.PENDING.value)
    order_id = Identifier()
    order_number = String(max_length=50)
    failure_reason = String(max_length=500)

    @property
    def needs_order(self) -> bool:
        return not self.order_id

    @property
    def needs_payment(self) -> bool:
        return bool(self.order_id) and self.status in (
            SubmissionStatus.ORDER_PLACED.value,
            SubmissionStatus.PAYMENT_DECLINED.value,
        )

    @property
    def is_settled(self) -> bool:
        return self.status == SubmissionStatus.AUTHORIZED.value

    def order_request(self) -> dict:
        return json.loads(self.request)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class CheckoutSession:
    token = String(required=True, max_length=64, unique=True)
    customer_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    step = String(choices=CheckoutStep, default=CheckoutStep.ADDRESS.value)
    selected_address_id = Identifier()
    payment_method = String(choices=PaymentMethodKind)
    contact_phone = String(max_length=30)
    contact_email = String(max_length=254)
    comment = Text()
    coupon = ValueObject(AppliedCoupon)
    coupon_notice = String(max_length=255)
    status = String(choices=SessionStatus, default=SessionStatus.ACTIVE.value)
    cursor = String(choices=SubmissionCursor, default=SubmissionCursor.DRAFTING.value)
    submissions = HasMany(VendorSubmission)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def start(cls, customer_id, cart_id, token=None):
        now = datetime.now(UTC)
        session = cls(
            token=token or uuid4().hex,
            customer_id=customer_id,
            cart_id=cart_id,
            step=CheckoutStep.ADDRESS.value,
            status=SessionStatus.ACTIVE.value,
            cursor=SubmissionCursor.DRAFTING.value,
            created_at=now,
            updated_at=now,
        )
        session.raise_(
            CheckoutStarted(
                session_id=str(session.id),
                token=session.token,
                customer_id=str(customer_id),
                cart_id=str(cart_id),
                started_at=now,
            )
        )
        return session

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------
    @property
    def has_declined_payment(self) -> bool:
        return any(s.status == SubmissionStatus.PAYMENT_DECLINED.value for s in self.submissions)

    def _ensure_editable(self, during_retry=False):
        """Details are frozen once submission starts.

        With ``during_retry``, navigation and the payment and contact details
        stay open while a group's payment is declined, so the customer can
        pick another method before resubmitting. Orders already placed keep
        their frozen requests.
        """
        if self.status != SessionStatus.ACTIVE.value:
            raise ValidationError({"checkout": ["Checkout is already completed"]})
        if self.cursor == SubmissionCursor.DRAFTING.value:
            return
        if during_retry and self.has_declined_payment:
            return
        raise ValidationError({"checkout": ["Checkout details cannot change after submission started"]})

    def _touch(self):
        self.updated_at = datetime.now(UTC)

    def _move_to(self, target: CheckoutStep):
        previous = self.step
        self.step = target.value
        self._touch()
        self.raise_(
            CheckoutStepChanged(
                session_id=str(self.id),
                previous_step=previous,
                step=target.value,
            )
        )

    # -------------------------------------------------------------------
    # Wizard data
    # -------------------------------------------------------------------
    def select_address(self, address_id):
        self._ensure_editable()
        self.selected_address_id = address_id
        self._touch()

    def select_payment_method(self, method):
        self._ensure_editable(during_retry=True)
        try:
            PaymentMethodKind(method)
        except ValueError:
            raise ValidationError(
                {"payment_method": [f"Unknown payment method {method}"]},
            ) from None
        self.payment_method = method
        self._touch()

    def update_contact(self, phone=None, email=None, comment=None):
        self._ensure_editable(during_retry=True)
        if phone is not None:
            self.contact_phone = phone.strip()
        if email is not None:
            self.contact_email = email.strip() or None
        if comment is not None:
            self.comment = comment
        self._touch()

    # -------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------
    def advance(self):
        """Move to the next step once the current one is complete."""
        self._ensure_editable(during_retry=True)
        current = CheckoutStep(self.step)

        if current is CheckoutStep.ADDRESS:
            if not self.selected_address_id:
                raise ValidationError({"selected_address_id": ["Select a delivery address to continue"]})
            self._move_to(CheckoutStep.PAYMENT)
        elif current is CheckoutStep.PAYMENT:
            errors = {}
            if not self.payment_method:
                errors["payment_method"] = ["Select a payment method to continue"]
            if not (self.contact_phone or "").strip():
                errors["contact_phone"] = ["A contact phone number is required"]
            if errors:
                raise ValidationError(errors)
            self._move_to(CheckoutStep.CONFIRM)
        else:
            raise ValidationError({"step": ["Confirm is the last step; submit the checkout instead"]})
        return self.step

    def go_back(self, step=None):
        """Step back one step, or to ``step`` if it comes earlier. Entered data is kept."""
        self._ensure_editable(during_retry=True)

        current_index = _STEP_ORDER.index(CheckoutStep(self.step))
        if step is None:
            target_index = max(current_index - 1, 0)
        else:
            try:
                target_index = _STEP_ORDER.index(CheckoutStep(step))
            except ValueError:
                raise ValidationError({"step": [f"Unknown checkout step {step}"]}) from None
            if target_index > current_index:
                raise ValidationError({"step": [f"Cannot go back to {step} from {self.step}"]})

        if target_index != current_index:
            self._move_to(_STEP_ORDER[target_index])
        return self.step

    # -------------------------------------------------------------------
    # Coupon
    # -------------------------------------------------------------------
    def apply_coupon(self, descriptor: DiscountDescriptor):
        self._ensure_editable()
        self.coupon = AppliedCoupon.from_descriptor(descriptor)
        self.coupon_notice = None
        self._touch()
        self.raise_(
            CheckoutCouponApplied(
                session_id=str(self.id),
                code=descriptor.code,
                kind=descriptor.kind.value,
            )
        )

    def remove_coupon(self):
        self._ensure_editable()
        if self.coupon is None:
            raise ValidationError({"coupon": ["No coupon is applied"]})
        code = self.coupon.code
        self.coupon = None
        self._touch()
        self.raise_(CheckoutCouponRemoved(session_id=str(self.id), code=code))

    def detach_coupon(self, reason):
        """Drop a coupon that no longer validates and leave a notice for the shopper."""
        if self.coupon is None:
            return
        code = self.coupon.code
        self.coupon = None
        self.coupon_notice = f"coupon removed: {reason}"
        self._touch()
        self.raise_(
            CheckoutCouponDetached(
                session_id=str(self.id),
                code=code,
                reason=reason,
                notice=self.coupon_notice,
            )
        )

    def coupon_descriptor(self):
        return self.coupon.descriptor() if self.coupon else None

    # -------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------
    def find_submission(self, vendor_id):
        return next((s for s in self.submissions if str(s.vendor_id) == str(vendor_id)), None)

    def _require_submission(self, vendor_id):
        submission = self.find_submission(vendor_id)
        if submission is None:
            raise ValidationError({"vendor_id": [f"Vendor {vendor_id} is not part of this checkout"]})
        return submission

    def begin_submission(self, requests):
        """Freeze one order-creation request per vendor group.

        Groups that already have a submission keep their frozen request, so a
        retry never re-prices what was already sent.
        """
        if self.status != SessionStatus.ACTIVE.value:
            raise ValidationError({"checkout": ["Checkout is already completed"]})
        if CheckoutStep(self.step) is not CheckoutStep.CONFIRM:
            raise ValidationError({"step": ["Checkout can only be submitted from the Confirm step"]})

        for request in requests:
            vendor_id = str(request["vendor_id"])
            if self.find_submission(vendor_id) is None:
                self.add_submissions(
                    VendorSubmission(
                        vendor_id=vendor_id,
                        dedupe_key=dedupe_key(self.token, vendor_id),
                        request=json.dumps(request),
                        status=SubmissionStatus.PENDING.value,
                    )
                )

        self.cursor = SubmissionCursor.SUBMITTING.value
        self._touch()
        self.raise_(
            CheckoutSubmitted(
                session_id=str(self.id),
                token=self.token,
                vendor_ids=json.dumps([str(s.vendor_id) for s in self.submissions]),
                submitted_at=self.updated_at,
            )
        )

    def record_order_placed(self, vendor_id, order_id, order_number):
        submission = self._require_submission(vendor_id)
        if submission.order_id:
            return
        submission.order_id = order_id
        submission.order_number = order_number
        submission.status = SubmissionStatus.ORDER_PLACED.value
        submission.failure_reason = None
        self._touch()
        self.raise_(
            VendorOrderPlaced(
                session_id=str(self.id),
                vendor_id=str(vendor_id),
                order_id=str(order_id),
                order_number=order_number,
            )
        )

    def record_payment_outcome(self, vendor_id, outcome, failure_reason=None):
        """Record ``authorized``, ``pending`` or ``declined`` for a vendor group."""
        submission = self._require_submission(vendor_id)
        if submission.is_settled:
            return
        status = _OUTCOME_STATUS[PaymentOutcome(outcome)]
        submission.status = status.value
        submission.failure_reason = failure_reason
        self._refresh_cursor()
        self.raise_(
            VendorPaymentRecorded(
                session_id=str(self.id),
                vendor_id=str(vendor_id),
                status=status.value,
                failure_reason=failure_reason,
            )
        )

    def record_group_failure(self, vendor_id, reason):
        submission = self._require_submission(vendor_id)
        submission.status = SubmissionStatus.FAILED.value
        submission.failure_reason = reason
        self._touch()
        self.raise_(VendorGroupFailed(session_id=str(self.id), vendor_id=str(vendor_id), reason=reason))

    def _refresh_cursor(self):
        if self.cursor == SubmissionCursor.COMPLETED.value:
            return
        statuses = {s.status for s in self.submissions}
        if SubmissionStatus.AWAITING_PAYMENT.value in statuses:
            self.cursor = SubmissionCursor.AWAITING_PAYMENT.value
        else:
            self.cursor = SubmissionCursor.SUBMITTING.value
        self._touch()

    @property
    def all_settled(self) -> bool:
        return bool(self.submissions) and all(s.is_settled for s in self.submissions)

    def complete(self):
        if self.status == SessionStatus.COMPLETED.value:
            return
        if not self.all_settled:
            raise ValidationError({"checkout": ["Every vendor order must be authorized before completing"]})
        self.status = SessionStatus.COMPLETED.value
        self.cursor = SubmissionCursor.COMPLETED.value
        self._touch()
        self.raise_(
            CheckoutCompleted(
                session_id=str(self.id),
                token=self.token,
                order_count=len(self.submissions),
                completed_at=self.updated_at,
            )
        )
