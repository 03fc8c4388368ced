"""Payment aggregate (CQRS) — the payment state of one order, kept apart from order status.

Every try against the provider is a ``PaymentAttempt``. A failed attempt is
never reused; retrying opens a new attempt, so the full history stays on the
payment.

Charge attempt:
    Pending → Authorized | Declined
    Authorized → Captured | Voided | Refunded
    Captured → Refunded

Void and refund attempts (compensation):
    Pending → Voided | Declined
    Pending → Refunded | Declined

``Declined``, ``Voided`` and ``Refunded`` are terminal for an attempt.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.errors import AlreadyInProgress, IllegalTransition
from marketplace.payment.events import (
    PaymentAttemptDeclined,
    PaymentAttemptStarted,
    PaymentAuthorized,
    PaymentCaptured,
    PaymentCompensated,
)
from marketplace.pricing.money import to_cents


class AttemptKind(Enum):
    CHARGE = "Charge"
    VOID = "Void"
    REFUND = "Refund"


class AttemptStatus(Enum):
    PENDING = "Pending"
    AUTHORIZED = "Authorized"
    DECLINED = "Declined"
    CAPTURED = "Captured"
    VOIDED = "Voided"
    REFUNDED = "Refunded"


class PaymentStatus(Enum):
    UNPAID = "Unpaid"
    PENDING = "Pending"
    AUTHORIZED = "Authorized"
    DECLINED = "Declined"
    CAPTURED = "Captured"
    VOIDED = "Voided"
    REFUNDED = "Refunded"


_VALID_TRANSITIONS = {
    AttemptKind.CHARGE: {
        AttemptStatus.PENDING: {AttemptStatus.AUTHORIZED, AttemptStatus.DECLINED},
        AttemptStatus.AUTHORIZED: {AttemptStatus.CAPTURED, AttemptStatus.VOIDED, AttemptStatus.REFUNDED},
        AttemptStatus.CAPTURED: {AttemptStatus.REFUNDED},
    },
    AttemptKind.VOID: {
        AttemptStatus.PENDING: {AttemptStatus.VOIDED, AttemptStatus.DECLINED},
    },
    AttemptKind.REFUND: {
        AttemptStatus.PENDING: {AttemptStatus.REFUNDED, AttemptStatus.DECLINED},
    },
}

_COMPENSATED_STATUS = {
    AttemptKind.VOID: AttemptStatus.VOIDED,
    AttemptKind.REFUND: AttemptStatus.REFUNDED,
}


@marketplace.entity(part_of="Payment")
class PaymentAttempt:
    kind = String(choices=AttemptKind, default=AttemptKind.CHARGE.value)
    method = String(required=True, max_length=30)
    amount = Float(required=True, min_value=0.0)
    status = String(choices=AttemptStatus, default=AttemptStatus.PENDING.value)
    provider_reference = String(max_length=255)
    failure_reason = String(max_length=500)
    idempotency_key = String(max_length=255)
    attempted_at = DateTime(required=True)
    settled_at = DateTime()

    @property
    def is_pending(self) -> bool:
        return self.status == AttemptStatus.PENDING.value


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True, unique=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    method = String(max_length=30)
    status = String(choices=PaymentStatus, default=PaymentStatus.UNPAID.value)
    attempts = HasMany(PaymentAttempt)
    charge_count = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, order_id, customer_id, amount, currency="USD"):
        now = datetime.now(UTC)
        return cls(
            order_id=order_id,
            customer_id=customer_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.UNPAID.value,
            charge_count=0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_attempt(self, attempt_id):
        return next((a for a in self.attempts if str(a.id) == str(attempt_id)), None)

    def _require_attempt(self, attempt_id):
        attempt = self.find_attempt(attempt_id)
        if attempt is None:
            raise ValidationError({"attempt_id": ["Payment attempt not found"]})
        return attempt

    def find_by_reference(self, provider_reference):
        return next(
            (a for a in self.attempts if a.provider_reference and a.provider_reference == provider_reference),
            None,
        )

    @property
    def charge_attempts(self):
        return [a for a in self.attempts if a.kind == AttemptKind.CHARGE.value]

    @property
    def active_charge(self):
        """The latest charge attempt that was not declined."""
        return next(
            (a for a in reversed(self.charge_attempts) if a.status != AttemptStatus.DECLINED.value),
            None,
        )

    @property
    def refunded_total(self) -> float:
        return sum(
            a.amount
            for a in self.attempts
            if a.kind == AttemptKind.REFUND.value and a.status == AttemptStatus.REFUNDED.value
        )

    @property
    def open_compensation(self):
        return next(
            (a for a in self.attempts if a.kind != AttemptKind.CHARGE.value and a.is_pending),
            None,
        )

    def can_retry(self, max_attempts) -> bool:
        return self.active_charge is None and self.charge_count < max_attempts

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def _transition(self, attempt, target: AttemptStatus):
        kind = AttemptKind(attempt.kind)
        current = AttemptStatus(attempt.status)
        if target not in _VALID_TRANSITIONS[kind].get(current, set()):
            raise IllegalTransition(
                f"{kind.value} attempt cannot move from {current.value} to {target.value}",
                attempt_id=str(attempt.id),
            )
        attempt.status = target.value
        if target is not AttemptStatus.PENDING:
            attempt.settled_at = datetime.now(UTC)

    def _sync_status(self):
        charge = self.active_charge
        if charge is not None:
            self.status = charge.status
        elif self.charge_attempts:
            self.status = PaymentStatus.DECLINED.value
        else:
            self.status = PaymentStatus.UNPAID.value
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Charge
    # -------------------------------------------------------------------
    def start_charge(self, method, idempotency_key, max_attempts):
        """Open a new charge attempt. Declined attempts stay in the history."""
        active = self.active_charge
        if active is not None:
            if active.is_pending:
                raise AlreadyInProgress("A payment attempt is already in progress", order_id=str(self.order_id))
            raise ValidationError({"payment": [f"Payment is already {active.status}"]})
        if self.charge_count >= max_attempts:
            raise ValidationError({"attempts": [f"Maximum payment attempts ({max_attempts}) exceeded"]})

        now = datetime.now(UTC)
        attempt = PaymentAttempt(
            kind=AttemptKind.CHARGE.value,
            method=method,
            amount=self.amount,
            status=AttemptStatus.PENDING.value,
            idempotency_key=idempotency_key,
            attempted_at=now,
        )
        self.add_attempts(attempt)
        self.method = method
        self.charge_count += 1
        self._sync_status()
        self.raise_(
            PaymentAttemptStarted(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(attempt.id),
                kind=AttemptKind.CHARGE.value,
                method=method,
                amount=self.amount,
                attempt_number=self.charge_count,
                started_at=now,
            )
        )
        return attempt

    def note_provider_reference(self, attempt_id, provider_reference):
        """Keep the provider's reference for an attempt still awaiting a webhook."""
        attempt = self._require_attempt(attempt_id)
        attempt.provider_reference = provider_reference
        self.updated_at = datetime.now(UTC)

    def authorize(self, attempt_id, provider_reference):
        attempt = self._require_attempt(attempt_id)
        self._transition(attempt, AttemptStatus.AUTHORIZED)
        attempt.provider_reference = provider_reference
        self._sync_status()
        self.raise_(
            PaymentAuthorized(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(attempt.id),
                provider_reference=provider_reference,
                amount=attempt.amount,
                authorized_at=attempt.settled_at,
            )
        )

    def decline(self, attempt_id, reason, max_attempts=None):
        attempt = self._require_attempt(attempt_id)
        self._transition(attempt, AttemptStatus.DECLINED)
        attempt.failure_reason = reason
        self._sync_status()
        self.raise_(
            PaymentAttemptDeclined(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(attempt.id),
                kind=attempt.kind,
                reason=reason,
                can_retry=(
                    attempt.kind == AttemptKind.CHARGE.value
                    and max_attempts is not None
                    and self.can_retry(max_attempts)
                ),
                declined_at=attempt.settled_at,
            )
        )

    def capture(self):
        charge = self.active_charge
        if charge is None:
            raise IllegalTransition("There is no authorized charge to capture", order_id=str(self.order_id))
        self._transition(charge, AttemptStatus.CAPTURED)
        self._sync_status()
        self.raise_(
            PaymentCaptured(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(charge.id),
                amount=charge.amount,
                captured_at=charge.settled_at,
            )
        )

    # -------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------
    def compensation_kind(self):
        """``Void`` before capture, ``Refund`` after, ``None`` when nothing was charged."""
        charge = self.active_charge
        if charge is None:
            return None
        status = AttemptStatus(charge.status)
        if status in (AttemptStatus.PENDING, AttemptStatus.AUTHORIZED):
            return AttemptKind.VOID
        if status is AttemptStatus.CAPTURED:
            return AttemptKind.REFUND
        return None

    def start_compensation(self, reason, kind: AttemptKind | None = None, amount=None):
        """Open a void or refund attempt against the active charge.

        ``amount`` limits a refund to part of the charge; voids always release
        the whole authorization.

        Returns the new attempt, or ``None`` when there is nothing to release.
        """
        if self.open_compensation is not None:
            raise AlreadyInProgress("A void or refund is already in progress", order_id=str(self.order_id))

        kind = kind or self.compensation_kind()
        if kind is None:
            return None

        charge = self.active_charge
        now = datetime.now(UTC)
        attempt = PaymentAttempt(
            kind=kind.value,
            method=charge.method,
            amount=charge.amount if amount is None or kind is AttemptKind.VOID else amount,
            status=AttemptStatus.PENDING.value,
            provider_reference=charge.provider_reference,
            failure_reason=reason,
            attempted_at=now,
        )
        self.add_attempts(attempt)
        self.updated_at = now
        self.raise_(
            PaymentAttemptStarted(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(attempt.id),
                kind=kind.value,
                method=charge.method,
                amount=attempt.amount,
                started_at=now,
            )
        )
        return attempt

    def complete_compensation(self, attempt_id, provider_reference=None):
        attempt = self._require_attempt(attempt_id)
        kind = AttemptKind(attempt.kind)
        target = _COMPENSATED_STATUS[kind]
        self._transition(attempt, target)
        if provider_reference:
            attempt.provider_reference = provider_reference

        charge = self.active_charge
        if AttemptStatus(charge.status) is AttemptStatus.PENDING:
            # A void that lands before the provider answered ends the charge itself.
            self._transition(charge, AttemptStatus.DECLINED)
            charge.failure_reason = "Voided before authorization"
            self.status = PaymentStatus.VOIDED.value
            self.updated_at = datetime.now(UTC)
        elif kind is AttemptKind.VOID or to_cents(self.refunded_total) >= to_cents(charge.amount):
            self._transition(charge, target)
            self._sync_status()
        else:
            self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentCompensated(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                attempt_id=str(attempt.id),
                kind=kind.value,
                amount=attempt.amount,
                compensated_at=attempt.settled_at,
            )
        )
