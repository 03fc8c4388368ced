"""PaymentCoordinator — talks to the payment gateway and records every outcome.

Each step is its own command, so a crash between the gateway call and the
bookkeeping leaves a Pending attempt that a webhook or a retry can settle.

Outcomes of ``authorize``:

* ``authorized``: the attempt is Authorized and the order is Confirmed.
* ``pending``: the provider will answer through a webhook; attempt and order
  stay Pending.
* ``declined``: the attempt is Declined (a provider timeout counts as a
  decline with reason ``Provider timeout``). Order status is untouched unless
  the last allowed attempt was used up, which fails the order.

Cash on delivery never reaches the gateway: it is authorized on the spot and
captured when the order ships.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.config import settings
from marketplace.errors import PaymentError, TransportError
from marketplace.gateway import get_gateway
from marketplace.gateway.port import GatewayStatus
from marketplace.order.lifecycle import ConfirmOrder, FailOrder, RecordOrderPaymentStatus
from marketplace.order.order import Compensation, CompensationStatus, Order, OrderStatus
from marketplace.payment.attempts import (
    CompleteCompensation,
    RecordAuthorization,
    RecordCapture,
    RecordDecline,
    RecordProviderReference,
    StartChargeAttempt,
    StartCompensation,
    payment_for_order,
)
from marketplace.payment.payment import AttemptKind, AttemptStatus
from marketplace.pricing.money import to_cents

logger = structlog.get_logger(__name__)

CASH_ON_DELIVERY = "cash_on_delivery"
PROVIDER_TIMEOUT = "Provider timeout"

_SUCCEEDED_WEBHOOK_STATUSES = {"authorized", "succeeded"}
_FAILED_WEBHOOK_STATUSES = {"declined", "failed"}


@dataclass(frozen=True)
class AuthorizationOutcome:
    order_id: str
    outcome: str  # authorized, pending, declined
    attempt_id: str | None = None
    reason: str | None = None
    can_retry: bool = False

    @property
    def authorized(self) -> bool:
        return self.outcome == "authorized"


@dataclass(frozen=True)
class CompensationResult:
    compensation: Compensation
    status: CompensationStatus | None = None
    reason: str | None = None


class PaymentCoordinator:
    def __init__(self, gateway=None, timeout: float | None = None):
        self._gateway = gateway
        self._timeout = timeout

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    def _timeout_for(self, timeout):
        if timeout is not None:
            return timeout
        return self._timeout if self._timeout is not None else settings().remote_timeout

    @staticmethod
    def _process(command):
        return current_domain.process(command, asynchronous=False)

    # -------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------
    def authorize(self, order_id, method, amount=None, timeout=None) -> AuthorizationOutcome:
        order_id = str(order_id)
        order = current_domain.repository_for(Order).get(order_id)
        if amount is not None and to_cents(amount) != to_cents(order.pricing.total):
            raise ValidationError({"amount": [f"Amount must equal the order total {order.pricing.total}"]})

        existing = self._settled_outcome(order_id)
        if existing is not None:
            return existing
        if OrderStatus(order.current_status) is not OrderStatus.PENDING:
            raise ValidationError({"order": [f"Order is {order.current_status} and cannot be charged"]})

        payment = payment_for_order(order_id)
        attempt_number = (payment.charge_count if payment else 0) + 1
        idempotency_key = f"{order_id}:charge:{attempt_number}"

        attempt_id = self._process(
            StartChargeAttempt(order_id=order_id, method=method, idempotency_key=idempotency_key)
        )
        self._process(RecordOrderPaymentStatus(order_id=order_id, payment_status=AttemptStatus.PENDING.value))

        if method == CASH_ON_DELIVERY:
            return self._authorized(order_id, attempt_id, f"cod_{attempt_id}")

        try:
            result = self.gateway.authorize(
                amount=order.pricing.total,
                currency=order.pricing.currency,
                method=method,
                idempotency_key=idempotency_key,
                timeout=self._timeout_for(timeout),
            )
        except TransportError as exc:
            reason = PROVIDER_TIMEOUT if exc.code == "ProviderTimeout" else exc.message
            logger.warning("Payment provider call failed", order_id=order_id, attempt_id=attempt_id, error=exc.code)
            return self._declined(order_id, attempt_id, reason)

        if result.status is GatewayStatus.AUTHORIZED:
            return self._authorized(order_id, attempt_id, result.provider_reference)
        if result.status is GatewayStatus.PENDING:
            self._process(
                RecordProviderReference(
                    order_id=order_id,
                    attempt_id=attempt_id,
                    provider_reference=result.provider_reference,
                )
            )
            logger.info("Payment awaiting provider confirmation", order_id=order_id, attempt_id=attempt_id)
            return AuthorizationOutcome(order_id=order_id, outcome="pending", attempt_id=attempt_id)
        return self._declined(order_id, attempt_id, result.failure_reason or "Declined")

    def _settled_outcome(self, order_id):
        """Outcome of a charge that already went through, for retried calls."""
        payment = payment_for_order(order_id)
        charge = payment.active_charge if payment else None
        if charge is None:
            return None
        if charge.status in (AttemptStatus.AUTHORIZED.value, AttemptStatus.CAPTURED.value):
            return AuthorizationOutcome(order_id=order_id, outcome="authorized", attempt_id=str(charge.id))
        if charge.status == AttemptStatus.PENDING.value:
            return AuthorizationOutcome(order_id=order_id, outcome="pending", attempt_id=str(charge.id))
        return None

    def _authorized(self, order_id, attempt_id, provider_reference):
        self._process(
            RecordAuthorization(order_id=order_id, attempt_id=attempt_id, provider_reference=provider_reference)
        )
        order = current_domain.repository_for(Order).get(order_id)
        if OrderStatus(order.current_status) is OrderStatus.PENDING:
            self._process(ConfirmOrder(order_id=order_id))
        logger.info("Payment authorized", order_id=order_id, attempt_id=attempt_id)
        return AuthorizationOutcome(order_id=order_id, outcome="authorized", attempt_id=attempt_id)

    def _declined(self, order_id, attempt_id, reason):
        can_retry = self._process(RecordDecline(order_id=order_id, attempt_id=attempt_id, reason=reason))
        self._process(
            RecordOrderPaymentStatus(order_id=order_id, payment_status=AttemptStatus.DECLINED.value, note=reason)
        )
        if not can_retry:
            order = current_domain.repository_for(Order).get(order_id)
            if OrderStatus(order.current_status) is OrderStatus.PENDING:
                self._process(FailOrder(order_id=order_id, reason=f"Payment declined: {reason}"))
        logger.info("Payment declined", order_id=order_id, attempt_id=attempt_id, reason=reason, can_retry=can_retry)
        return AuthorizationOutcome(
            order_id=order_id,
            outcome="declined",
            attempt_id=attempt_id,
            reason=reason,
            can_retry=bool(can_retry),
        )

    # -------------------------------------------------------------------
    # Webhook
    # -------------------------------------------------------------------
    def handle_webhook(self, order_id, provider_reference, status, failure_reason=None) -> AuthorizationOutcome:
        """Settle a Pending charge with the provider's asynchronous answer."""
        order_id = str(order_id)
        payment = payment_for_order(order_id)
        attempt = payment.find_by_reference(provider_reference) if payment else None
        if attempt is None:
            raise ValidationError({"provider_reference": ["No payment attempt matches this reference"]})

        if not attempt.is_pending:
            logger.info("Webhook for an already settled attempt ignored", order_id=order_id, status=attempt.status)
            outcome = "authorized" if attempt.status != AttemptStatus.DECLINED.value else "declined"
            return AuthorizationOutcome(order_id=order_id, outcome=outcome, attempt_id=str(attempt.id))

        status = (status or "").lower()
        if status in _SUCCEEDED_WEBHOOK_STATUSES:
            return self._authorized(order_id, str(attempt.id), provider_reference)
        if status in _FAILED_WEBHOOK_STATUSES:
            return self._declined(order_id, str(attempt.id), failure_reason or "Declined")
        raise ValidationError({"status": [f"Unknown webhook status {status}"]})

    # -------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------
    def capture(self, order_id, timeout=None):
        order_id = str(order_id)
        payment = payment_for_order(order_id)
        charge = payment.active_charge if payment else None
        if charge is None or charge.status != AttemptStatus.AUTHORIZED.value:
            raise ValidationError({"payment": ["There is no authorized payment to capture"]})

        if charge.method != CASH_ON_DELIVERY:
            result = self.gateway.capture(charge.provider_reference, charge.amount, timeout=self._timeout_for(timeout))
            if not result.success:
                raise PaymentError(result.failure_reason or "Capture failed", order_id=order_id)

        self._process(RecordCapture(order_id=order_id))
        self._process(RecordOrderPaymentStatus(order_id=order_id, payment_status=AttemptStatus.CAPTURED.value))
        logger.info("Payment captured", order_id=order_id, amount=charge.amount)

    # -------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------
    def compensation_for(self, order_id) -> Compensation:
        payment = payment_for_order(order_id)
        kind = payment.compensation_kind() if payment else None
        if kind is None:
            return Compensation.NONE
        return Compensation(kind.value)

    def compensate(
        self, order_id, reason, kind: AttemptKind | None = None, amount=None, timeout=None
    ) -> CompensationResult:
        """Void a charge that was not captured yet, refund one that was."""
        order_id = str(order_id)
        attempt_id = self._process(
            StartCompensation(order_id=order_id, reason=reason, kind=kind.value if kind else None, amount=amount)
        )
        if attempt_id is None:
            return CompensationResult(compensation=Compensation.NONE)

        payment = payment_for_order(order_id)
        attempt = payment.find_attempt(attempt_id)
        compensation = Compensation(attempt.kind)
        charge = payment.active_charge

        if charge.method == CASH_ON_DELIVERY or not attempt.provider_reference:
            return self._compensated(order_id, attempt_id, compensation, None)

        try:
            if compensation is Compensation.VOID:
                result = self.gateway.void(attempt.provider_reference, timeout=self._timeout_for(timeout))
            else:
                result = self.gateway.refund(
                    attempt.provider_reference,
                    attempt.amount,
                    reason,
                    timeout=self._timeout_for(timeout),
                )
        except TransportError as exc:
            return self._compensation_failed(order_id, attempt_id, compensation, exc.message)

        if not result.success:
            return self._compensation_failed(order_id, attempt_id, compensation, result.failure_reason or "Declined")
        return self._compensated(order_id, attempt_id, compensation, result.provider_reference)

    def _compensated(self, order_id, attempt_id, compensation, provider_reference):
        self._process(
            CompleteCompensation(order_id=order_id, attempt_id=attempt_id, provider_reference=provider_reference)
        )
        payment_status = (
            AttemptStatus.VOIDED.value if compensation is Compensation.VOID else AttemptStatus.REFUNDED.value
        )
        self._process(RecordOrderPaymentStatus(order_id=order_id, payment_status=payment_status))
        logger.info("Payment compensated", order_id=order_id, compensation=compensation.value)
        return CompensationResult(compensation=compensation, status=CompensationStatus.COMPLETED)

    def _compensation_failed(self, order_id, attempt_id, compensation, reason):
        self._process(RecordDecline(order_id=order_id, attempt_id=attempt_id, reason=reason))
        logger.warning("Payment compensation failed", order_id=order_id, compensation=compensation.value, reason=reason)
        return CompensationResult(compensation=compensation, status=CompensationStatus.FAILED, reason=reason)
