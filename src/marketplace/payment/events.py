"""Domain events for the Payment aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentAttemptStarted:
    """A charge, void or refund was submitted to the payment provider."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    kind = String(required=True)
    method = String(required=True)
    amount = Float(required=True)
    attempt_number = Integer()
    started_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentAuthorized:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    provider_reference = String(required=True)
    amount = Float(required=True)
    authorized_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentAttemptDeclined:
    """An attempt ended without success. A retry needs a new attempt."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    kind = String(required=True)
    reason = String(required=True)
    can_retry = Boolean(default=False)
    declined_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentCaptured:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    amount = Float(required=True)
    captured_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentCompensated:
    """A void or refund went through and the charge was released."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    attempt_id = Identifier(required=True)
    kind = String(required=True)
    amount = Float(required=True)
    compensated_at = DateTime(required=True)
