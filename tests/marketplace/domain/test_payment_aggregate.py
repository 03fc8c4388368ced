"""Tests for the Payment aggregate: charge attempts, capture and compensation."""

import pytest
from marketplace.errors import AlreadyInProgress, IllegalTransition
from marketplace.payment.events import PaymentAttemptDeclined, PaymentCompensated
from marketplace.payment.payment import AttemptKind, AttemptStatus, Payment, PaymentStatus
from protean.exceptions import ValidationError

MAX_ATTEMPTS = 3


def _payment():
    return Payment.open(order_id="ord-1", customer_id="cust-001", amount=240.61)


def _authorized():
    payment = _payment()
    attempt = payment.start_charge("card", "ord-1:charge:1", MAX_ATTEMPTS)
    payment.authorize(attempt.id, "fake_auth_1")
    payment._events.clear()
    return payment


def _captured():
    payment = _authorized()
    payment.capture()
    payment._events.clear()
    return payment


class TestCharge:
    def test_new_payment_is_unpaid(self):
        payment = _payment()
        assert payment.status == PaymentStatus.UNPAID.value
        assert payment.active_charge is None

    def test_start_charge_opens_pending_attempt(self):
        payment = _payment()
        attempt = payment.start_charge("card", "ord-1:charge:1", MAX_ATTEMPTS)

        assert attempt.status == AttemptStatus.PENDING.value
        assert attempt.amount == 240.61
        assert payment.charge_count == 1
        assert payment.status == PaymentStatus.PENDING.value

    def test_second_charge_while_pending(self):
        payment = _payment()
        payment.start_charge("card", "k1", MAX_ATTEMPTS)
        with pytest.raises(AlreadyInProgress):
            payment.start_charge("card", "k2", MAX_ATTEMPTS)

    def test_second_charge_after_authorization(self):
        with pytest.raises(ValidationError):
            _authorized().start_charge("card", "k2", MAX_ATTEMPTS)

    def test_authorize(self):
        payment = _authorized()
        assert payment.status == PaymentStatus.AUTHORIZED.value
        assert payment.active_charge.provider_reference == "fake_auth_1"

    def test_decline_keeps_history_and_allows_retry(self):
        payment = _payment()
        attempt = payment.start_charge("card", "k1", MAX_ATTEMPTS)
        payment.decline(attempt.id, "Card declined", max_attempts=MAX_ATTEMPTS)

        assert payment.status == PaymentStatus.DECLINED.value
        assert payment.find_attempt(attempt.id).failure_reason == "Card declined"
        assert payment.can_retry(MAX_ATTEMPTS) is True
        event = payment._events[-1]
        assert isinstance(event, PaymentAttemptDeclined)
        assert event.can_retry is True

    def test_attempts_are_capped(self):
        payment = _payment()
        for number in range(1, MAX_ATTEMPTS + 1):
            attempt = payment.start_charge("card", f"k{number}", MAX_ATTEMPTS)
            payment.decline(attempt.id, "Card declined", max_attempts=MAX_ATTEMPTS)

        assert payment.can_retry(MAX_ATTEMPTS) is False
        assert len(payment.charge_attempts) == MAX_ATTEMPTS
        with pytest.raises(ValidationError):
            payment.start_charge("card", "k4", MAX_ATTEMPTS)

    def test_declined_attempt_cannot_be_authorized(self):
        payment = _payment()
        attempt = payment.start_charge("card", "k1", MAX_ATTEMPTS)
        payment.decline(attempt.id, "Card declined")

        with pytest.raises(IllegalTransition):
            payment.authorize(attempt.id, "late")

    def test_find_by_reference(self):
        payment = _authorized()
        assert payment.find_by_reference("fake_auth_1").id == payment.active_charge.id
        assert payment.find_by_reference("other") is None


class TestCapture:
    def test_capture_authorized_charge(self):
        payment = _authorized()
        payment.capture()
        assert payment.status == PaymentStatus.CAPTURED.value

    def test_capture_without_charge(self):
        with pytest.raises(IllegalTransition):
            _payment().capture()

    def test_capture_twice(self):
        with pytest.raises(IllegalTransition):
            _captured().capture()


class TestCompensation:
    def test_kind_follows_charge_state(self):
        assert _payment().compensation_kind() is None
        assert _authorized().compensation_kind() is AttemptKind.VOID
        assert _captured().compensation_kind() is AttemptKind.REFUND

    def test_void_authorized_charge(self):
        payment = _authorized()
        attempt = payment.start_compensation("Customer cancelled")

        assert attempt.kind == AttemptKind.VOID.value
        assert attempt.amount == 240.61
        payment.complete_compensation(attempt.id)

        assert payment.status == PaymentStatus.VOIDED.value
        assert isinstance(payment._events[-1], PaymentCompensated)

    def test_full_refund_of_captured_charge(self):
        payment = _captured()
        attempt = payment.start_compensation("Customer cancelled")
        payment.complete_compensation(attempt.id, provider_reference="fake_ref_1")

        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.refunded_total == 240.61

    def test_partial_refund_keeps_charge_captured(self):
        payment = _captured()
        attempt = payment.start_compensation("One item broken", kind=AttemptKind.REFUND, amount=100.0)
        payment.complete_compensation(attempt.id)

        assert attempt.amount == 100.0
        assert payment.status == PaymentStatus.CAPTURED.value
        assert payment.refunded_total == 100.0

    def test_void_ignores_partial_amount(self):
        payment = _authorized()
        attempt = payment.start_compensation("Cancelled", kind=AttemptKind.VOID, amount=10.0)
        assert attempt.amount == 240.61

    def test_one_compensation_at_a_time(self):
        payment = _authorized()
        payment.start_compensation("Cancelled")
        with pytest.raises(AlreadyInProgress):
            payment.start_compensation("Cancelled again")

    def test_nothing_to_compensate(self):
        assert _payment().start_compensation("Cancelled") is None

    def test_void_before_provider_answered(self):
        payment = _payment()
        charge = payment.start_charge("card", "k1", MAX_ATTEMPTS)
        attempt = payment.start_compensation("Cancelled")
        payment.complete_compensation(attempt.id)

        assert payment.find_attempt(charge.id).status == AttemptStatus.DECLINED.value
        assert payment.status == PaymentStatus.VOIDED.value
