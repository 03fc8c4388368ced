"""Application tests for PaymentCoordinator against the fake gateway."""

import pytest
from marketplace.errors import PaymentError
from marketplace.order.order import Compensation, CompensationStatus, OrderStatus
from marketplace.payment.attempts import payment_for_order
from marketplace.payment.coordinator import PROVIDER_TIMEOUT, PaymentCoordinator
from marketplace.payment.payment import AttemptKind, AttemptStatus, PaymentStatus
from protean.exceptions import ValidationError


@pytest.fixture()
def coordinator():
    return PaymentCoordinator()


class TestAuthorize:
    def test_approved_charge_confirms_the_order(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        outcome = coordinator.authorize(order_id, "card")

        assert outcome.authorized is True
        order = shop.order(order_id)
        assert order.current_status == OrderStatus.CONFIRMED.value
        assert order.payment_status == AttemptStatus.AUTHORIZED.value
        call = gateway.calls[-1]
        assert call["amount"] == 300.0
        assert call["idempotency_key"] == f"{order_id}:charge:1"

    def test_amount_must_match_the_order_total(self, shop, coordinator):
        order_id = shop.pending_order()
        with pytest.raises(ValidationError) as exc:
            coordinator.authorize(order_id, "card", amount=299.99)
        assert "amount" in exc.value.messages

    def test_repeated_call_returns_the_existing_authorization(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        first = coordinator.authorize(order_id, "card")
        second = coordinator.authorize(order_id, "card")

        assert second.attempt_id == first.attempt_id
        assert len(gateway.calls) == 1

    def test_decline_keeps_the_order_pending(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("decline", "Insufficient funds")

        outcome = coordinator.authorize(order_id, "card")

        assert outcome.outcome == "declined"
        assert outcome.reason == "Insufficient funds"
        assert outcome.can_retry is True
        order = shop.order(order_id)
        assert order.current_status == OrderStatus.PENDING.value
        assert order.payment_status == AttemptStatus.DECLINED.value

    def test_third_decline_fails_the_order(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("decline", "Insufficient funds")

        for _ in range(3):
            outcome = coordinator.authorize(order_id, "card")

        assert outcome.can_retry is False
        order = shop.order(order_id)
        assert order.current_status == OrderStatus.FAILED.value
        assert order.status_history[-1].note == "Payment declined: Insufficient funds"
        assert [call["idempotency_key"][-1] for call in gateway.calls] == ["1", "2", "3"]

    def test_failed_order_cannot_be_charged(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("decline")
        for _ in range(3):
            coordinator.authorize(order_id, "card")

        with pytest.raises(ValidationError):
            coordinator.authorize(order_id, "card")

    def test_timeout_counts_as_a_decline(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("timeout")

        outcome = coordinator.authorize(order_id, "card", timeout=2.0)

        assert outcome.outcome == "declined"
        assert outcome.reason == PROVIDER_TIMEOUT
        assert gateway.calls[-1]["timeout"] == 2.0
        assert shop.order(order_id).current_status == OrderStatus.PENDING.value

    def test_cash_on_delivery_skips_the_gateway(self, shop, gateway, coordinator):
        order_id = shop.pending_order(payment_method="cash_on_delivery")
        outcome = coordinator.authorize(order_id, "cash_on_delivery")

        assert outcome.authorized is True
        assert gateway.calls == []
        charge = payment_for_order(order_id).active_charge
        assert charge.provider_reference == f"cod_{outcome.attempt_id}"


class TestWebhook:
    def test_pending_charge_settles_through_webhook(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("pending")
        outcome = coordinator.authorize(order_id, "card")
        assert outcome.outcome == "pending"

        reference = payment_for_order(order_id).active_charge.provider_reference
        assert reference.startswith("fake_auth_")

        settled = coordinator.handle_webhook(order_id, reference, "authorized")
        assert settled.authorized is True
        assert shop.order(order_id).current_status == OrderStatus.CONFIRMED.value

    def test_failed_webhook_declines_the_attempt(self, shop, gateway, coordinator):
        order_id = shop.pending_order()
        gateway.configure("pending")
        coordinator.authorize(order_id, "card")
        reference = payment_for_order(order_id).active_charge.provider_reference

        outcome = coordinator.handle_webhook(order_id, reference, "failed", "3DS failed")

        assert outcome.outcome == "declined"
        assert outcome.reason == "3DS failed"
        assert shop.order(order_id).current_status == OrderStatus.PENDING.value

    def test_unknown_reference(self, shop, coordinator):
        order_id = shop.pending_order()
        with pytest.raises(ValidationError) as exc:
            coordinator.handle_webhook(order_id, "fake_auth_unknown", "authorized")
        assert "provider_reference" in exc.value.messages


class TestCaptureAndCompensation:
    def test_capture(self, shop, gateway, coordinator):
        order_id = shop.confirmed_order()
        coordinator.capture(order_id)

        assert payment_for_order(order_id).status == PaymentStatus.CAPTURED.value
        assert shop.order(order_id).payment_status == AttemptStatus.CAPTURED.value
        assert gateway.calls[-1]["method"] == "capture"

    def test_declined_capture(self, shop, gateway, coordinator):
        order_id = shop.confirmed_order()
        gateway.configure("decline", "Authorization expired")

        with pytest.raises(PaymentError):
            coordinator.capture(order_id)
        assert payment_for_order(order_id).status == PaymentStatus.AUTHORIZED.value

    def test_capture_needs_an_authorized_charge(self, shop, coordinator):
        order_id = shop.pending_order()
        with pytest.raises(ValidationError):
            coordinator.capture(order_id)

    def test_compensation_follows_the_charge(self, shop, coordinator):
        order_id = shop.confirmed_order()
        assert coordinator.compensation_for(order_id) is Compensation.VOID

        coordinator.capture(order_id)
        assert coordinator.compensation_for(order_id) is Compensation.REFUND

    def test_void(self, shop, gateway, coordinator):
        order_id = shop.confirmed_order()
        result = coordinator.compensate(order_id, "Changed my mind")

        assert result.compensation is Compensation.VOID
        assert result.status is CompensationStatus.COMPLETED
        assert gateway.calls[-1]["method"] == "void"
        assert payment_for_order(order_id).status == PaymentStatus.VOIDED.value

    def test_partial_refund(self, shop, gateway, coordinator):
        order_id = shop.confirmed_order()
        coordinator.capture(order_id)

        result = coordinator.compensate(order_id, "One mug broken", kind=AttemptKind.REFUND, amount=100.0)

        assert result.status is CompensationStatus.COMPLETED
        assert gateway.calls[-1]["amount"] == 100.0
        assert payment_for_order(order_id).refunded_total == 100.0

    def test_failed_refund_is_reported(self, shop, gateway, coordinator):
        order_id = shop.confirmed_order()
        coordinator.capture(order_id)
        gateway.configure("decline", "Refund window closed")

        result = coordinator.compensate(order_id, "Changed my mind")

        assert result.status is CompensationStatus.FAILED
        assert result.reason == "Refund window closed"

    def test_nothing_to_compensate(self, shop, coordinator):
        order_id = shop.pending_order()
        assert coordinator.compensate(order_id, "Changed my mind").compensation is Compensation.NONE
