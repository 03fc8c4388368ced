"""Application tests for submitting a checkout as one order per vendor group."""

import pytest
from marketplace.cart.items import MarkItemAvailability
from marketplace.checkout.saga import CheckoutSaga
from marketplace.checkout.session import CheckoutStep, SessionStatus, SubmissionCursor, SubmissionStatus
from marketplace.checkout.wizard import AdvanceCheckout, GoBackCheckout, SelectPaymentMethod
from marketplace.coupon.management import DeactivateCoupon
from marketplace.errors import BelowVendorMinimum, CouponInvalidated, ItemUnavailable
from marketplace.order.order import Order, OrderStatus
from marketplace.order.placement import OrderPlacement
from marketplace.payment.attempts import payment_for_order
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.vendor.management import UpdateVendorTerms
from protean import current_domain
from protean.exceptions import ValidationError


def _orders():
    return current_domain.repository_for(OrderPlacement)._dao.query.all().items


class TestHappyPath:
    def test_one_order_per_vendor(self, shop):
        cart_id, session_id = shop.ready_checkout()
        report = CheckoutSaga().submit(session_id)

        assert report.completed is True
        assert report.cursor == SubmissionCursor.COMPLETED.value
        assert [group.vendor_id for group in report.groups] == ["vendor-a", "vendor-b"]
        assert all(group.succeeded for group in report.groups)

        totals = {}
        for group in report.groups:
            order = shop.order(group.order_id)
            assert order.current_status == OrderStatus.CONFIRMED.value
            assert order.order_number == group.order_number
            assert order.delivery_address.city == "Springfield"
            totals[group.vendor_id] = order.pricing.total
        assert totals == {"vendor-a": 260.61, "vendor-b": 169.39}

    def test_purchased_lines_leave_the_cart(self, shop):
        cart_id, session_id = shop.ready_checkout()
        CheckoutSaga().submit(session_id)

        assert shop.shopping_cart(cart_id).lines == []
        assert shop.session(session_id).status == SessionStatus.COMPLETED.value

    def test_coupon_is_split_across_orders(self, shop):
        shop.coupon("SAVE10")
        _, session_id = shop.ready_checkout(coupon="SAVE10")
        report = CheckoutSaga().submit(session_id)

        orders = {group.vendor_id: shop.order(group.order_id) for group in report.groups}
        assert orders["vendor-a"].pricing.coupon_discount == 20.0
        assert orders["vendor-b"].pricing.coupon_discount == 13.0
        assert orders["vendor-a"].pricing.total + orders["vendor-b"].pricing.total == pytest.approx(397.0)
        assert orders["vendor-a"].coupon_code == "SAVE10"

    def test_resubmitting_a_completed_checkout_changes_nothing(self, shop):
        _, session_id = shop.ready_checkout()
        first = CheckoutSaga().submit(session_id)
        second = CheckoutSaga().submit(session_id)

        assert second.groups == first.groups
        assert len(_orders()) == 2

    def test_cash_on_delivery_is_authorized_locally(self, shop, gateway):
        _, session_id = shop.ready_checkout(payment_method="cash_on_delivery")
        report = CheckoutSaga().submit(session_id)

        assert report.completed is True
        assert gateway.calls == []


class TestRevalidation:
    def test_vendor_minimum_blocks_submission(self, shop):
        cart_id, session_id = shop.ready_checkout()
        shop.process(UpdateVendorTerms(vendor_id="vendor-b", min_order_amount=150.0))

        with pytest.raises(BelowVendorMinimum) as exc:
            CheckoutSaga().submit(session_id)

        assert exc.value.details["vendor_id"] == "vendor-b"
        assert shop.session(session_id).cursor == SubmissionCursor.DRAFTING.value
        assert _orders() == []

    def test_unavailable_item_blocks_submission(self, shop):
        cart_id, session_id = shop.ready_checkout()
        lamp = next(line for line in shop.shopping_cart(cart_id).lines if str(line.vendor_id) == "vendor-b")
        shop.process(MarkItemAvailability(cart_id=cart_id, line_id=str(lamp.id), available=False))

        with pytest.raises(ItemUnavailable) as exc:
            CheckoutSaga().submit(session_id)
        assert exc.value.details["line_ids"] == [str(lamp.id)]

    def test_deactivated_coupon_is_detached_and_reported(self, shop):
        shop.coupon("SAVE10")
        _, session_id = shop.ready_checkout(coupon="SAVE10")

        shop.process(DeactivateCoupon(code="SAVE10"))

        with pytest.raises(CouponInvalidated) as exc:
            CheckoutSaga().submit(session_id)

        assert exc.value.message == "coupon removed: NotFound"
        assert exc.value.details["coupon_code"] == "SAVE10"
        assert shop.session(session_id).coupon is None
        assert _orders() == []


class TestPartialFailure:
    def test_declined_group_is_reported_and_retried_alone(self, shop, gateway):
        cart_id, session_id = shop.ready_checkout()
        gateway.configure("decline", "Insufficient funds")

        report = CheckoutSaga().submit(session_id)

        assert report.completed is False
        assert {group.status for group in report.groups} == {SubmissionStatus.PAYMENT_DECLINED.value}
        assert all(group.reason == "Insufficient funds" for group in report.groups)
        # Declined orders stay Pending so the shopper can retry
        for group in report.groups:
            assert shop.order(group.order_id).current_status == OrderStatus.PENDING.value
        assert len(shop.shopping_cart(cart_id).lines) == 2

        gateway.configure("approve")
        retried = CheckoutSaga().submit(session_id)

        assert retried.completed is True
        assert [group.order_id for group in retried.groups] == [group.order_id for group in report.groups]
        assert len(_orders()) == 2

    def test_declined_checkout_can_switch_payment_method(self, shop, gateway):
        cart_id, session_id = shop.ready_checkout()
        gateway.configure("decline", "Card declined")
        declined = CheckoutSaga().submit(session_id)
        assert {group.status for group in declined.groups} == {SubmissionStatus.PAYMENT_DECLINED.value}

        shop.process(GoBackCheckout(session_id=session_id))
        assert shop.session(session_id).step == CheckoutStep.PAYMENT.value
        shop.process(SelectPaymentMethod(session_id=session_id, payment_method="wallet"))
        shop.process(AdvanceCheckout(session_id=session_id))

        gateway.configure("approve")
        report = CheckoutSaga().submit(session_id)

        assert report.completed is True
        assert [group.order_id for group in report.groups] == [group.order_id for group in declined.groups]
        retries = [call for call in gateway.calls if call["method"] == "authorize"][2:]
        assert [call["payment_method"] for call in retries] == ["wallet", "wallet"]
        assert shop.shopping_cart(cart_id).lines == []

    def test_resubmitting_away_from_confirm_is_refused(self, shop, gateway):
        _, session_id = shop.ready_checkout()
        gateway.configure("decline")
        CheckoutSaga().submit(session_id)
        shop.process(GoBackCheckout(session_id=session_id, step="Address"))

        with pytest.raises(ValidationError):
            CheckoutSaga().submit(session_id)

    def test_only_the_failed_group_is_charged_again(self, shop, gateway):
        _, session_id = shop.ready_checkout()

        class DeclineVendorB(PaymentCoordinator):
            def authorize(self, order_id, method, amount=None, timeout=None):
                order = current_domain.repository_for(Order).get(order_id)
                gateway.configure("decline" if str(order.vendor_id) == "vendor-b" else "approve")
                return super().authorize(order_id, method, amount=amount, timeout=timeout)

        report = CheckoutSaga(coordinator=DeclineVendorB()).submit(session_id)
        statuses = {group.vendor_id: group.status for group in report.groups}
        assert statuses == {
            "vendor-a": SubmissionStatus.AUTHORIZED.value,
            "vendor-b": SubmissionStatus.PAYMENT_DECLINED.value,
        }

        gateway.configure("approve")
        gateway.calls.clear()
        retried = CheckoutSaga().submit(session_id)

        assert retried.completed is True
        assert len([call for call in gateway.calls if call["method"] == "authorize"]) == 1

    def test_pending_payment_completes_after_webhook(self, shop, gateway):
        cart_id, session_id = shop.ready_checkout()
        gateway.configure("pending")

        report = CheckoutSaga().submit(session_id)
        assert report.cursor == SubmissionCursor.AWAITING_PAYMENT.value
        assert report.completed is False

        coordinator = PaymentCoordinator()
        for group in report.groups:
            reference = payment_for_order(group.order_id).active_charge.provider_reference
            coordinator.handle_webhook(group.order_id, reference, "succeeded")

        session = shop.session(session_id)
        assert session.status == SessionStatus.COMPLETED.value
        assert shop.shopping_cart(cart_id).lines == []
