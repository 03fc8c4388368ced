"""BDD tests for fulfilment, cancellation and refunds of an order."""

from marketplace.checkout.saga import CheckoutSaga
from marketplace.errors import ConflictError
from marketplace.order.cancellation import cancel_order
from marketplace.order.refunds import ApproveRefund, complete_refund, request_refund
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/order_lifecycle.feature")


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a confirmed order for {quantity:d} "{product_id}" at {price:f} paid by "{method:w}"'),
    target_fixture="order_id",
)
def _(shop, quantity, product_id, price, method):
    shop.vendor("vendor-a")
    shop.address()
    cart_id = shop.cart((product_id, "vendor-a", price, quantity))
    report = CheckoutSaga().submit(shop.checkout(cart_id, payment_method=method))
    assert report.completed
    return report.groups[0].order_id


# ---------------------------------------------------------------------------
# Given / When steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the order moves to "{status}"'))
@when(parsers.cfparse('the order moves to "{status}"'))
def _(shop, order_id, status):
    shop.advance_order(order_id, status)


@given(parsers.cfparse('the customer cancels the order because "{reason}"'))
@when(parsers.cfparse('the customer cancels the order because "{reason}"'))
def _(order_id, error, reason):
    try:
        cancel_order(order_id, reason)
    except ConflictError as exc:
        error["exc"] = exc


@when(parsers.cfparse('the customer requests a refund because "{reason}"'), target_fixture="refund_id")
def _(order_id, error, reason):
    try:
        return request_refund(order_id, reason)
    except ConflictError as exc:
        error["exc"] = exc
        return None


@when("the refund is approved")
def _(shop, order_id, refund_id):
    shop.process(ApproveRefund(order_id=order_id, refund_id=refund_id))


@when("the refund is completed")
def _(order_id, refund_id):
    complete_refund(order_id, refund_id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(shop, order_id, status):
    assert shop.order(order_id).current_status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def _(shop, order_id, status):
    assert shop.order(order_id).payment_status == status


@then(parsers.cfparse('the compensation is "{compensation}" and "{compensation_status}"'))
def _(shop, order_id, compensation, compensation_status):
    order = shop.order(order_id)
    assert order.compensation == compensation
    assert order.compensation_status == compensation_status
