"""Checkout follows payments that settle after the submission returned.

When the provider answers through a webhook, the order is confirmed (or its
payment declined) long after ``CheckoutSaga.submit`` finished. This handler
moves the matching vendor submission out of AwaitingPayment and completes the
checkout once every group is authorized.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from marketplace.checkout.saga import finish_if_settled
from marketplace.checkout.session import CheckoutSession, PaymentOutcome, SubmissionStatus
from marketplace.checkout.submission import RecordVendorPayment
from marketplace.domain import marketplace
from marketplace.order.events import OrderConfirmed, OrderPaymentUpdated
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)


def _awaiting_submission(order_id):
    """The session and vendor submission waiting on ``order_id``, if any."""
    order = current_domain.repository_for(Order).get(order_id)
    if not order.checkout_token:
        return None, None

    sessions = current_domain.repository_for(CheckoutSession)._dao.query.filter(token=order.checkout_token).all().items
    if not sessions:
        return None, None
    session = sessions[0]
    submission = session.find_submission(order.vendor_id)
    if submission is None or submission.status != SubmissionStatus.AWAITING_PAYMENT.value:
        return None, None
    return session, submission


@marketplace.event_handler(part_of=CheckoutSession, stream_category="marketplace::order")
class OrderPaymentEventHandler:
    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        session, submission = _awaiting_submission(event.order_id)
        if session is None:
            return

        current_domain.process(
            RecordVendorPayment(
                session_id=str(session.id),
                vendor_id=str(submission.vendor_id),
                outcome=PaymentOutcome.AUTHORIZED.value,
            ),
            asynchronous=False,
        )
        logger.info("Late payment authorization recorded", session_id=str(session.id), order_id=str(event.order_id))
        finish_if_settled(str(session.id))

    @handle(OrderPaymentUpdated)
    def on_payment_updated(self, event: OrderPaymentUpdated) -> None:
        if event.payment_status != "Declined":
            return
        session, submission = _awaiting_submission(event.order_id)
        if session is None:
            return

        current_domain.process(
            RecordVendorPayment(
                session_id=str(session.id),
                vendor_id=str(submission.vendor_id),
                outcome=PaymentOutcome.DECLINED.value,
                failure_reason=event.note,
            ),
            asynchronous=False,
        )
