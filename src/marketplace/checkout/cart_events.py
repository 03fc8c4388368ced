"""Checkout reacts to cart changes by re-validating any applied coupon.

A coupon that stops validating is detached from the checkout with a
"coupon removed: <reason>" notice instead of silently changing the total.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from marketplace.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemAvailabilityChanged,
    CartItemRemoved,
    CartQuantityUpdated,
    CartRestored,
)
from marketplace.checkout.coupons import RevalidateCheckoutCoupon
from marketplace.checkout.session import CheckoutSession, SessionStatus, SubmissionCursor
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


def _revalidate_sessions_for(cart_id) -> None:
    sessions = (
        current_domain.repository_for(CheckoutSession)
        ._dao.query.filter(cart_id=str(cart_id), status=SessionStatus.ACTIVE.value)
        .all()
        .items
    )
    for session in sessions:
        if session.coupon is None or session.cursor != SubmissionCursor.DRAFTING.value:
            continue
        current_domain.process(RevalidateCheckoutCoupon(session_id=str(session.id)), asynchronous=False)


@marketplace.event_handler(part_of=CheckoutSession, stream_category="marketplace::shopping_cart")
class CartChangesEventHandler:
    @handle(CartItemAdded)
    def on_item_added(self, event: CartItemAdded) -> None:
        _revalidate_sessions_for(event.cart_id)

    @handle(CartQuantityUpdated)
    def on_quantity_updated(self, event: CartQuantityUpdated) -> None:
        _revalidate_sessions_for(event.cart_id)

    @handle(CartItemRemoved)
    def on_item_removed(self, event: CartItemRemoved) -> None:
        logger.debug("Cart line removed, re-validating coupons", cart_id=str(event.cart_id))
        _revalidate_sessions_for(event.cart_id)

    @handle(CartCleared)
    def on_cart_cleared(self, event: CartCleared) -> None:
        _revalidate_sessions_for(event.cart_id)

    @handle(CartItemAvailabilityChanged)
    def on_availability_changed(self, event: CartItemAvailabilityChanged) -> None:
        _revalidate_sessions_for(event.cart_id)

    @handle(CartRestored)
    def on_cart_restored(self, event: CartRestored) -> None:
        _revalidate_sessions_for(event.cart_id)
