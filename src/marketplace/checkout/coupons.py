"""Checkout coupons — apply, remove and re-validate against the current cart."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.checkout.session import CheckoutSession
from marketplace.coupon.validation import CouponValidator
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="CheckoutSession")
class ApplyCheckoutCoupon:
    session_id = Identifier(required=True)
    code = String(required=True, max_length=50)


@marketplace.command(part_of="CheckoutSession")
class RemoveCheckoutCoupon:
    session_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutSession")
class RevalidateCheckoutCoupon:
    session_id = Identifier(required=True)


@marketplace.command_handler(part_of=CheckoutSession)
class CheckoutCouponHandler:
    @handle(ApplyCheckoutCoupon)
    def apply_coupon(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        cart = current_domain.repository_for(ShoppingCart).get(session.cart_id)

        applied_code = session.coupon.code if session.coupon else None
        outcome = CouponValidator().validate(command.code, cart.lines, applied_code=applied_code)
        if not outcome.accepted:
            raise ValidationError({"coupon_code": [outcome.reason.value]})

        session.apply_coupon(outcome.descriptor)
        repo.add(session)
        return outcome.descriptor.code

    @handle(RemoveCheckoutCoupon)
    def remove_coupon(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.remove_coupon()
        repo.add(session)

    @handle(RevalidateCheckoutCoupon)
    def revalidate_coupon(self, command):
        """Detach the coupon if the cart no longer qualifies. Returns the notice, if any."""
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        if session.coupon is None:
            return None

        cart = current_domain.repository_for(ShoppingCart).get(session.cart_id)
        outcome = CouponValidator().revalidate(session.coupon_descriptor(), cart.lines)
        if outcome.accepted:
            return None

        logger.info(
            "Detaching coupon after cart change",
            session_id=str(session.id),
            code=session.coupon.code,
            reason=outcome.reason.value,
        )
        session.detach_coupon(outcome.reason.value)
        repo.add(session)
        return session.coupon_notice
