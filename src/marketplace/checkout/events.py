"""Domain events for the CheckoutSession aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="CheckoutSession")
class CheckoutStarted:
    """A shopper opened a checkout for their cart."""

    __version__ = 1

    session_id = Identifier(required=True)
    token = String(required=True)
    customer_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    started_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutStepChanged:
    """The wizard moved to another step."""

    __version__ = 1

    session_id = Identifier(required=True)
    previous_step = String(required=True)
    step = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutCouponApplied:
    """A coupon was accepted for this checkout."""

    __version__ = 1

    session_id = Identifier(required=True)
    code = String(required=True)
    kind = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutCouponRemoved:
    """The shopper removed the coupon."""

    __version__ = 1

    session_id = Identifier(required=True)
    code = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutCouponDetached:
    """The coupon stopped validating after a cart change and was detached."""

    __version__ = 1

    session_id = Identifier(required=True)
    code = String(required=True)
    reason = String(required=True)
    notice = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutSubmitted:
    """The order-creation requests for every vendor group were frozen."""

    __version__ = 1

    session_id = Identifier(required=True)
    token = String(required=True)
    vendor_ids = Text(required=True)  # JSON list
    submitted_at = DateTime(required=True)


@marketplace.event(part_of="CheckoutSession")
class VendorOrderPlaced:
    """The order of one vendor group exists."""

    __version__ = 1

    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class VendorPaymentRecorded:
    """The payment outcome of one vendor group was recorded."""

    __version__ = 1

    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    status = String(required=True)
    failure_reason = String()


@marketplace.event(part_of="CheckoutSession")
class VendorGroupFailed:
    """A vendor group could not be turned into an order."""

    __version__ = 1

    session_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    reason = String(required=True)


@marketplace.event(part_of="CheckoutSession")
class CheckoutCompleted:
    """Every vendor group has an authorized order."""

    __version__ = 1

    session_id = Identifier(required=True)
    token = String(required=True)
    order_count = Integer(required=True)
    completed_at = DateTime(required=True)
