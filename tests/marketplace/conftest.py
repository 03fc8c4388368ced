import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    from marketplace.gateway import reset_gateway
    from marketplace.order import inflight
    from marketplace.remote_cart import reset_cart_store

    with marketplace_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_gateway()
    reset_cart_store()
    inflight.reset()


@pytest.fixture()
def gateway():
    """The fake payment gateway every coordinator in the test talks to."""
    from marketplace.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def cart_store():
    from marketplace.remote_cart import get_cart_store

    return get_cart_store()


class Shop:
    """Builds the usual two-vendor checkout through the domain's own commands."""

    customer_id = "cust-001"

    def __init__(self):
        from protean import current_domain

        self.domain = current_domain

    def process(self, command):
        return self.domain.process(command, asynchronous=False)

    def vendor(self, vendor_id, name=None, **terms):
        from marketplace.vendor.management import RegisterVendor

        return self.process(RegisterVendor(vendor_id=vendor_id, name=name or vendor_id.title(), **terms))

    def address(self, customer_id=None, **overrides):
        from marketplace.address.management import AddDeliveryAddress

        fields = {
            "recipient_name": "Ana Petrova",
            "phone": "+15550100",
            "line1": "12 Harbour Street",
            "city": "Springfield",
            "postal_code": "62701",
        }
        fields.update(overrides)
        return self.process(AddDeliveryAddress(customer_id=customer_id or self.customer_id, **fields))

    def coupon(self, code="SAVE10", kind="Percentage", value=10.0, **options):
        from marketplace.coupon.management import CreateCoupon

        return self.process(CreateCoupon(code=code, kind=kind, value=value, **options))

    def cart(self, *items, customer_id=None):
        """Create a cart holding ``items``: tuples of (product, vendor, price, quantity)."""
        from marketplace.cart.items import AddCartItem, CreateCart

        cart_id = self.process(CreateCart(customer_id=customer_id or self.customer_id))
        for product_id, vendor_id, unit_price, quantity in items:
            self.process(
                AddCartItem(
                    cart_id=cart_id,
                    product_id=product_id,
                    vendor_id=vendor_id,
                    title=product_id.replace("-", " ").title(),
                    unit_price=unit_price,
                    quantity=quantity,
                )
            )
        return cart_id

    def two_vendor_cart(self):
        return self.cart(("mug", "vendor-a", 100.0, 2), ("lamp", "vendor-b", 130.0, 1))

    def checkout(self, cart_id, payment_method="card", coupon=None, token=None):
        """Start a checkout and walk it to the Confirm step."""
        from marketplace.checkout.coupons import ApplyCheckoutCoupon
        from marketplace.checkout.wizard import (
            AdvanceCheckout,
            SelectPaymentMethod,
            StartCheckout,
            UpdateContactDetails,
        )

        session_id = self.process(StartCheckout(customer_id=self.customer_id, cart_id=cart_id, token=token))
        if coupon:
            self.process(ApplyCheckoutCoupon(session_id=session_id, code=coupon))
        self.process(AdvanceCheckout(session_id=session_id))
        self.process(SelectPaymentMethod(session_id=session_id, payment_method=payment_method))
        self.process(UpdateContactDetails(session_id=session_id, contact_phone="+15550100"))
        self.process(AdvanceCheckout(session_id=session_id))
        return session_id

    def ready_checkout(self, payment_method="card", coupon=None):
        """Vendors, an address and the two-vendor cart, checked out to Confirm."""
        self.vendor("vendor-a", "Atelier A")
        self.vendor("vendor-b", "Bottega B")
        self.address()
        cart_id = self.two_vendor_cart()
        return cart_id, self.checkout(cart_id, payment_method=payment_method, coupon=coupon)

    def session(self, session_id):
        from marketplace.checkout.session import CheckoutSession

        return self.domain.repository_for(CheckoutSession).get(session_id)

    def order(self, order_id):
        from marketplace.order.order import Order

        return self.domain.repository_for(Order).get(order_id)

    def shopping_cart(self, cart_id):
        from marketplace.cart.cart import ShoppingCart

        return self.domain.repository_for(ShoppingCart).get(cart_id)

    def submitted_orders(self, payment_method="card"):
        """Submit the standard checkout and return ``{vendor_id: order_id}``."""
        from marketplace.checkout.saga import CheckoutSaga

        _, session_id = self.ready_checkout(payment_method=payment_method)
        report = CheckoutSaga().submit(session_id)
        return {group.vendor_id: group.order_id for group in report.groups}

    def confirmed_order(self, payment_method="card"):
        """A single-vendor order whose payment is authorized."""
        from marketplace.checkout.saga import CheckoutSaga

        self.vendor("vendor-a", "Atelier A")
        self.address()
        cart_id = self.cart(("mug", "vendor-a", 100.0, 2))
        session_id = self.checkout(cart_id, payment_method=payment_method)
        report = CheckoutSaga().submit(session_id)
        return report.groups[0].order_id

    def pending_order(self, payment_method="card"):
        """A single-vendor order placed but not yet charged."""
        from marketplace.checkout.saga import CheckoutSaga

        self.vendor("vendor-a", "Atelier A")
        self.address()
        cart_id = self.cart(("mug", "vendor-a", 100.0, 2))
        session_id = self.checkout(cart_id, payment_method=payment_method)

        saga = CheckoutSaga()
        saga.revalidate(self.session(session_id))
        saga.freeze(self.session(session_id))
        saga.place(self.session(session_id))
        return str(self.session(session_id).submissions[0].order_id)

    def advance_order(self, order_id, to_status):
        """Drive a confirmed order forward through the operator transitions."""
        from marketplace.order.lifecycle import DeliverOrder, DispatchOrder, StartProcessing
        from marketplace.order.shipping import ship_order

        steps = [
            ("Processing", lambda: self.process(StartProcessing(order_id=order_id))),
            ("Shipped", lambda: ship_order(order_id, carrier="DHL", tracking_number="TRK-1")),
            ("OutForDelivery", lambda: self.process(DispatchOrder(order_id=order_id))),
            ("Delivered", lambda: self.process(DeliverOrder(order_id=order_id))),
        ]
        for status, step in steps:
            step()
            if status == to_status:
                return
        raise ValueError(f"Unknown target status {to_status}")


@pytest.fixture()
def shop():
    return Shop()
