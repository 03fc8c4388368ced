"""Application tests for cart commands and optimistic remote-store sync."""

import pytest
from marketplace.cart.cart import ShoppingCart
from marketplace.cart.items import ClearCart, CreateCart, RemoveCartItem
from marketplace.cart.sync import CartSynchronizer
from marketplace.errors import RemoteRejection, RemoteTimeout
from marketplace.remote_cart.port import Failed, Loaded
from protean import current_domain


def _cart(cart_id):
    return current_domain.repository_for(ShoppingCart).get(cart_id)


def _new_cart():
    return current_domain.process(CreateCart(customer_id="cust-001"), asynchronous=False)


class TestCartCommands:
    def test_create_and_add(self, shop):
        cart_id = shop.two_vendor_cart()
        cart = _cart(cart_id)

        assert cart.vendor_ids() == ["vendor-a", "vendor-b"]
        assert sum(line.quantity for line in cart.lines) == 3

    def test_remove_item(self, shop):
        cart_id = shop.two_vendor_cart()
        lamp = next(line for line in _cart(cart_id).lines if str(line.vendor_id) == "vendor-b")
        current_domain.process(RemoveCartItem(cart_id=cart_id, line_id=str(lamp.id)), asynchronous=False)

        assert _cart(cart_id).vendor_ids() == ["vendor-a"]

    def test_clear_selected_vendors(self, shop):
        cart_id = shop.two_vendor_cart()
        current_domain.process(ClearCart(cart_id=cart_id, vendor_ids='["vendor-b"]'), asynchronous=False)

        assert _cart(cart_id).vendor_ids() == ["vendor-a"]


class TestOptimisticSync:
    def test_accepted_mutation_reaches_the_store(self, cart_store):
        cart_id = _new_cart()
        line_id = CartSynchronizer().add_item(cart_id, "mug", "vendor-a", 100.0, quantity=2)

        assert _cart(cart_id).find_line(line_id).quantity == 2
        assert cart_store.carts[cart_id][0]["op"] == "add_item"

    def test_rejection_restores_the_exact_lines(self, cart_store):
        cart_id = _new_cart()
        sync = CartSynchronizer()
        mug = sync.add_item(cart_id, "mug", "vendor-a", 100.0, quantity=2)
        sync.add_item(cart_id, "lamp", "vendor-b", 130.0)
        before = _cart(cart_id).snapshot_lines()

        cart_store.configure(failure="reject", failure_reason="Only 2 left")
        with pytest.raises(RemoteRejection):
            sync.update_quantity(cart_id, mug, 5)

        assert sorted(_cart(cart_id).snapshot_lines(), key=lambda d: d["id"]) == sorted(before, key=lambda d: d["id"])

    def test_rejected_removal_brings_the_line_back(self, cart_store):
        cart_id = _new_cart()
        sync = CartSynchronizer()
        lamp = sync.add_item(cart_id, "lamp", "vendor-b", 130.0)
        before = _cart(cart_id).find_line(lamp)
        expected = before.snapshot()
        assert before.added_at is not None

        cart_store.configure(failure="reject")
        with pytest.raises(RemoteRejection):
            sync.remove_item(cart_id, lamp)

        restored = _cart(cart_id).find_line(lamp)
        assert restored is not None
        assert restored.snapshot() == expected
        assert restored.added_at == before.added_at
        for field in ("title", "unit_price", "compare_at_price", "quantity", "available"):
            assert getattr(restored, field) == getattr(before, field)

    def test_timeout_keeps_the_local_change(self, cart_store):
        cart_id = _new_cart()
        sync = CartSynchronizer(timeout=0.5)
        mug = sync.add_item(cart_id, "mug", "vendor-a", 100.0)

        cart_store.configure(failure="timeout")
        with pytest.raises(RemoteTimeout):
            sync.update_quantity(cart_id, mug, 4)

        assert _cart(cart_id).find_line(mug).quantity == 4
        assert cart_store.calls[-1]["timeout"] == 0.5

    def test_fetch_reports_failure_as_a_value(self, cart_store):
        cart_id = _new_cart()
        CartSynchronizer().add_item(cart_id, "mug", "vendor-a", 100.0)

        loaded = CartSynchronizer().fetch(cart_id)
        assert isinstance(loaded, Loaded)
        assert len(loaded.data["mutations"]) == 1

        cart_store.configure(failure="unavailable")
        failed = CartSynchronizer().fetch(cart_id)
        assert isinstance(failed, Failed)
        assert failed.error.code == "RemoteUnavailable"
