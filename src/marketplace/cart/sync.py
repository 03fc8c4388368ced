"""Optimistic cart mutations backed by the remote cart store.

Each mutation is applied to the local cart first, then sent to the remote
store. When the remote store rejects it, the cart lines are restored from the
snapshot taken just before the mutation, so the shopper gets back the exact
lines they had. Timeouts and network failures leave the local change in place
and propagate; the caller retries with the same ``CartMutation`` id.
"""

import json

import structlog
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.cart.items import (
    AddCartItem,
    ClearCart,
    MarkItemAvailability,
    RemoveCartItem,
    RestoreCart,
    UpdateCartItemQuantity,
)
from marketplace.config import settings
from marketplace.errors import RemoteRejection, TransportError
from marketplace.remote_cart import get_cart_store
from marketplace.remote_cart.port import CartMutation, Failed, Loaded

logger = structlog.get_logger(__name__)


class CartSynchronizer:
    def __init__(self, store=None, timeout: float | None = None):
        self._store = store
        self._timeout = timeout

    @property
    def store(self):
        return self._store or get_cart_store()

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings().remote_timeout

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def fetch(self, cart_id):
        """Fetch the remote cart as ``Loaded(data)`` or ``Failed(error)``."""
        try:
            return Loaded(data=self.store.fetch_cart(str(cart_id), timeout=self.timeout))
        except (TransportError, RemoteRejection) as exc:
            logger.warning("Remote cart fetch failed", cart_id=str(cart_id), error=exc.code)
            return Failed(error=exc)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(self, cart_id, product_id, vendor_id, unit_price, quantity=1, title=None, compare_at_price=None):
        command = AddCartItem(
            cart_id=cart_id,
            product_id=product_id,
            vendor_id=vendor_id,
            title=title,
            unit_price=unit_price,
            compare_at_price=compare_at_price,
            quantity=quantity,
        )
        payload = {
            "product_id": str(product_id),
            "vendor_id": str(vendor_id),
            "unit_price": unit_price,
            "quantity": quantity,
        }
        return self._apply(cart_id, command, CartMutation(op="add_item", payload=payload))

    def update_quantity(self, cart_id, line_id, new_quantity):
        command = UpdateCartItemQuantity(cart_id=cart_id, line_id=line_id, new_quantity=new_quantity)
        payload = {"line_id": str(line_id), "new_quantity": new_quantity}
        return self._apply(cart_id, command, CartMutation(op="update_quantity", payload=payload))

    def remove_item(self, cart_id, line_id):
        command = RemoveCartItem(cart_id=cart_id, line_id=line_id)
        return self._apply(cart_id, command, CartMutation(op="remove_item", payload={"line_id": str(line_id)}))

    def clear(self, cart_id):
        return self._apply(cart_id, ClearCart(cart_id=cart_id), CartMutation(op="clear", payload={}))

    def mark_availability(self, cart_id, line_id, available):
        command = MarkItemAvailability(cart_id=cart_id, line_id=line_id, available=available)
        payload = {"line_id": str(line_id), "available": available}
        return self._apply(cart_id, command, CartMutation(op="mark_availability", payload=payload))

    def _apply(self, cart_id, command, mutation: CartMutation):
        snapshot = current_domain.repository_for(ShoppingCart).get(cart_id).snapshot_lines()
        result = current_domain.process(command, asynchronous=False)

        try:
            self.store.persist_cart_mutation(str(cart_id), mutation, timeout=self.timeout)
        except RemoteRejection as exc:
            logger.info(
                "Remote cart rejected mutation, restoring lines",
                cart_id=str(cart_id),
                op=mutation.op,
                reason=exc.message,
            )
            current_domain.process(
                RestoreCart(cart_id=cart_id, lines=json.dumps(snapshot), reason=exc.message),
                asynchronous=False,
            )
            raise
        return result
