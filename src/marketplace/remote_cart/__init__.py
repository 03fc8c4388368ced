"""Remote cart store in use by the marketplace; the in-memory store unless another one is set."""

from marketplace.remote_cart.memory_adapter import InMemoryCartStore
from marketplace.remote_cart.port import RemoteCartStore
from marketplace.utils.adapters import AdapterSlot

_slot = AdapterSlot("remote_cart_store", InMemoryCartStore)


def get_cart_store() -> RemoteCartStore:
    return _slot.get()


def set_cart_store(store: RemoteCartStore) -> None:
    _slot.set(store)


def reset_cart_store() -> None:
    _slot.reset()
