"""Payment gateway in use by the marketplace; FakeGateway unless another one is set."""

from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.gateway.port import PaymentGateway
from marketplace.utils.adapters import AdapterSlot

_slot = AdapterSlot("payment_gateway", FakeGateway)


def get_gateway() -> PaymentGateway:
    return _slot.get()


def set_gateway(gateway: PaymentGateway) -> None:
    _slot.set(gateway)


def reset_gateway() -> None:
    """Drop the current gateway; the next ``get_gateway`` builds a fresh FakeGateway."""
    _slot.reset()
