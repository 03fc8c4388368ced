"""Remote cart store port (abstract interface).

The remote system of record for carts. Every call takes a caller-supplied
timeout and must raise ``RemoteTimeout`` when it is exceeded, ``RemoteRejection``
when the remote side refuses a mutation and ``RemoteUnavailable`` for network
failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import uuid4


@dataclass(frozen=True)
class CartMutation:
    """One cart change as sent to the remote store.

    ``mutation_id`` doubles as the idempotency key when the caller retries.
    """

    op: str
    payload: dict
    mutation_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass(frozen=True)
class Loading:
    state: str = "Loading"


@dataclass(frozen=True)
class Loaded:
    data: dict
    state: str = "Loaded"


@dataclass(frozen=True)
class Failed:
    error: Exception
    state: str = "Failed"


class RemoteCartStore(ABC):
    """Abstract remote cart store."""

    @abstractmethod
    def fetch_cart(self, cart_id: str, timeout: float) -> dict:
        """Return the remote copy of the cart."""
        ...

    @abstractmethod
    def persist_cart_mutation(self, cart_id: str, mutation: CartMutation, timeout: float) -> None:
        """Record ``mutation`` remotely or raise."""
        ...
