"""In-memory remote cart store for development and testing.

Accepts every mutation by default. Tests can make the next calls reject,
time out or fail, mirroring what a real remote cart service might do.
"""

from marketplace.errors import RemoteRejection, RemoteTimeout, RemoteUnavailable
from marketplace.remote_cart.port import CartMutation, RemoteCartStore


class InMemoryCartStore(RemoteCartStore):
    def __init__(self) -> None:
        self.carts: dict[str, list[dict]] = {}
        self.calls: list[dict] = []
        self.failure: str | None = None
        self.failure_reason: str = "Item is no longer available"
        self._seen_mutations: set[str] = set()

    def configure(self, failure: str | None = None, failure_reason: str = "Item is no longer available") -> None:
        """``failure`` is one of ``None``, ``"reject"``, ``"timeout"`` or ``"unavailable"``."""
        self.failure = failure
        self.failure_reason = failure_reason

    def _raise_configured_failure(self, timeout: float) -> None:
        if self.failure == "reject":
            raise RemoteRejection(self.failure_reason)
        if self.failure == "timeout":
            raise RemoteTimeout(f"Remote cart store did not answer within {timeout}s", timeout=timeout)
        if self.failure == "unavailable":
            raise RemoteUnavailable("Remote cart store is unreachable")

    def fetch_cart(self, cart_id: str, timeout: float) -> dict:
        self.calls.append({"method": "fetch_cart", "cart_id": cart_id, "timeout": timeout})
        self._raise_configured_failure(timeout)
        return {"cart_id": cart_id, "mutations": list(self.carts.get(cart_id, []))}

    def persist_cart_mutation(self, cart_id: str, mutation: CartMutation, timeout: float) -> None:
        self.calls.append(
            {
                "method": "persist_cart_mutation",
                "cart_id": cart_id,
                "op": mutation.op,
                "mutation_id": mutation.mutation_id,
                "timeout": timeout,
            }
        )
        self._raise_configured_failure(timeout)
        if mutation.mutation_id in self._seen_mutations:
            return
        self._seen_mutations.add(mutation.mutation_id)
        self.carts.setdefault(cart_id, []).append({"op": mutation.op, **mutation.payload})
