"""Process-local single-flight guard for customer actions on an order.

A second cancel or refund request for the same order while the first one is
still running raises ``AlreadyInProgress`` instead of starting a second
compensating action.
"""

import threading
from contextlib import contextmanager

from marketplace.errors import AlreadyInProgress

_lock = threading.Lock()
_in_flight: set[tuple[str, str]] = set()


@contextmanager
def single_flight(order_id, action: str):
    key = (str(order_id), action)
    with _lock:
        if key in _in_flight:
            raise AlreadyInProgress(f"A {action} request is already in progress", order_id=str(order_id))
        _in_flight.add(key)
    try:
        yield
    finally:
        with _lock:
            _in_flight.discard(key)


def in_flight(order_id, action: str) -> bool:
    with _lock:
        return (str(order_id), action) in _in_flight


def reset() -> None:
    with _lock:
        _in_flight.clear()
