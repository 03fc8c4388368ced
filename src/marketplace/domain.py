"""Marketplace bounded context: multi-vendor cart, checkout, payment and orders.

Carts group lines by vendor, checkout fans out into one order per vendor
group, each order carries its own payment and an event-sourced lifecycle.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
