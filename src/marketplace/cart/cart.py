"""Shopping Cart aggregate (CQRS) — lines from many vendors in one cart.

Lines are grouped by vendor on every read; vendor groups are never stored.
Unavailable lines stay in the cart so the shopper can see them, but they are
left out of pricing and their quantity cannot grow.

Coupons are deliberately not stored here. An applied coupon lives on the
checkout session, so any change to the lines forces it to be re-validated.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from marketplace.cart.events import (
    CartCleared,
    CartCreated,
    CartItemAdded,
    CartItemAvailabilityChanged,
    CartItemRemoved,
    CartQuantityUpdated,
    CartRestored,
)
from marketplace.domain import marketplace
from marketplace.errors import ItemUnavailable
from marketplace.pricing import compute_breakdown
from marketplace.pricing.money import to_amount
from marketplace.pricing.policy import item_discount_cents, line_total_cents

LINE_FIELDS = (
    "product_id",
    "vendor_id",
    "title",
    "unit_price",
    "compare_at_price",
    "quantity",
    "available",
)


@marketplace.entity(part_of="ShoppingCart")
class CartLine:
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    title = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    compare_at_price = Float(min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    available = Boolean(default=True)
    added_at = DateTime()

    def snapshot(self) -> dict:
        data = {field: getattr(self, field) for field in LINE_FIELDS}
        data["id"] = str(self.id)
        data["product_id"] = str(self.product_id)
        data["vendor_id"] = str(self.vendor_id)
        data["added_at"] = self.added_at.isoformat() if self.added_at else None
        return data


def _parse_timestamp(value):
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class VendorGroup:
    """The lines of one vendor, derived from the cart on demand."""

    vendor_id: str
    lines: tuple

    @property
    def available_lines(self):
        return tuple(line for line in self.lines if line.available)

    @property
    def subtotal(self) -> float:
        return to_amount(sum(line_total_cents(line) for line in self.available_lines))

    @property
    def item_discount_total(self) -> float:
        return to_amount(sum(item_discount_cents(line) for line in self.available_lines))

    @property
    def merchandise_total(self) -> float:
        return self.subtotal


def group_by_vendor(lines) -> list[VendorGroup]:
    """Group ``lines`` by vendor in the order each vendor first appears."""
    grouped: dict[str, list] = {}
    for line in lines:
        grouped.setdefault(str(line.vendor_id), []).append(line)
    return [VendorGroup(vendor_id=vendor_id, lines=tuple(group)) for vendor_id, group in grouped.items()]


@marketplace.aggregate
class ShoppingCart:
    customer_id = Identifier()
    lines = HasMany(CartLine)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None):
        now = datetime.now(UTC)
        cart = cls(customer_id=customer_id, created_at=now, updated_at=now)
        cart.raise_(CartCreated(cart_id=str(cart.id), customer_id=customer_id, created_at=now))
        return cart

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_line(self, line_id):
        return next((line for line in self.lines if str(line.id) == str(line_id)), None)

    def _require_line(self, line_id):
        line = self.find_line(line_id)
        if line is None:
            raise ValidationError({"line_id": ["Item not found in cart"]})
        return line

    def group_by_vendor(self) -> list[VendorGroup]:
        return group_by_vendor(self.lines)

    def vendor_ids(self) -> list[str]:
        return [group.vendor_id for group in self.group_by_vendor()]

    def unavailable_lines(self):
        return [line for line in self.lines if not line.available]

    def breakdown(self, coupon=None, delivery_rule=None):
        return compute_breakdown(self.lines, coupon=coupon, delivery_rule=delivery_rule)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(self, product_id, vendor_id, unit_price, quantity=1, title=None, compare_at_price=None):
        """Add a product, merging into the existing line for the same product and vendor."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = next(
            (
                line
                for line in self.lines
                if str(line.product_id) == str(product_id) and str(line.vendor_id) == str(vendor_id)
            ),
            None,
        )
        if existing:
            if not existing.available:
                raise ItemUnavailable(
                    f"{existing.title or existing.product_id} is unavailable",
                    line_id=str(existing.id),
                )
            existing.quantity += quantity
            line = existing
        else:
            line = CartLine(
                product_id=product_id,
                vendor_id=vendor_id,
                title=title,
                unit_price=unit_price,
                compare_at_price=compare_at_price,
                quantity=quantity,
                available=True,
                added_at=now,
            )
            self.add_lines(line)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                line_id=str(line.id),
                product_id=str(line.product_id),
                vendor_id=str(line.vendor_id),
                unit_price=line.unit_price,
                quantity=line.quantity,
            )
        )
        return line

    def update_quantity(self, line_id, new_quantity):
        """Set a line's quantity; zero or less removes the line."""
        line = self._require_line(line_id)
        if new_quantity <= 0:
            self.remove_item(line_id)
            return

        if new_quantity > line.quantity and not line.available:
            raise ItemUnavailable(
                f"{line.title or line.product_id} is unavailable",
                line_id=str(line.id),
            )

        previous_quantity = line.quantity
        line.quantity = new_quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                line_id=str(line_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, line_id):
        line = self._require_line(line_id)
        vendor_id = str(line.vendor_id)
        self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                line_id=str(line_id),
                vendor_id=vendor_id,
                vendor_group_removed=vendor_id not in self.vendor_ids(),
            )
        )

    def clear(self, vendor_ids=None):
        """Remove every line, or only the lines of ``vendor_ids`` when given."""
        targets = {str(v) for v in vendor_ids} if vendor_ids else None
        doomed = [line for line in self.lines if targets is None or str(line.vendor_id) in targets]
        for line in doomed:
            self.remove_lines(line)

        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                vendor_ids=json.dumps(sorted(targets) if targets else []),
                line_count=len(doomed),
            )
        )

    def mark_availability(self, line_id, available):
        line = self._require_line(line_id)
        if line.available == available:
            return
        line.available = available
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemAvailabilityChanged(
                cart_id=str(self.id),
                line_id=str(line_id),
                available=available,
            )
        )

    def add_from_order(self, items):
        """Copy previously ordered items back into the cart (reorder)."""
        for item in items:
            self.add_item(
                product_id=item["product_id"],
                vendor_id=item["vendor_id"],
                unit_price=item["unit_price"],
                quantity=item["quantity"],
                title=item.get("title"),
                compare_at_price=item.get("compare_at_price"),
            )

    # -------------------------------------------------------------------
    # Snapshots for optimistic updates
    # -------------------------------------------------------------------
    def snapshot_lines(self) -> list[dict]:
        return [line.snapshot() for line in self.lines]

    def restore_lines(self, snapshot, reason=None):
        """Put the lines back exactly as they were in ``snapshot``.

        Surviving lines get their fields reset, lines added since the snapshot
        are dropped and removed lines come back under their original ids.
        """
        wanted = {str(data["id"]): data for data in snapshot}
        added_at = {line_id: _parse_timestamp(data.get("added_at")) for line_id, data in wanted.items()}

        for line in list(self.lines):
            if str(line.id) not in wanted:
                self.remove_lines(line)

        for line_id, data in wanted.items():
            line = self.find_line(line_id)
            if line is None:
                fields = {field: data[field] for field in LINE_FIELDS}
                self.add_lines(CartLine(id=line_id, added_at=added_at[line_id], **fields))
            else:
                for field in LINE_FIELDS:
                    setattr(line, field, data[field])
                line.added_at = added_at[line_id]

        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartRestored(
                cart_id=str(self.id),
                line_count=len(wanted),
                reason=reason,
            )
        )
