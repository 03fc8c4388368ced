"""Invoice rendering for ``downloadInvoice``.

The invoice is a plain-text document laid out with Rich and returned as
UTF-8 bytes. It is rendered from the order's frozen snapshot, so it never
changes after placement apart from the status line.
"""

import io

from protean.utils.globals import current_domain
from rich.console import Console
from rich.table import Table

from marketplace.order.order import Order

INVOICE_WIDTH = 88


def _money(amount, currency):
    return f"{amount:,.2f} {currency}"


def render_invoice(order_id) -> bytes:
    order = current_domain.repository_for(Order).get(order_id)
    pricing = order.pricing
    currency = pricing.currency

    console = Console(record=True, width=INVOICE_WIDTH, file=io.StringIO(), color_system=None)
    console.print(f"INVOICE {order.order_number}")
    console.print(f"Order id: {order.id}")
    console.print(f"Placed: {order.created_at:%Y-%m-%d %H:%M} UTC")
    console.print(f"Vendor: {order.vendor_id}")
    console.print(f"Status: {order.current_status} / payment {order.payment_status}")

    address = order.delivery_address
    if address is not None:
        console.print(f"Deliver to: {address.recipient_name}, {address.line1}, {address.postal_code} {address.city}")

    items = Table(show_edge=False, expand=True)
    items.add_column("Item")
    items.add_column("Qty", justify="right")
    items.add_column("Unit price", justify="right")
    items.add_column("Line total", justify="right")
    for item in order.items:
        items.add_row(
            item.title or str(item.product_id),
            str(item.quantity),
            _money(item.unit_price, currency),
            _money(item.line_total, currency),
        )
    console.print(items)

    totals = Table(show_header=False, show_edge=False, expand=True)
    totals.add_column("Label")
    totals.add_column("Amount", justify="right")
    totals.add_row("Subtotal", _money(pricing.subtotal, currency))
    totals.add_row("Item discounts", f"-{_money(pricing.item_discount_total, currency)}")
    coupon_label = f"Coupon {order.coupon_code}" if order.coupon_code else "Coupon"
    totals.add_row(coupon_label, f"-{_money(pricing.coupon_discount, currency)}")
    totals.add_row("Delivery", _money(pricing.delivery_fee, currency))
    totals.add_row("Total", _money(pricing.total, currency))
    console.print(totals)

    return console.export_text().encode("utf-8")
