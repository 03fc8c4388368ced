"""Pydantic request/response schemas for the Marketplace API.

These are the external contracts; they map onto Protean commands in
``marketplace.api.routes`` and never leak into the domain.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class IdResponse(BaseModel):
    id: str


# ---------------------------------------------------------------------------
# Carts
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str | None = None


class AddCartItemRequest(BaseModel):
    product_id: str
    vendor_id: str
    title: str | None = None
    unit_price: float = Field(ge=0)
    compare_at_price: float | None = Field(default=None, ge=0)
    quantity: int = Field(ge=1, default=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "vendor_id": "vendor-a",
                    "title": "Ceramic mug",
                    "unit_price": 100.0,
                    "compare_at_price": None,
                    "quantity": 2,
                }
            ]
        }
    }


class UpdateCartItemRequest(BaseModel):
    new_quantity: int


class ItemAvailabilityRequest(BaseModel):
    available: bool


class CartLineResponse(BaseModel):
    line_id: str


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class StartCheckoutRequest(BaseModel):
    customer_id: str
    cart_id: str
    token: str | None = Field(default=None, max_length=64)


class SessionIdResponse(BaseModel):
    session_id: str


class SelectAddressRequest(BaseModel):
    address_id: str


class SelectPaymentMethodRequest(BaseModel):
    payment_method: str


class ContactDetailsRequest(BaseModel):
    contact_phone: str | None = None
    contact_email: str | None = None
    comment: str | None = None


class GoBackRequest(BaseModel):
    step: str | None = None


class StepResponse(BaseModel):
    step: str


class ApplyCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)


class CouponResponse(BaseModel):
    code: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CancelOrderRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    actor_kind: str = "Customer"


class CancellationResponse(BaseModel):
    order_id: str
    status: str
    compensation: str
    compensation_status: str | None = None


class ShipOrderRequest(BaseModel):
    carrier: str | None = None
    tracking_number: str | None = None


class RequestRefundRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    amount: float | None = Field(default=None, gt=0)


class RefundDecisionRequest(BaseModel):
    note: str | None = None


class RefundIdResponse(BaseModel):
    refund_id: str


class ReviewOrderRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


class ReorderRequest(BaseModel):
    cart_id: str | None = None


class CartIdResponse(BaseModel):
    cart_id: str


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class AuthorizePaymentRequest(BaseModel):
    order_id: str
    method: str
    amount: float | None = Field(default=None, ge=0)


class AuthorizationResponse(BaseModel):
    order_id: str
    outcome: str
    attempt_id: str | None = None
    reason: str | None = None
    can_retry: bool = False


class PaymentWebhookRequest(BaseModel):
    order_id: str
    provider_reference: str
    status: str
    failure_reason: str | None = None


class GatewayModeRequest(BaseModel):
    mode: str
    failure_reason: str = "Card declined"


# ---------------------------------------------------------------------------
# Coupons, vendors, addresses
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    kind: str
    value: float = Field(ge=0)
    min_subtotal: float | None = Field(default=None, ge=0)
    max_discount: float | None = Field(default=None, ge=0)
    vendor_id: str | None = None
    expires_at: datetime | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "code": "SAVE10",
                    "kind": "Percentage",
                    "value": 10,
                    "min_subtotal": None,
                    "max_discount": None,
                    "vendor_id": None,
                    "expires_at": None,
                }
            ]
        }
    }


class RegisterVendorRequest(BaseModel):
    vendor_id: str
    name: str
    min_order_amount: float = Field(default=0.0, ge=0)
    delivery_fee: float | None = Field(default=None, ge=0)
    free_delivery_threshold: float | None = Field(default=None, ge=0)


class UpdateVendorTermsRequest(BaseModel):
    min_order_amount: float | None = Field(default=None, ge=0)
    delivery_fee: float | None = Field(default=None, ge=0)
    free_delivery_threshold: float | None = Field(default=None, ge=0)


class AddressRequest(BaseModel):
    recipient_name: str
    phone: str
    line1: str
    entrance: str | None = None
    floor: str | None = None
    apartment: str | None = None
    intercom: str | None = None
    city: str
    region: str | None = None
    postal_code: str
    instructions: str | None = None
    is_default: bool = False


class UpdateAddressRequest(BaseModel):
    recipient_name: str | None = None
    phone: str | None = None
    line1: str | None = None
    entrance: str | None = None
    floor: str | None = None
    apartment: str | None = None
    intercom: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    instructions: str | None = None
