"""FastAPI routes for the Marketplace: carts, checkout, orders and payments.

Mutations go through Protean commands (or the services that wrap them) and
reads through ``marketplace.views``. Errors are translated to HTTP in
``marketplace.api.errors``.
"""

from fastapi import APIRouter, Header, HTTPException, Query
from fastapi.responses import Response
from protean.utils.globals import current_domain

from marketplace.address.management import (
    AddDeliveryAddress,
    RemoveDeliveryAddress,
    SetDefaultAddress,
    UpdateDeliveryAddress,
)
from marketplace.api.schemas import (
    AddCartItemRequest,
    AddressRequest,
    ApplyCouponRequest,
    AuthorizationResponse,
    AuthorizePaymentRequest,
    CancellationResponse,
    CancelOrderRequest,
    CartIdResponse,
    CartLineResponse,
    ContactDetailsRequest,
    CouponResponse,
    CreateCartRequest,
    CreateCouponRequest,
    GatewayModeRequest,
    GoBackRequest,
    IdResponse,
    ItemAvailabilityRequest,
    PaymentWebhookRequest,
    RefundDecisionRequest,
    RefundIdResponse,
    RegisterVendorRequest,
    ReorderRequest,
    RequestRefundRequest,
    ReviewOrderRequest,
    SelectAddressRequest,
    SelectPaymentMethodRequest,
    SessionIdResponse,
    ShipOrderRequest,
    StartCheckoutRequest,
    StatusResponse,
    StepResponse,
    UpdateAddressRequest,
    UpdateCartItemRequest,
    UpdateVendorTermsRequest,
)
from marketplace.cart.items import CreateCart
from marketplace.cart.sync import CartSynchronizer
from marketplace.checkout.coupons import ApplyCheckoutCoupon, RemoveCheckoutCoupon
from marketplace.checkout.saga import CheckoutSaga
from marketplace.checkout.wizard import (
    AdvanceCheckout,
    GoBackCheckout,
    SelectDeliveryAddress,
    SelectPaymentMethod,
    StartCheckout,
    UpdateContactDetails,
)
from marketplace.coupon.management import CreateCoupon, DeactivateCoupon
from marketplace.gateway import get_gateway
from marketplace.gateway.fake_adapter import FakeGateway
from marketplace.order.cancellation import cancel_order
from marketplace.order.invoice import render_invoice
from marketplace.order.lifecycle import DeliverOrder, DispatchOrder, ReviewOrder, StartProcessing
from marketplace.order.refunds import ApproveRefund, RejectRefund, complete_refund, request_refund
from marketplace.order.reorder import Reorder
from marketplace.order.shipping import ship_order
from marketplace.payment.coordinator import PaymentCoordinator
from marketplace.vendor.management import RegisterVendor, UpdateVendorTerms
from marketplace.views import OrderFilter, cart_view, checkout_state, list_orders, order_detail, order_summary


def _process(command):
    return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    return CartIdResponse(cart_id=_process(CreateCart(customer_id=body.customer_id)))


@cart_router.get("/{cart_id}")
async def get_cart(cart_id: str, session_id: str | None = None) -> dict:
    return cart_view(cart_id, session_id=session_id)


@cart_router.post("/{cart_id}/items", status_code=201, response_model=CartLineResponse)
async def add_cart_item(cart_id: str, body: AddCartItemRequest) -> CartLineResponse:
    line_id = CartSynchronizer().add_item(
        cart_id,
        product_id=body.product_id,
        vendor_id=body.vendor_id,
        unit_price=body.unit_price,
        quantity=body.quantity,
        title=body.title,
        compare_at_price=body.compare_at_price,
    )
    return CartLineResponse(line_id=line_id)


@cart_router.put("/{cart_id}/items/{line_id}", response_model=StatusResponse)
async def update_cart_item(cart_id: str, line_id: str, body: UpdateCartItemRequest) -> StatusResponse:
    CartSynchronizer().update_quantity(cart_id, line_id, body.new_quantity)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{line_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, line_id: str) -> StatusResponse:
    CartSynchronizer().remove_item(cart_id, line_id)
    return StatusResponse()


@cart_router.put("/{cart_id}/items/{line_id}/availability", response_model=StatusResponse)
async def set_item_availability(cart_id: str, line_id: str, body: ItemAvailabilityRequest) -> StatusResponse:
    CartSynchronizer().mark_availability(cart_id, line_id, body.available)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    CartSynchronizer().clear(cart_id)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("", status_code=201, response_model=SessionIdResponse)
async def start_checkout(body: StartCheckoutRequest) -> SessionIdResponse:
    session_id = _process(StartCheckout(customer_id=body.customer_id, cart_id=body.cart_id, token=body.token))
    return SessionIdResponse(session_id=session_id)


@checkout_router.get("/{session_id}")
async def get_checkout(session_id: str) -> dict:
    return checkout_state(session_id)


@checkout_router.put("/{session_id}/address", response_model=StatusResponse)
async def select_address(session_id: str, body: SelectAddressRequest) -> StatusResponse:
    _process(SelectDeliveryAddress(session_id=session_id, address_id=body.address_id))
    return StatusResponse()


@checkout_router.put("/{session_id}/payment-method", response_model=StatusResponse)
async def select_payment_method(session_id: str, body: SelectPaymentMethodRequest) -> StatusResponse:
    _process(SelectPaymentMethod(session_id=session_id, payment_method=body.payment_method))
    return StatusResponse()


@checkout_router.put("/{session_id}/contact", response_model=StatusResponse)
async def update_contact(session_id: str, body: ContactDetailsRequest) -> StatusResponse:
    _process(
        UpdateContactDetails(
            session_id=session_id,
            contact_phone=body.contact_phone,
            contact_email=body.contact_email,
            comment=body.comment,
        )
    )
    return StatusResponse()


@checkout_router.post("/{session_id}/advance", response_model=StepResponse)
async def advance(session_id: str) -> StepResponse:
    return StepResponse(step=_process(AdvanceCheckout(session_id=session_id)))


@checkout_router.post("/{session_id}/back", response_model=StepResponse)
async def go_back(session_id: str, body: GoBackRequest) -> StepResponse:
    return StepResponse(step=_process(GoBackCheckout(session_id=session_id, step=body.step)))


@checkout_router.post("/{session_id}/coupon", response_model=CouponResponse)
async def apply_coupon(session_id: str, body: ApplyCouponRequest) -> CouponResponse:
    return CouponResponse(code=_process(ApplyCheckoutCoupon(session_id=session_id, code=body.code)))


@checkout_router.delete("/{session_id}/coupon", response_model=StatusResponse)
async def remove_coupon(session_id: str) -> StatusResponse:
    _process(RemoveCheckoutCoupon(session_id=session_id))
    return StatusResponse()


@checkout_router.post("/{session_id}/submit")
async def submit_checkout(session_id: str) -> dict:
    return CheckoutSaga().submit(session_id).to_dict()


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("")
async def get_orders(
    customer_id: str | None = None,
    vendor_id: str | None = None,
    status: str | None = None,
    sort: str = "newest",
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[dict]:
    order_filter = OrderFilter(
        customer_id=customer_id,
        vendor_id=vendor_id,
        status=status,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return list_orders(order_filter)


@order_router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    return order_detail(order_id)


@order_router.get("/{order_id}/summary")
async def get_order_summary(order_id: str) -> dict:
    return order_summary(order_id)


@order_router.get("/{order_id}/invoice")
async def download_invoice(order_id: str) -> Response:
    return Response(
        content=render_invoice(order_id),
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="invoice-{order_id}.txt"'},
    )


@order_router.post("/{order_id}/cancel", response_model=CancellationResponse)
async def cancel(order_id: str, body: CancelOrderRequest) -> CancellationResponse:
    result = cancel_order(order_id, body.reason, actor_kind=body.actor_kind)
    return CancellationResponse(
        order_id=result.order_id,
        status=result.status,
        compensation=result.compensation,
        compensation_status=result.compensation_status,
    )


@order_router.put("/{order_id}/processing", response_model=StatusResponse)
async def start_processing(order_id: str) -> StatusResponse:
    _process(StartProcessing(order_id=order_id))
    return StatusResponse()


@order_router.put("/{order_id}/ship", response_model=StatusResponse)
async def ship(order_id: str, body: ShipOrderRequest) -> StatusResponse:
    ship_order(order_id, carrier=body.carrier, tracking_number=body.tracking_number)
    return StatusResponse()


@order_router.put("/{order_id}/out-for-delivery", response_model=StatusResponse)
async def dispatch(order_id: str) -> StatusResponse:
    _process(DispatchOrder(order_id=order_id))
    return StatusResponse()


@order_router.put("/{order_id}/deliver", response_model=StatusResponse)
async def deliver(order_id: str) -> StatusResponse:
    _process(DeliverOrder(order_id=order_id))
    return StatusResponse()


@order_router.post("/{order_id}/refunds", status_code=201, response_model=RefundIdResponse)
async def create_refund_request(order_id: str, body: RequestRefundRequest) -> RefundIdResponse:
    return RefundIdResponse(refund_id=request_refund(order_id, body.reason, amount=body.amount))


@order_router.put("/{order_id}/refunds/{refund_id}/approve", response_model=StatusResponse)
async def approve_refund(order_id: str, refund_id: str, body: RefundDecisionRequest) -> StatusResponse:
    _process(ApproveRefund(order_id=order_id, refund_id=refund_id, note=body.note))
    return StatusResponse()


@order_router.put("/{order_id}/refunds/{refund_id}/reject", response_model=StatusResponse)
async def reject_refund(order_id: str, refund_id: str, body: RefundDecisionRequest) -> StatusResponse:
    _process(RejectRefund(order_id=order_id, refund_id=refund_id, note=body.note))
    return StatusResponse()


@order_router.put("/{order_id}/refunds/{refund_id}/complete", response_model=StatusResponse)
async def finish_refund(order_id: str, refund_id: str) -> StatusResponse:
    complete_refund(order_id, refund_id)
    return StatusResponse()


@order_router.post("/{order_id}/review", response_model=StatusResponse)
async def review(order_id: str, body: ReviewOrderRequest) -> StatusResponse:
    _process(ReviewOrder(order_id=order_id, rating=body.rating, comment=body.comment))
    return StatusResponse()


@order_router.post("/{order_id}/reorder", status_code=201, response_model=CartIdResponse)
async def reorder(order_id: str, body: ReorderRequest) -> CartIdResponse:
    return CartIdResponse(cart_id=_process(Reorder(order_id=order_id, cart_id=body.cart_id)))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _authorization_response(outcome) -> AuthorizationResponse:
    return AuthorizationResponse(
        order_id=outcome.order_id,
        outcome=outcome.outcome,
        attempt_id=outcome.attempt_id,
        reason=outcome.reason,
        can_retry=outcome.can_retry,
    )


@payment_router.post("/authorize", response_model=AuthorizationResponse)
async def authorize_payment(body: AuthorizePaymentRequest) -> AuthorizationResponse:
    """Retry the charge of a Pending order, e.g. after a decline."""
    outcome = PaymentCoordinator().authorize(body.order_id, body.method, amount=body.amount)
    return _authorization_response(outcome)


@payment_router.post("/webhook", response_model=AuthorizationResponse)
async def payment_webhook(
    body: PaymentWebhookRequest,
    x_signature: str = Header(default=""),
) -> AuthorizationResponse:
    if not get_gateway().verify_webhook_signature(body.model_dump_json(), x_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    outcome = PaymentCoordinator().handle_webhook(
        body.order_id,
        body.provider_reference,
        body.status,
        failure_reason=body.failure_reason,
    )
    return _authorization_response(outcome)


@payment_router.put("/gateway/mode", response_model=StatusResponse)
async def configure_gateway(body: GatewayModeRequest) -> StatusResponse:
    """Switch the fake gateway's behaviour; only available with the fake gateway."""
    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=404, detail="Gateway configuration is not available")
    try:
        gateway.configure(mode=body.mode, failure_reason=body.failure_reason)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return StatusResponse()


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=IdResponse)
async def create_coupon(body: CreateCouponRequest) -> IdResponse:
    return IdResponse(id=_process(CreateCoupon(**body.model_dump())))


@coupon_router.delete("/{code}", response_model=StatusResponse)
async def deactivate_coupon(code: str) -> StatusResponse:
    _process(DeactivateCoupon(code=code))
    return StatusResponse()


# ---------------------------------------------------------------------------
# Vendor Router
# ---------------------------------------------------------------------------
vendor_router = APIRouter(prefix="/vendors", tags=["vendors"])


@vendor_router.post("", status_code=201, response_model=IdResponse)
async def register_vendor(body: RegisterVendorRequest) -> IdResponse:
    return IdResponse(id=_process(RegisterVendor(**body.model_dump())))


@vendor_router.put("/{vendor_id}/terms", response_model=StatusResponse)
async def update_vendor_terms(vendor_id: str, body: UpdateVendorTermsRequest) -> StatusResponse:
    _process(UpdateVendorTerms(vendor_id=vendor_id, **body.model_dump()))
    return StatusResponse()


# ---------------------------------------------------------------------------
# Address Router
# ---------------------------------------------------------------------------
address_router = APIRouter(prefix="/addresses", tags=["addresses"])


@address_router.post("/{customer_id}", status_code=201, response_model=IdResponse)
async def add_address(customer_id: str, body: AddressRequest) -> IdResponse:
    return IdResponse(id=_process(AddDeliveryAddress(customer_id=customer_id, **body.model_dump())))


@address_router.put("/{customer_id}/{address_id}", response_model=StatusResponse)
async def update_address(customer_id: str, address_id: str, body: UpdateAddressRequest) -> StatusResponse:
    _process(
        UpdateDeliveryAddress(
            customer_id=customer_id,
            address_id=address_id,
            **body.model_dump(exclude_none=True),
        )
    )
    return StatusResponse()


@address_router.delete("/{customer_id}/{address_id}", response_model=StatusResponse)
async def remove_address(customer_id: str, address_id: str) -> StatusResponse:
    _process(RemoveDeliveryAddress(customer_id=customer_id, address_id=address_id))
    return StatusResponse()


@address_router.put("/{customer_id}/{address_id}/default", response_model=StatusResponse)
async def set_default_address(customer_id: str, address_id: str) -> StatusResponse:
    _process(SetDefaultAddress(customer_id=customer_id, address_id=address_id))
    return StatusResponse()
