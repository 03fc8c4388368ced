"""Checkout wizard — commands and handler for steps and entered details."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.address.address_book import address_book_for
from marketplace.cart.cart import ShoppingCart
from marketplace.checkout.session import CheckoutSession
from marketplace.domain import marketplace


@marketplace.command(part_of="CheckoutSession")
class StartCheckout:
    customer_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    token = String(max_length=64)


@marketplace.command(part_of="CheckoutSession")
class SelectDeliveryAddress:
    session_id = Identifier(required=True)
    address_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutSession")
class SelectPaymentMethod:
    session_id = Identifier(required=True)
    payment_method = String(required=True, max_length=30)


@marketplace.command(part_of="CheckoutSession")
class UpdateContactDetails:
    session_id = Identifier(required=True)
    contact_phone = String(max_length=30)
    contact_email = String(max_length=254)
    comment = Text()


@marketplace.command(part_of="CheckoutSession")
class AdvanceCheckout:
    session_id = Identifier(required=True)


@marketplace.command(part_of="CheckoutSession")
class GoBackCheckout:
    session_id = Identifier(required=True)
    step = String(max_length=20)


@marketplace.command_handler(part_of=CheckoutSession)
class CheckoutWizardHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        cart = current_domain.repository_for(ShoppingCart).get(command.cart_id)
        if not cart.lines:
            raise ValidationError({"cart_id": ["Cannot check out an empty cart"]})

        session = CheckoutSession.start(
            customer_id=command.customer_id,
            cart_id=command.cart_id,
            token=command.token,
        )

        book = address_book_for(command.customer_id)
        if book is not None and book.default_address is not None:
            session.select_address(str(book.default_address.id))

        current_domain.repository_for(CheckoutSession).add(session)
        return str(session.id)

    @handle(SelectDeliveryAddress)
    def select_address(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)

        book = address_book_for(session.customer_id)
        if book is None or book.find(command.address_id) is None:
            raise ValidationError({"address_id": ["Address does not belong to this customer"]})

        session.select_address(command.address_id)
        repo.add(session)

    @handle(SelectPaymentMethod)
    def select_payment_method(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.select_payment_method(command.payment_method)
        repo.add(session)

    @handle(UpdateContactDetails)
    def update_contact(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        session.update_contact(
            phone=command.contact_phone,
            email=command.contact_email,
            comment=command.comment,
        )
        repo.add(session)

    @handle(AdvanceCheckout)
    def advance(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        step = session.advance()
        repo.add(session)
        return step

    @handle(GoBackCheckout)
    def go_back(self, command):
        repo = current_domain.repository_for(CheckoutSession)
        session = repo.get(command.session_id)
        step = session.go_back(command.step)
        repo.add(session)
        return step
