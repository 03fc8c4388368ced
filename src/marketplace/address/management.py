"""Address book management — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.address.address_book import ADDRESS_FIELDS, AddressBook, address_book_for
from marketplace.domain import marketplace


@marketplace.command(part_of="AddressBook")
class AddDeliveryAddress:
    customer_id = Identifier(required=True)
    recipient_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=30)
    line1 = String(required=True, max_length=255)
    entrance = String(max_length=20)
    floor = String(max_length=20)
    apartment = String(max_length=20)
    intercom = String(max_length=20)
    city = String(required=True, max_length=100)
    region = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    instructions = Text()
    is_default = Boolean(default=False)


@marketplace.command(part_of="AddressBook")
class UpdateDeliveryAddress:
    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)
    recipient_name = String(max_length=255)
    phone = String(max_length=30)
    line1 = String(max_length=255)
    entrance = String(max_length=20)
    floor = String(max_length=20)
    apartment = String(max_length=20)
    intercom = String(max_length=20)
    city = String(max_length=100)
    region = String(max_length=100)
    postal_code = String(max_length=20)
    instructions = Text()


@marketplace.command(part_of="AddressBook")
class RemoveDeliveryAddress:
    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)


@marketplace.command(part_of="AddressBook")
class SetDefaultAddress:
    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)


def _existing_book(customer_id):
    book = address_book_for(customer_id)
    if book is None:
        raise ValidationError({"customer_id": ["Customer has no saved addresses"]})
    return book


@marketplace.command_handler(part_of=AddressBook)
class ManageAddressesHandler:
    @handle(AddDeliveryAddress)
    def add_address(self, command):
        book = address_book_for(command.customer_id) or AddressBook.open(command.customer_id)
        fields = {field: getattr(command, field) for field in ADDRESS_FIELDS}
        address = book.add_address(is_default=bool(command.is_default), **fields)
        current_domain.repository_for(AddressBook).add(book)
        return str(address.id)

    @handle(UpdateDeliveryAddress)
    def update_address(self, command):
        book = _existing_book(command.customer_id)
        fields = {field: getattr(command, field) for field in ADDRESS_FIELDS if getattr(command, field) is not None}
        book.update_address(command.address_id, **fields)
        current_domain.repository_for(AddressBook).add(book)

    @handle(RemoveDeliveryAddress)
    def remove_address(self, command):
        book = _existing_book(command.customer_id)
        book.remove_address(command.address_id)
        current_domain.repository_for(AddressBook).add(book)

    @handle(SetDefaultAddress)
    def set_default(self, command):
        book = _existing_book(command.customer_id)
        book.set_default_address(command.address_id)
        current_domain.repository_for(AddressBook).add(book)
