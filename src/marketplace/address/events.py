"""Domain events for the AddressBook aggregate."""

from protean.fields import Boolean, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="AddressBook")
class AddressAdded:
    """A delivery address was saved to a customer's address book."""

    __version__ = 1

    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)
    city = String(required=True)
    is_default = Boolean(default=False)


@marketplace.event(part_of="AddressBook")
class AddressUpdated:
    """Fields of a saved delivery address were changed."""

    __version__ = 1

    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)


@marketplace.event(part_of="AddressBook")
class AddressRemoved:
    """A delivery address was deleted from the address book."""

    __version__ = 1

    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)


@marketplace.event(part_of="AddressBook")
class DefaultAddressChanged:
    """Another address became the customer's default delivery address."""

    __version__ = 1

    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)
    previous_default_address_id = Identifier()
