"""AddressBook aggregate (CQRS): a customer's saved delivery addresses.

A customer owns zero or more addresses and at most one of them is the
default. Changes that move the default flag happen inside ``atomic_change``
so the invariant is only checked once the whole move is complete.
"""

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, HasMany, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.address.events import AddressAdded, AddressRemoved, AddressUpdated, DefaultAddressChanged
from marketplace.domain import marketplace

MAX_ADDRESSES = 20

ADDRESS_FIELDS = (
    "recipient_name",
    "phone",
    "line1",
    "entrance",
    "floor",
    "apartment",
    "intercom",
    "city",
    "region",
    "postal_code",
    "instructions",
)


@marketplace.entity(part_of="AddressBook")
class DeliveryAddress:
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

    def snapshot(self) -> dict:
        """Plain copy of the address, detached from the address book."""
        data = {field: getattr(self, field) for field in ADDRESS_FIELDS}
        data["address_id"] = str(self.id)
        return data


@marketplace.aggregate
class AddressBook:
    customer_id = Identifier(required=True, unique=True)
    addresses = HasMany(DeliveryAddress)

    @invariant.post
    def at_most_one_default_address(self):
        defaults = [a for a in self.addresses if a.is_default]
        if len(defaults) > 1:
            raise ValidationError({"addresses": ["Only one address can be marked as default"]})

    @invariant.post
    def addresses_cannot_exceed_maximum(self):
        if len(self.addresses) > MAX_ADDRESSES:
            raise ValidationError({"addresses": [f"Cannot have more than {MAX_ADDRESSES} addresses"]})

    @classmethod
    def open(cls, customer_id):
        return cls(customer_id=customer_id)

    def find(self, address_id):
        return next((a for a in self.addresses if str(a.id) == str(address_id)), None)

    def _require(self, address_id):
        address = self.find(address_id)
        if address is None:
            raise ValidationError({"address_id": [f"Address {address_id} not found"]})
        return address

    @property
    def default_address(self):
        return next((a for a in self.addresses if a.is_default), None)

    def add_address(self, is_default=False, **fields):
        # The first saved address becomes the default
        if not self.addresses:
            is_default = True

        with atomic_change(self):
            if is_default:
                for addr in self.addresses:
                    if addr.is_default:
                        addr.is_default = False
            address = DeliveryAddress(is_default=is_default, **fields)
            self.add_addresses(address)

        self.raise_(
            AddressAdded(
                customer_id=str(self.customer_id),
                address_id=str(address.id),
                city=address.city,
                is_default=is_default,
            )
        )
        return address

    def update_address(self, address_id, **fields):
        address = self._require(address_id)
        unknown = set(fields) - set(ADDRESS_FIELDS)
        if unknown:
            raise ValidationError({field: ["Field cannot be edited"] for field in sorted(unknown)})

        for field, value in fields.items():
            if value is not None:
                setattr(address, field, value)

        self.raise_(AddressUpdated(customer_id=str(self.customer_id), address_id=str(address_id)))

    def remove_address(self, address_id):
        address = self._require(address_id)
        self.remove_addresses(address)
        self.raise_(AddressRemoved(customer_id=str(self.customer_id), address_id=str(address_id)))

    def set_default_address(self, address_id):
        address = self._require(address_id)
        previous = self.default_address

        with atomic_change(self):
            for addr in self.addresses:
                if addr.is_default:
                    addr.is_default = False
            address.is_default = True

        self.raise_(
            DefaultAddressChanged(
                customer_id=str(self.customer_id),
                address_id=str(address_id),
                previous_default_address_id=str(previous.id) if previous else None,
            )
        )


def address_book_for(customer_id):
    """The customer's address book, or ``None`` when nothing was saved yet."""
    results = current_domain.repository_for(AddressBook)._dao.query.filter(customer_id=str(customer_id)).all()
    return results.items[0] if results.items else None
