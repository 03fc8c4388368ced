"""Error taxonomy shared by the marketplace modules.

Field-level validation problems use Protean's ``ValidationError``. The classes
here cover the remaining categories: named conflicts the caller can react to,
payment failures, transport failures and invariant violations.
"""


class MarketplaceError(Exception):
    """Base class for marketplace errors that carry a machine-readable code."""

    code = "Error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------
class ConflictError(MarketplaceError):
    code = "Conflict"


class ItemUnavailable(ConflictError):
    code = "ItemUnavailable"


class CouponInvalidated(ConflictError):
    code = "CouponInvalidated"


class BelowVendorMinimum(ConflictError):
    code = "BelowVendorMinimum"


class OrderAlreadyCancelled(ConflictError):
    code = "OrderAlreadyCancelled"


class CancellationNotAllowed(ConflictError):
    code = "CancellationNotAllowed"


class RefundNotAllowed(ConflictError):
    code = "RefundNotAllowed"


class AlreadyInProgress(ConflictError):
    code = "AlreadyInProgress"


class RemoteRejection(ConflictError):
    code = "RemoteRejection"


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
class PaymentError(MarketplaceError):
    code = "PaymentError"


class PaymentDeclined(PaymentError):
    code = "PaymentDeclined"


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------
class TransportError(MarketplaceError):
    code = "TransportError"


class RemoteTimeout(TransportError):
    code = "RemoteTimeout"


class ProviderTimeout(RemoteTimeout):
    code = "ProviderTimeout"


class RemoteUnavailable(TransportError):
    code = "RemoteUnavailable"


# ---------------------------------------------------------------------------
# Programming errors
# ---------------------------------------------------------------------------
class InvariantViolation(MarketplaceError):
    code = "InvariantViolation"


class IllegalTransition(InvariantViolation):
    code = "IllegalTransition"
