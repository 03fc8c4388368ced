"""Payment gateway port (abstract interface).

Defines the contract every payment provider adapter implements. Each call
takes a caller-supplied timeout; an adapter raises ``ProviderTimeout`` when
the provider does not answer in time.

Authorization may be asynchronous: an adapter can answer ``pending`` and
deliver the final result later through a signed webhook.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayStatus(Enum):
    AUTHORIZED = "authorized"
    PENDING = "pending"
    DECLINED = "declined"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthorizationResult:
    """Result of asking the provider to authorize a charge."""

    status: GatewayStatus
    provider_reference: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class OperationResult:
    """Result of a capture, void or refund."""

    success: bool
    provider_reference: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def authorize(
        self,
        amount: float,
        currency: str,
        method: str,
        idempotency_key: str,
        timeout: float,
    ) -> AuthorizationResult:
        """Authorize (reserve) a charge."""
        ...

    @abstractmethod
    def capture(self, provider_reference: str, amount: float, timeout: float) -> OperationResult:
        """Capture a previously authorized charge."""
        ...

    @abstractmethod
    def void(self, provider_reference: str, timeout: float) -> OperationResult:
        """Release an authorization that was never captured."""
        ...

    @abstractmethod
    def refund(self, provider_reference: str, amount: float, reason: str, timeout: float) -> OperationResult:
        """Refund a captured charge."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the provider."""
        ...
