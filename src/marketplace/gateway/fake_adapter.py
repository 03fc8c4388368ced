"""Configurable fake payment gateway for development and testing.

Simulates a provider without any external calls. It can be configured at
runtime to approve, decline, answer asynchronously (``pending``) or time out,
which makes it useful for:
- Manual API testing via PUT /payments/gateway/mode
- Automated tests with predictable outcomes
- Development without real provider credentials
"""

from uuid import uuid4

from marketplace.errors import ProviderTimeout
from marketplace.gateway.port import AuthorizationResult, GatewayStatus, OperationResult, PaymentGateway

MODES = ("approve", "decline", "pending", "timeout")


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.mode: str = "approve"
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []

    def configure(self, mode: str = "approve", failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        if mode not in MODES:
            raise ValueError(f"Unknown gateway mode {mode}")
        self.mode = mode
        self.failure_reason = failure_reason

    def _check_timeout(self, timeout: float) -> None:
        if self.mode == "timeout":
            raise ProviderTimeout(f"Payment provider did not answer within {timeout}s", timeout=timeout)

    def authorize(
        self,
        amount: float,
        currency: str,
        method: str,
        idempotency_key: str,
        timeout: float,
    ) -> AuthorizationResult:
        self.calls.append(
            {
                "method": "authorize",
                "amount": amount,
                "currency": currency,
                "payment_method": method,
                "idempotency_key": idempotency_key,
                "timeout": timeout,
            }
        )
        self._check_timeout(timeout)

        if self.mode == "decline":
            return AuthorizationResult(status=GatewayStatus.DECLINED, failure_reason=self.failure_reason)
        reference = f"fake_auth_{uuid4().hex[:12]}"
        if self.mode == "pending":
            return AuthorizationResult(status=GatewayStatus.PENDING, provider_reference=reference)
        return AuthorizationResult(status=GatewayStatus.AUTHORIZED, provider_reference=reference)

    def _operation(self, name: str, prefix: str, timeout: float, **details) -> OperationResult:
        self.calls.append({"method": name, "timeout": timeout, **details})
        self._check_timeout(timeout)
        if self.mode == "decline":
            return OperationResult(success=False, failure_reason=self.failure_reason)
        return OperationResult(success=True, provider_reference=f"{prefix}_{uuid4().hex[:12]}")

    def capture(self, provider_reference: str, amount: float, timeout: float) -> OperationResult:
        return self._operation("capture", "fake_cap", timeout, provider_reference=provider_reference, amount=amount)

    def void(self, provider_reference: str, timeout: float) -> OperationResult:
        return self._operation("void", "fake_void", timeout, provider_reference=provider_reference)

    def refund(self, provider_reference: str, amount: float, reason: str, timeout: float) -> OperationResult:
        return self._operation(
            "refund",
            "fake_ref",
            timeout,
            provider_reference=provider_reference,
            amount=amount,
            reason=reason,
        )

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
