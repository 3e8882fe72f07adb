"""
Payment provider protocol.

Defines the interface for payment providers (Paystack, manual confirmation).
This allows swapping providers without changing business logic.
"""
from typing import Protocol, Dict, Any, Iterator, Optional
from dataclasses import dataclass, field

import httpx

from cvbuilder.core.config import settings
from cvbuilder.core.logging import get_logger

logger = get_logger("PaymentProvider")

# Provider statuses after which the payment can no longer succeed
FINAL_FAILURE_STATUSES = frozenset({"failed", "abandoned", "reversed"})


@dataclass
class PaymentVerification:
    """Result of asking a provider to confirm a payment reference."""
    reference: str
    success: bool
    provider_status: str  # success, failed, abandoned, ...
    amount: Optional[float] = None
    currency: Optional[str] = None
    message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_final_failure(self) -> bool:
        return not self.success and self.provider_status in FINAL_FAILURE_STATUSES


class PaymentProvider(Protocol):
    """
    Protocol for payment providers.

    Implementations must confirm a provider reference and report whether the
    money was received.
    """

    name: str

    def verify(self, reference: str) -> PaymentVerification:
        """
        Confirm a payment reference with the provider.

        Raises:
            PaymentProviderError: If the provider cannot be reached
        """
        ...


class PaymentProviderError(Exception):
    """Base exception for payment provider errors."""
    pass


class PaystackProvider:
    """Paystack transaction verification over its REST API."""

    name = "paystack"

    def __init__(self, secret_key: str, base_url: Optional[str] = None, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        if not secret_key:
            raise PaymentProviderError("PAYSTACK_SECRET_KEY is not configured")
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def verify(self, reference: str) -> PaymentVerification:
        try:
            response = self._client.get(f"/transaction/verify/{reference}")
        except httpx.HTTPError as e:
            logger.error(f"Paystack request failed: {e}", extra={"meta": {"reference": reference}})
            raise PaymentProviderError("Payment provider unreachable") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        data = body.get("data") or {}
        provider_status = data.get("status") or ("error" if response.status_code >= 400 else "unknown")
        amount = data.get("amount")
        return PaymentVerification(
            reference=reference,
            success=response.status_code == 200 and bool(body.get("status")) and provider_status == "success",
            provider_status=provider_status,
            # Paystack reports amounts in the currency's subunit
            amount=amount / 100 if isinstance(amount, (int, float)) else None,
            currency=data.get("currency"),
            message=body.get("message"),
            raw=body,
        )


class ManualProvider:
    """Confirms every reference; used when no gateway is configured."""

    name = "manual"

    def verify(self, reference: str) -> PaymentVerification:
        logger.warning(
            "Payment gateway not configured; confirming reference without provider check",
            extra={"meta": {"reference": reference}},
        )
        return PaymentVerification(reference=reference, success=True, provider_status="success")


def configured_provider_name() -> str:
    return PaystackProvider.name if settings.PAYSTACK_SECRET_KEY else ManualProvider.name


def get_payment_provider() -> Iterator[PaymentProvider]:
    """FastAPI dependency: Paystack when a secret key is configured, else manual confirmation."""
    if not settings.PAYSTACK_SECRET_KEY:
        yield ManualProvider()
        return

    provider = PaystackProvider(settings.PAYSTACK_SECRET_KEY)
    try:
        yield provider
    finally:
        provider.close()
