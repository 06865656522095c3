"""Stripe SDK wrapper for booking deposits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

import stripe


@dataclass(slots=True)
class PaymentIntent:
    """Simplified payment intent payload."""

    id: str
    client_secret: str | None
    status: str
    amount: int
    currency: str
    metadata: dict[str, Any]


class StripeClientError(RuntimeError):
    """Raised when Stripe interaction fails."""


def _to_intent(intent: Any) -> PaymentIntent:
    intent_data = cast(dict[str, Any], intent)
    metadata_dict = cast(dict[str, Any], intent_data.get("metadata") or {})
    return PaymentIntent(
        id=str(intent_data.get("id")),
        client_secret=cast(str | None, intent_data.get("client_secret")),
        status=str(intent_data.get("status", "unknown")),
        amount=int(intent_data.get("amount") or 0),
        currency=str(intent_data.get("currency") or ""),
        metadata=dict(metadata_dict),
    )


class StripeClient:
    """Thin wrapper around the Stripe SDK. Amounts are in minor units (pence)."""

    def __init__(
        self,
        secret_key: str,
        *,
        idempotency_prefix: str = "castle",
        sdk: Any = stripe,
    ) -> None:
        self._secret_key = secret_key
        self._idempotency_prefix = idempotency_prefix
        self._stripe = sdk
        self._stripe.api_key = secret_key
        self._stripe.max_network_retries = 2

    def _idempotency_key(self, seed: str | None) -> str | None:
        if seed is None:
            return None
        return f"{self._idempotency_prefix}_{seed}"

    def create_payment_intent(
        self,
        *,
        amount_pence: int,
        currency: str = "gbp",
        metadata: dict[str, Any] | None = None,
        customer_email: str | None = None,
        description: str | None = None,
        idempotency_seed: str | None = None,
    ) -> PaymentIntent:
        if amount_pence <= 0:
            raise StripeClientError("Payment amount must be positive")
        kwargs: dict[str, Any] = {
            "amount": amount_pence,
            "currency": currency,
            "metadata": dict(metadata or {}),
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_email:
            kwargs["receipt_email"] = customer_email
        if description:
            kwargs["description"] = description
        try:
            intent = self._stripe.PaymentIntent.create(
                **kwargs,
                idempotency_key=self._idempotency_key(idempotency_seed),
            )
        except Exception as exc:  # pragma: no cover - surfaced in API error handling
            raise StripeClientError("Failed to create payment intent") from exc
        return _to_intent(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        try:
            intent = self._stripe.PaymentIntent.retrieve(payment_intent_id)
        except Exception as exc:  # pragma: no cover
            raise StripeClientError("Failed to retrieve payment intent") from exc
        return _to_intent(intent)

