# app/core/stripe_client.py
"""
Stripe Checkout wrapper and the token price table.

The price table is built once from settings and handed to the payment
service; nothing mutates it at runtime.
"""

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

import stripe

from app.core.config import Settings, get_settings


@dataclass(frozen=True)
class TokenPackage:
    key: str
    price_id: str
    tokens: int
    amount: int  # cents
    currency: str = "usd"


class PriceTable:
    """Immutable mapping of package key -> TokenPackage."""

    def __init__(self, packages: Mapping[str, TokenPackage]):
        self._packages = MappingProxyType(dict(packages))

    def packages(self) -> list[TokenPackage]:
        return list(self._packages.values())

    def by_price_id(self, price_id: str) -> TokenPackage | None:
        for package in self._packages.values():
            if package.price_id == price_id:
                return package
        return None


def build_price_table(settings: Settings) -> PriceTable:
    return PriceTable(
        {
            "SMALL": TokenPackage("SMALL", settings.STRIPE_PRICE_10_TOKENS, 10, 1000),
            "MEDIUM": TokenPackage("MEDIUM", settings.STRIPE_PRICE_30_TOKENS, 30, 2500),
            "LARGE": TokenPackage("LARGE", settings.STRIPE_PRICE_70_TOKENS, 70, 5000),
        }
    )


@lru_cache
def price_table() -> PriceTable:
    return build_price_table(get_settings())


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str
    amount_total: int | None
    currency: str | None


class PaymentClient:
    """
    Stripe operations used by the payment service.

    Raises `stripe.StripeError` on API failure and
    `stripe.SignatureVerificationError` / `ValueError` on a bad webhook.
    """

    def __init__(self, api_key: str, webhook_secret: str):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSession:
        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
        )
        return CheckoutSession(
            id=session.id,
            url=session.url,
            amount_total=session.amount_total,
            currency=session.currency,
        )

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the Stripe-Signature header and return the event as a dict."""
        event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return event.to_dict() if hasattr(event, "to_dict") else dict(event)


@lru_cache
def stripe_client() -> PaymentClient:
    settings = get_settings()
    return PaymentClient(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
