"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient()
    raise ValueError(f"Unsupported payment provider: {name}")


def is_stripe_available() -> bool:
    from . import stripe_client
    return stripe_client.stripe is not None
