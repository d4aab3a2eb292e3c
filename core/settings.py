"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials and transfer
retry policy can be loaded by workers without the web settings.
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    # Stripe SDK network-level retries (in addition to our tenacity retries)
    max_network_retries: int = 0


class TransferSettings(BaseModel):
    max_retries: int = 3
    backoff: Literal["exponential", "fixed"] = "exponential"
    base_delay_seconds: int = 60
    max_delay_seconds: int = 3600
    # Sweep picks up failed transfers whose delayed task was lost
    sweep_batch_size: int = 100
    # Attempts still in "processing" after this long are counted as failed
    stale_processing_seconds: int = 900


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    transfers: TransferSettings = Field(default_factory=TransferSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
