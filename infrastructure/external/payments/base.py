"""
Base payment client implementing shared concerns: retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
Provider SDKs are synchronous, so calls run in a worker thread and are
retried with tenacity on the exceptions the provider marks as transient.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    RefundRequest,
    RefundResult,
    QueryPayment,
    TransferRequest,
    TransferResult,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    def _transient_errors(self) -> tuple[type[BaseException], ...]:
        """Exceptions worth retrying (network, rate limit); providers override."""
        return (TimeoutError, ConnectionError)

    async def _retry(self, fn: Callable[[], Any]):
        """Run a blocking SDK call off the event loop with bounded retries."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(self._transient_errors()),
            reraise=True,
        ):
            with attempt:
                return await asyncio.to_thread(fn)

    # Default implementations raise to force override where needed
    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        raise NotImplementedError

    async def query_payment(self, query: QueryPayment) -> PaymentIntent:  # type: ignore[override]
        raise NotImplementedError

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        raise NotImplementedError

    async def create_transfer(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        raise NotImplementedError

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
