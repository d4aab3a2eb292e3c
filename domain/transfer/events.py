"""
Transfer domain events (admin-facing notifications).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.common.events import DomainEvent


@dataclass
class TransferAwaitingAccount(DomainEvent):
    """Payee has no connected account; the transfer waits for onboarding."""
    transfer_id: int
    transaction_id: int
    payee: str
    net_amount: str


@dataclass
class TransferCompleted(DomainEvent):
    transfer_id: int
    transaction_id: int
    payee: str
    net_amount: str
    stripe_transfer_id: str


@dataclass
class TransferFailed(DomainEvent):
    transfer_id: int
    transaction_id: int
    payee: str
    retry_count: int
    max_retries: int
    error_message: str
    final: bool = False
    next_retry_in_seconds: Optional[int] = None
