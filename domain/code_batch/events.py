"""
Code batch domain events.

Published after the purchase/approval unit of work commits; delivery to users
(push, email) happens downstream and never affects the batch outcome.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.common.events import DomainEvent


@dataclass
class CodePurchaseCompleted(DomainEvent):
    """Notifies the ACC that a training center bought codes."""
    batch_id: int
    transaction_id: int
    training_center_id: int
    acc_id: int
    course_id: int
    quantity: int
    amount: str
    payment_method: str


@dataclass
class ManualPaymentSubmitted(DomainEvent):
    """Notifies the ACC that a receipt awaits review."""
    batch_id: int
    training_center_id: int
    acc_id: int
    quantity: int
    amount: str


@dataclass
class ManualPaymentApproved(DomainEvent):
    batch_id: int
    training_center_id: int
    acc_id: int
    quantity: int
    amount: str
    verified_by: int
    training_center_user_id: Optional[int] = None


@dataclass
class ManualPaymentRejected(DomainEvent):
    batch_id: int
    training_center_id: int
    acc_id: int
    reason: str
    verified_by: int
    training_center_user_id: Optional[int] = None
