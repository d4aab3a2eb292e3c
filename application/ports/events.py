"""
Post-commit side-effect ports.

Application services collect domain events while a unit of work is open and
hand them over only after the commit succeeded; publishing never raises into
the caller.
"""
from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from domain.common.events import DomainEvent


@runtime_checkable
class EventPublisher(Protocol):
    def publish(self, events: Iterable[DomainEvent]) -> None: ...


@runtime_checkable
class TaskScheduler(Protocol):
    def schedule_transfer_for_transaction(self, transaction_id: int) -> None: ...

    def schedule_transfer_retry(self, transfer_id: int, countdown: int) -> None: ...
