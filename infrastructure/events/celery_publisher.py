"""
Celery-backed implementations of the EventPublisher and TaskScheduler ports.

Both are fire-and-forget: a broker outage is logged and never propagates into
the already-committed business operation.
"""
from __future__ import annotations

from typing import Iterable, Optional

from kombu.exceptions import KombuError

from core.logging_config import get_logger
from domain.common.events import DomainEvent
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)

_ENQUEUE_ERRORS = (KombuError, OSError)


class CeleryEventPublisher:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    def publish(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            try:
                self._dispatcher.deliver_notification(event.name, event.to_payload())
            except _ENQUEUE_ERRORS as exc:
                logger.error("event_publish_failed", event_name=event.name, event_id=event.event_id, error=str(exc))
                continue
            logger.info("event_published", event_name=event.name, event_id=event.event_id)


class CeleryTaskScheduler:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    def schedule_transfer_for_transaction(self, transaction_id: int) -> None:
        try:
            self._dispatcher.initiate_transfer(transaction_id)
        except _ENQUEUE_ERRORS as exc:
            # the retry sweep does not cover never-created transfers; operators re-run transfers.initiate
            logger.error("transfer_schedule_failed", transaction_id=transaction_id, error=str(exc))

    def schedule_transfer_retry(self, transfer_id: int, countdown: int) -> None:
        try:
            self._dispatcher.retry_transfer(transfer_id, countdown)
        except _ENQUEUE_ERRORS as exc:
            # next_retry_at is persisted, so the beat sweep still picks it up
            logger.warning("transfer_retry_schedule_failed", transfer_id=transfer_id, error=str(exc))
