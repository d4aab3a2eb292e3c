"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..config.celery import celery_app


NOTIFICATION_TASK = "notifications.deliver"
INITIATE_TRANSFER_TASK = "transfers.initiate"
RETRY_TRANSFER_TASK = "transfers.retry"


class TaskDispatcher:
    """Internal facade used by the event/scheduler adapters to enqueue tasks."""

    def deliver_notification(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.enqueue(NOTIFICATION_TASK, kwargs={"event_name": event_name, "payload": payload})

    def initiate_transfer(self, transaction_id: int) -> None:
        self.enqueue(INITIATE_TRANSFER_TASK, kwargs={"transaction_id": transaction_id})

    def retry_transfer(self, transfer_id: int, countdown: int) -> None:
        self.enqueue(RETRY_TRANSFER_TASK, kwargs={"transfer_id": transfer_id}, countdown=countdown)

    def enqueue(
        self,
        task_name: str,
        *,
        args: tuple | None = None,
        kwargs: Dict[str, Any] | None = None,
        countdown: Optional[int] = None,
    ) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {}, countdown=countdown)
