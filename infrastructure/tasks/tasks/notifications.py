"""Notification delivery tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)

# Event name → audience; delivery channels (push, email) live outside this service.
EVENT_AUDIENCE = {
    "CodePurchaseCompleted": "acc",
    "ManualPaymentSubmitted": "acc",
    "ManualPaymentApproved": "training_center",
    "ManualPaymentRejected": "training_center",
    "TransferAwaitingAccount": "group_admin",
    "TransferCompleted": "group_admin",
    "TransferFailed": "group_admin",
}


@shared_task(
    name="notifications.deliver",
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def deliver(self, event_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Hand a domain event to the notification channel for its audience."""
    audience = EVENT_AUDIENCE.get(event_name)
    if audience is None:
        logger.info("notification_no_audience", event_name=event_name, event_id=payload.get("event_id"))
        return {"delivered": False}
    logger.info(
        "notification_delivered",
        event_name=event_name,
        event_id=payload.get("event_id"),
        audience=audience,
        acc_id=payload.get("acc_id"),
        training_center_id=payload.get("training_center_id"),
    )
    return {"delivered": True, "audience": audience}
