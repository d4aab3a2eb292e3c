"""ACC payout transfer tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task
from sqlalchemy.exc import OperationalError

from ..utils.base_task import BaseTask
from ..utils.runner import run_async
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException

logger = get_logger(__name__)


def _manager():
    from infrastructure.bootstrap import build_transfer_manager

    return build_transfer_manager()


@shared_task(
    name="transfers.initiate",
    bind=True,
    base=BaseTask,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def initiate(self, transaction_id: int) -> Dict[str, Any]:
    """Create (or reuse) the payout transfer of a completed purchase and attempt it."""
    try:
        transfer = run_async(lambda: _manager().create_for_transaction(transaction_id))
    except BusinessException as exc:
        logger.warning("transfer_initiate_rejected", transaction_id=transaction_id, code=exc.code, error=exc.message)
        return {"status": "rejected", "code": exc.code}
    if transfer is None:
        return {"status": "skipped"}
    return {"status": transfer.status.value, "transfer_id": transfer.id}


@shared_task(
    name="transfers.execute",
    bind=True,
    base=BaseTask,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def execute(self, transfer_id: int) -> Dict[str, Any]:
    """First attempt of a pending transfer, e.g. once the payee finished onboarding."""
    try:
        transfer = run_async(lambda: _manager().execute(transfer_id))
    except BusinessException as exc:
        logger.warning("transfer_execute_rejected", transfer_id=transfer_id, code=exc.code, error=exc.message)
        return {"status": "rejected", "code": exc.code}
    return {"status": transfer.status.value, "transfer_id": transfer.id}


@shared_task(
    name="transfers.retry",
    bind=True,
    base=BaseTask,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 5},
)
def retry(self, transfer_id: int) -> Dict[str, Any]:
    """Delayed retry scheduled after a failed attempt."""
    try:
        transfer = run_async(lambda: _manager().retry(transfer_id))
    except BusinessException as exc:
        logger.info("transfer_retry_rejected", transfer_id=transfer_id, code=exc.code, error=exc.message)
        return {"status": "rejected", "code": exc.code}
    return {"status": transfer.status.value, "transfer_id": transfer.id}


@shared_task(name="transfers.retry_due", bind=True, base=BaseTask)
def retry_due(self) -> Dict[str, Any]:
    attempted = run_async(lambda: _manager().retry_due())
    return {"attempted": attempted}


@shared_task(name="transfers.recover_stale", bind=True, base=BaseTask)
def recover_stale(self) -> Dict[str, Any]:
    """Count interrupted attempts stuck in processing as failures so retry_due picks them up."""
    recovered = run_async(lambda: _manager().recover_stale())
    return {"recovered": recovered}
