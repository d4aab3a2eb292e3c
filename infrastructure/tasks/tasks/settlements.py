"""Monthly settlement tasks"""
from __future__ import annotations

from typing import Any, Dict, Optional

from celery import shared_task
from sqlalchemy.exc import OperationalError

from ..utils.base_task import BaseTask
from ..utils.runner import run_async


@shared_task(
    name="settlements.generate_monthly",
    bind=True,
    base=BaseTask,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def generate_monthly(self, settlement_month: Optional[str] = None) -> Dict[str, Any]:
    """Aggregate ledger entries of ``settlement_month`` (default: previous month)."""
    from infrastructure.bootstrap import build_settlement_service

    settlements = run_async(lambda: build_settlement_service().generate_monthly_settlements(settlement_month))
    return {"settlements": [s.id for s in settlements]}
