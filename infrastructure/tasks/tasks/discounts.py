"""Discount code maintenance tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.runner import run_async


@shared_task(name="discounts.sweep_statuses", bind=True, base=BaseTask)
def sweep_statuses(self) -> Dict[str, Any]:
    from infrastructure.bootstrap import build_discount_service

    changed = run_async(lambda: build_discount_service().sweep_statuses())
    return {"changed": changed}
