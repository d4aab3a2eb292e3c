"""Celery beat schedule configuration.

Entries reference tasks by their registered name so this module stays free of
task imports.
"""
from __future__ import annotations

from celery.schedules import crontab

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    # Previous month's ledger entries, early on the 1st
    "monthly-settlements": {
        "task": "settlements.generate_monthly",
        "schedule": crontab(day_of_month=1, hour=2, minute=0),
    },
    # Picks up failed transfers whose delayed retry task was lost
    "transfer-retry-sweep": {
        "task": "transfers.retry_due",
        "schedule": max(payment_settings.transfers.base_delay_seconds, 60),
    },
    "transfer-stale-sweep": {
        "task": "transfers.recover_stale",
        "schedule": crontab(minute="*/5"),
    },
    "discount-status-sweep": {
        "task": "discounts.sweep_statuses",
        "schedule": crontab(hour=0, minute=10),
    },
}
