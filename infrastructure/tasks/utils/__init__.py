"""Utility helpers for Celery tasks."""
from .dispatcher import TaskDispatcher
from .base_task import BaseTask
from .runner import run_async

__all__ = ["TaskDispatcher", "BaseTask", "run_async"]
