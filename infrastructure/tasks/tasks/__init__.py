"""Task modules grouped by domain.

Import side effects register Celery tasks once this package is imported.
"""
from . import discounts, notifications, settlements, transfers  # noqa: F401 to register tasks

__all__ = ["discounts", "notifications", "settlements", "transfers"]
