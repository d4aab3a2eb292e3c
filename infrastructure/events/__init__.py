from .celery_publisher import CeleryEventPublisher, CeleryTaskScheduler

__all__ = ["CeleryEventPublisher", "CeleryTaskScheduler"]
