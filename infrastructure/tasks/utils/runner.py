"""Run async application services from synchronous Celery tasks."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from infrastructure.database import engine

T = TypeVar("T")


def run_async(fn: Callable[[], Awaitable[T]]) -> T:
    """asyncio.run per task; pooled connections are bound to the loop, so the pool is disposed afterwards."""

    async def _runner() -> Any:
        try:
            return await fn()
        finally:
            await engine.dispose()

    return asyncio.run(_runner())
