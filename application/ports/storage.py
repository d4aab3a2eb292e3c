"""Application-owned receipt storage port (hexagonal architecture).

Manual-payment receipts are uploaded before the purchase transaction opens;
the core only keeps the returned URL on the batch.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable
from dataclasses import dataclass


@dataclass
class StoredFile:
    key: str
    url: str
    size: int
    content_type: Optional[str] = None


@runtime_checkable
class ReceiptStorage(Protocol):
    async def save(self, data: bytes, filename: str, content_type: Optional[str]) -> StoredFile: ...

    async def delete(self, key: str) -> bool: ...
