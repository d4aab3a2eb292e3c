"""Local file system storage for payment receipts."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from application.ports.storage import ReceiptStorage, StoredFile
from core.config import StorageSettings
from core.logging_config import get_logger
from .exceptions import ReceiptRejectedError, StorageError

logger = get_logger(__name__)

_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/png": ".png",
}


class LocalReceiptStorage(ReceiptStorage):
    """Stores receipts under ``local_base_path/receipts/YYYY/MM/``."""

    def __init__(self, config: StorageSettings):
        self.config = config
        self.base_path = Path(config.local_base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _validate(self, data: bytes, content_type: Optional[str]) -> None:
        if not data:
            raise ReceiptRejectedError("Receipt file is empty")
        if len(data) > self.config.max_file_size:
            raise ReceiptRejectedError(
                "Receipt file is too large",
                details={"size": len(data), "max_file_size": self.config.max_file_size},
            )
        if content_type not in self.config.allowed_types:
            raise ReceiptRejectedError(
                "Receipt content type is not allowed",
                details={"content_type": content_type, "allowed_types": self.config.allowed_types},
            )

    def _safe_path(self, key: str) -> Path:
        """Build safe path preventing directory traversal."""
        path = (self.base_path / key.lstrip("/")).resolve()
        try:
            path.relative_to(self.base_path)
        except ValueError:
            raise StorageError(f"Invalid path: {key}")
        return path

    def public_url(self, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        return f"/files/{key}"

    async def save(self, data: bytes, filename: str, content_type: Optional[str]) -> StoredFile:
        self._validate(data, content_type)
        now = datetime.now(timezone.utc)
        suffix = _EXTENSIONS.get(content_type or "") or Path(filename or "").suffix.lower()
        key = f"receipts/{now:%Y/%m}/{uuid.uuid4().hex}{suffix}"
        path = self._safe_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.info("receipt_saved", key=key, size=len(data), content_type=content_type)
        return StoredFile(key=key, url=self.public_url(key), size=len(data), content_type=content_type)

    async def delete(self, key: str) -> bool:
        path = self._safe_path(key)
        if not path.exists():
            return False
        await aiofiles.os.remove(path)
        logger.info("receipt_deleted", key=key)
        return True
