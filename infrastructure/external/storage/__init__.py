"""Receipt storage adapters."""
from core.config import settings
from .local import LocalReceiptStorage


def get_receipt_storage() -> LocalReceiptStorage:
    if settings.storage.type != "local":
        raise ValueError(f"Unsupported storage type: {settings.storage.type}")
    return LocalReceiptStorage(settings.storage)


__all__ = ["LocalReceiptStorage", "get_receipt_storage"]
