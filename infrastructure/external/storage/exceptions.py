"""Storage service exceptions."""
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class StorageError(Exception):
    """Base storage exception."""
    pass


class ReceiptRejectedError(BusinessException):
    """Uploaded receipt violates size or content-type limits."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field="payment_receipt",
        )
