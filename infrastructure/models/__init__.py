"""Infrastructure models package exports."""
from .base import Base, metadata
from .tenant import (
    AccModel,
    TrainingCenterModel,
    TrainingCenterAccAuthorizationModel,
    CourseModel,
)
from .catalog import CoursePricingModel, DiscountCodeModel
from .code_batch import CodeBatchModel, CertificateCodeModel
from .ledger import TransactionModel, CommissionLedgerModel, MonthlySettlementModel
from .transfer import TransferModel

__all__ = [
    "Base",
    "metadata",
    "AccModel",
    "TrainingCenterModel",
    "TrainingCenterAccAuthorizationModel",
    "CourseModel",
    "CoursePricingModel",
    "DiscountCodeModel",
    "CodeBatchModel",
    "CertificateCodeModel",
    "TransactionModel",
    "CommissionLedgerModel",
    "MonthlySettlementModel",
    "TransferModel",
]
