"""
应用服务装配（组合根）

API 依赖项与 Celery 任务共用，保证两侧注入相同的网关、事件发布与任务调度实现。
"""
from __future__ import annotations

from typing import Optional

from application.ports.storage import ReceiptStorage
from application.services.certificate_code_service import CertificateCodeService
from application.services.code_purchase_service import CodeBatchPurchaseOrchestrator
from application.services.discount_service import DiscountService
from application.services.manual_payment_service import ManualPaymentApprovalWorkflow
from application.services.payment_event_service import PaymentEventHandler
from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from application.services.transfer_service import TransferRetryManager
from infrastructure.events import CeleryEventPublisher, CeleryTaskScheduler
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.storage import get_receipt_storage
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def build_payment_service() -> PaymentService:
    return PaymentService(get_payment_gateway())


def build_purchase_orchestrator(
    payment_service: Optional[PaymentService] = None,
    receipt_storage: Optional[ReceiptStorage] = None,
) -> CodeBatchPurchaseOrchestrator:
    return CodeBatchPurchaseOrchestrator(
        uow_factory=SQLAlchemyUnitOfWork,
        payment_service=payment_service or build_payment_service(),
        publisher=CeleryEventPublisher(),
        scheduler=CeleryTaskScheduler(),
        receipt_storage=receipt_storage or get_receipt_storage(),
    )


def build_manual_payment_workflow() -> ManualPaymentApprovalWorkflow:
    return ManualPaymentApprovalWorkflow(
        uow_factory=SQLAlchemyUnitOfWork,
        publisher=CeleryEventPublisher(),
        scheduler=CeleryTaskScheduler(),
    )


def build_transfer_manager(payment_service: Optional[PaymentService] = None) -> TransferRetryManager:
    return TransferRetryManager(
        uow_factory=SQLAlchemyUnitOfWork,
        payment_service=payment_service or build_payment_service(),
        publisher=CeleryEventPublisher(),
        scheduler=CeleryTaskScheduler(),
    )


def build_payment_event_handler(payment_service: Optional[PaymentService] = None) -> PaymentEventHandler:
    payment_service = payment_service or build_payment_service()
    return PaymentEventHandler(
        uow_factory=SQLAlchemyUnitOfWork,
        payment_service=payment_service,
        orchestrator=build_purchase_orchestrator(payment_service),
    )


def build_settlement_service() -> SettlementService:
    return SettlementService(uow_factory=SQLAlchemyUnitOfWork)


def build_certificate_code_service() -> CertificateCodeService:
    return CertificateCodeService(uow_factory=SQLAlchemyUnitOfWork)


def build_discount_service() -> DiscountService:
    return DiscountService(uow_factory=SQLAlchemyUnitOfWork)
