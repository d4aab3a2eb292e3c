"""
人工付款审核应用服务

审核通过：生成兑换码、交易置为完成、写入分账记录、安排转账；
驳回：批次终态 rejected，交易置为失败，归还预占的折扣码名额。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, List, Optional

from application.dto import ApprovalResultDTO
from application.ports.events import EventPublisher, TaskScheduler
from core.config import settings
from core.logging_config import get_logger
from domain.code_batch.entity import BatchPaymentStatus, CodeBatch, PaymentMethod
from domain.code_batch.events import ManualPaymentApproved, ManualPaymentRejected
from domain.code_batch.service import CodeGenerator, CodeMintingService
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    AmountMismatchException,
    BatchNotFoundException,
    BatchNotPendingException,
    DomainValidationException,
    ForbiddenException,
    NotManualPaymentException,
)
from domain.common.money import amounts_match
from domain.common.party import Actor, PartyRef
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.discount.service import DiscountEngine
from domain.ledger.entity import TransactionStatus
from domain.ledger.service import CommissionSettlementEngine


logger = get_logger(__name__)


class ManualPaymentApprovalWorkflow:
    """人工付款审核"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: EventPublisher,
        scheduler: TaskScheduler,
        *,
        code_generator: Optional[CodeGenerator] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._scheduler = scheduler
        self._code_generator = code_generator or CodeGenerator(length=settings.purchase.code_length)
        self._commission = CommissionSettlementEngine()

    async def _load_pending_batch(self, uow: AbstractUnitOfWork, batch_id: int, actor: Actor) -> CodeBatch:
        batch = await uow.batch_repository.get_by_id(batch_id, for_update=True)
        if batch is None:
            raise BatchNotFoundException(batch_id)
        if not actor.acts_for(PartyRef.acc(batch.acc_id)):
            raise ForbiddenException("Only the owning ACC or a group admin can review this batch")
        if batch.payment_method != PaymentMethod.MANUAL_PAYMENT:
            raise NotManualPaymentException(batch_id, batch.payment_method.value)
        if not batch.is_pending:
            raise BatchNotPendingException(batch_id, batch.payment_status.value)
        return batch

    async def list_pending(self, actor: Actor, acc_id: Optional[int] = None) -> List[CodeBatch]:
        """待审核批次；ACC 用户只能看到自己的"""
        if not actor.is_group_admin:
            acc_id = actor.party.party_id
        async with self._uow_factory(readonly=True) as uow:
            return await uow.batch_repository.list_pending_manual(acc_id=acc_id)

    async def approve(self, batch_id: int, claimed_amount: Decimal, actor: Actor) -> ApprovalResultDTO:
        events: List[DomainEvent] = []
        transaction_id = None
        async with self._uow_factory() as uow:
            batch = await self._load_pending_batch(uow, batch_id, actor)
            if not amounts_match(batch.final_amount, claimed_amount, settings.purchase.amount_tolerance):
                raise AmountMismatchException(batch.final_amount, claimed_amount)

            batch.approve(actor.user_id)
            verified_at = batch.verified_at
            if not await uow.batch_repository.transition_status(
                batch_id,
                BatchPaymentStatus.PENDING,
                batch.payment_status,
                verified_by=batch.verified_by,
                verified_at=verified_at,
            ):
                # 并发审核：另一个请求已处理该批次
                raise BatchNotPendingException(batch_id, BatchPaymentStatus.APPROVED.value)

            codes = await CodeMintingService(
                uow.code_repository,
                generator=self._code_generator,
                max_attempts=settings.purchase.code_generation_max_attempts,
            ).mint(batch, purchased_at=verified_at)

            if batch.transaction_id is not None:
                transaction = await uow.transaction_repository.get_by_id(batch.transaction_id, for_update=True)
                if transaction is None or transaction.status != TransactionStatus.PENDING:
                    raise DomainValidationException("批次关联的交易状态异常", field="transaction_id")
                transaction.mark_completed()
                transaction = await uow.transaction_repository.update(transaction)
                transaction_id = transaction.id

                acc = await uow.tenant_repository.get_acc(batch.acc_id)
                await uow.ledger_repository.create(
                    self._commission.build_ledger_entry(
                        transaction,
                        batch.acc_id,
                        acc.commission_percentage,
                        training_center_id=batch.training_center_id,
                    )
                )

            training_center = await uow.tenant_repository.get_training_center(batch.training_center_id)
            events.append(
                ManualPaymentApproved(
                    batch_id=batch.id,
                    training_center_id=batch.training_center_id,
                    acc_id=batch.acc_id,
                    quantity=batch.quantity,
                    amount=str(batch.final_amount),
                    verified_by=actor.user_id,
                    training_center_user_id=training_center.user_id if training_center else None,
                )
            )

        logger.info(
            "manual_payment_approved",
            batch_id=batch_id,
            acc_id=batch.acc_id,
            verified_by=actor.user_id,
            codes=len(codes),
            transaction_id=transaction_id,
        )
        self._publisher.publish(events)
        if transaction_id is not None:
            self._scheduler.schedule_transfer_for_transaction(transaction_id)
        return ApprovalResultDTO(
            batch_id=batch_id,
            payment_status=BatchPaymentStatus.APPROVED.value,
            codes_count=len(codes),
            transaction_id=transaction_id,
            verified_by=actor.user_id,
            verified_at=verified_at,
        )

    async def reject(self, batch_id: int, reason: str, actor: Actor) -> ApprovalResultDTO:
        reason = (reason or "").strip()
        if not reason:
            raise DomainValidationException("驳回原因不能为空", field="rejection_reason")

        events: List[DomainEvent] = []
        async with self._uow_factory() as uow:
            batch = await self._load_pending_batch(uow, batch_id, actor)
            batch.reject(reason, actor.user_id)
            verified_at = batch.verified_at
            if not await uow.batch_repository.transition_status(
                batch_id,
                BatchPaymentStatus.PENDING,
                batch.payment_status,
                rejection_reason=batch.rejection_reason,
                verified_by=batch.verified_by,
                verified_at=verified_at,
            ):
                raise BatchNotPendingException(batch_id, BatchPaymentStatus.REJECTED.value)

            if batch.transaction_id is not None:
                transaction = await uow.transaction_repository.get_by_id(batch.transaction_id, for_update=True)
                if transaction is None or transaction.status != TransactionStatus.PENDING:
                    raise DomainValidationException("批次关联的交易状态异常", field="transaction_id")
                transaction.mark_failed(reason)
                await uow.transaction_repository.transition_status(
                    transaction.id,
                    TransactionStatus.PENDING,
                    transaction.status,
                    failure_reason=transaction.failure_reason,
                )
            if batch.discount_code_id is not None:
                await DiscountEngine(uow.discount_repository).release(batch.discount_code_id)

            training_center = await uow.tenant_repository.get_training_center(batch.training_center_id)
            events.append(
                ManualPaymentRejected(
                    batch_id=batch.id,
                    training_center_id=batch.training_center_id,
                    acc_id=batch.acc_id,
                    reason=reason,
                    verified_by=actor.user_id,
                    training_center_user_id=training_center.user_id if training_center else None,
                )
            )

        logger.info("manual_payment_rejected", batch_id=batch_id, acc_id=batch.acc_id, verified_by=actor.user_id)
        self._publisher.publish(events)
        return ApprovalResultDTO(
            batch_id=batch_id,
            payment_status=BatchPaymentStatus.REJECTED.value,
            verified_by=actor.user_id,
            verified_at=verified_at,
            rejection_reason=reason,
        )
