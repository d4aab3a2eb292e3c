"""
ACC 转账与失败重试应用服务

只有 standard 支付（平台先收款）的交易需要转账；destination charge 已由渠道直接分账。
每次网关调用都带 transfer_{id}_{transaction_id} 幂等键，重复调用不会重复打款。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from application.dtos.payments import TransferRequest, TransferResult
from application.ports.events import EventPublisher, TaskScheduler
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.settings import TransferSettings, payment_settings
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    BusinessException,
    ForbiddenException,
    GatewayException,
    TransactionNotFoundException,
    TransferInProgressException,
    TransferNotEligibleException,
    TransferNotFoundException,
    TransferNotRetryableException,
)
from domain.common.party import Actor, PartyType
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import PaymentType, TransactionStatus, TransactionType
from domain.transfer.entity import Transfer, TransferStatus
from domain.transfer.events import TransferAwaitingAccount, TransferCompleted, TransferFailed
from domain.transfer.service import BackoffMode, RetryBackoff


logger = get_logger(__name__)


class TransferRetryManager:
    """ACC 净额转账：创建、首次执行、失败重试与到期巡检"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payment_service: PaymentService,
        publisher: EventPublisher,
        scheduler: TaskScheduler,
        *,
        transfer_settings: Optional[TransferSettings] = None,
    ):
        self._uow_factory = uow_factory
        self._payments = payment_service
        self._publisher = publisher
        self._scheduler = scheduler
        self._settings = transfer_settings or payment_settings.transfers
        self.backoff = RetryBackoff(
            mode=BackoffMode(self._settings.backoff),
            base_delay_seconds=self._settings.base_delay_seconds,
            max_delay_seconds=self._settings.max_delay_seconds,
        )

    async def get(self, transfer_id: int) -> Transfer:
        async with self._uow_factory(readonly=True) as uow:
            transfer = await uow.transfer_repository.get_by_id(transfer_id)
        if transfer is None:
            raise TransferNotFoundException(transfer_id)
        return transfer

    async def create_for_transaction(self, transaction_id: int) -> Optional[Transfer]:
        """
        为已完成的采购交易创建转账记录并立即执行

        已存在进行中/已完成的转账时直接返回；destination charge 或净额为0时不需要转账，返回 None。
        """
        events: List[DomainEvent] = []
        async with self._uow_factory() as uow:
            transaction = await uow.transaction_repository.get_by_id(transaction_id)
            if transaction is None:
                raise TransactionNotFoundException(transaction_id)
            if transaction.transaction_type != TransactionType.CODE_PURCHASE:
                raise TransferNotEligibleException(transaction_id, "not a code purchase")
            if transaction.status != TransactionStatus.COMPLETED:
                raise TransferNotEligibleException(transaction_id, f"transaction is {transaction.status.value}")
            if transaction.payment_type == PaymentType.DESTINATION_CHARGE:
                logger.info("transfer_skipped_destination_charge", transaction_id=transaction_id)
                return None

            for existing in await uow.transfer_repository.list_by_transaction(transaction_id):
                # 失败但仍可重试的记录交给重试流程，避免同一交易并存两笔待打款
                if existing.status != TransferStatus.FAILED or existing.can_retry():
                    logger.info(
                        "transfer_already_exists",
                        transaction_id=transaction_id,
                        transfer_id=existing.id,
                        status=existing.status.value,
                    )
                    return existing

            entry = await uow.ledger_repository.get_by_transaction(transaction_id)
            if entry is None:
                raise TransferNotEligibleException(transaction_id, "commission ledger entry missing")
            if entry.acc_commission_amount <= 0:
                logger.info("transfer_skipped_zero_net", transaction_id=transaction_id)
                return None
            if transaction.payee.party_type != PartyType.ACC:
                raise TransferNotEligibleException(transaction_id, "payee is not an ACC")

            acc = await uow.tenant_repository.get_acc(transaction.payee.party_id)
            transfer = await uow.transfer_repository.create(
                Transfer(
                    id=None,
                    transaction_id=transaction_id,
                    payee=transaction.payee,
                    gross_amount=transaction.amount,
                    commission_amount=entry.group_commission_amount,
                    net_amount=entry.acc_commission_amount,
                    currency=transaction.currency,
                    max_retries=self._settings.max_retries,
                    stripe_account_id=acc.stripe_account_id if acc else None,
                    error_message=None if acc and acc.stripe_account_id else "payee has no connected account",
                )
            )
            if not transfer.can_execute:
                events.append(
                    TransferAwaitingAccount(
                        transfer_id=transfer.id,
                        transaction_id=transaction_id,
                        payee=str(transfer.payee),
                        net_amount=str(transfer.net_amount),
                    )
                )

        logger.info(
            "transfer_created",
            transfer_id=transfer.id,
            transaction_id=transaction_id,
            net_amount=str(transfer.net_amount),
            awaiting_account=not transfer.can_execute,
        )
        if events:
            self._publisher.publish(events)
            return transfer
        return await self.execute(transfer.id)

    async def execute(self, transfer_id: int) -> Transfer:
        """首次执行 pending 转账；已完成/已失败的直接返回当前状态"""
        async with self._uow_factory() as uow:
            transfer = await uow.transfer_repository.get_by_id(transfer_id, for_update=True)
            if transfer is None:
                raise TransferNotFoundException(transfer_id)
            if transfer.status in (TransferStatus.PROCESSING, TransferStatus.RETRYING):
                raise TransferInProgressException(transfer_id)
            if transfer.status != TransferStatus.PENDING:
                return transfer
            await self._refresh_account(uow, transfer)
            transfer.mark_processing()
            if not await uow.transfer_repository.transition_status(
                transfer_id,
                TransferStatus.PENDING,
                transfer.status,
                processed_at=transfer.processed_at,
                stripe_account_id=transfer.stripe_account_id,
            ):
                raise TransferInProgressException(transfer_id)
        return await self._attempt(transfer_id)

    async def retry(self, transfer_id: int, actor: Optional[Actor] = None) -> Transfer:
        """
        重试失败的转账

        仅 failed 且 retry_count < max_retries 时允许；否则抛出 TransferNotRetryableException，不调用网关。
        """
        if actor is not None and not actor.is_group_admin:
            raise ForbiddenException("Only group admins can retry transfers")

        async with self._uow_factory() as uow:
            transfer = await uow.transfer_repository.get_by_id(transfer_id, for_update=True)
            if transfer is None:
                raise TransferNotFoundException(transfer_id)
            if transfer.status in (TransferStatus.PROCESSING, TransferStatus.RETRYING):
                raise TransferInProgressException(transfer_id)
            if not transfer.can_retry():
                raise TransferNotRetryableException(
                    transfer_id, transfer.status.value, transfer.retry_count, transfer.max_retries
                )
            await self._refresh_account(uow, transfer)
            transfer.mark_retrying()
            if not await uow.transfer_repository.transition_status(
                transfer_id,
                TransferStatus.FAILED,
                transfer.status,
                next_retry_at=None,
            ):
                raise TransferInProgressException(transfer_id)
            transfer.mark_processing()
            if not await uow.transfer_repository.transition_status(
                transfer_id,
                TransferStatus.RETRYING,
                transfer.status,
                processed_at=transfer.processed_at,
                stripe_account_id=transfer.stripe_account_id,
            ):
                raise TransferInProgressException(transfer_id)

        logger.info(
            "transfer_retry_started",
            transfer_id=transfer_id,
            retry_count=transfer.retry_count,
            max_retries=transfer.max_retries,
            manual=actor is not None,
        )
        return await self._attempt(transfer_id)

    async def retry_due(self, now: Optional[datetime] = None) -> int:
        """巡检到期的失败转账并重试，返回尝试次数"""
        now = now or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            due = await uow.transfer_repository.list_due_for_retry(now, limit=self._settings.sweep_batch_size)

        attempted = 0
        for transfer in due:
            try:
                await self.retry(transfer.id)
                attempted += 1
            except (TransferInProgressException, TransferNotRetryableException) as exc:
                logger.info("transfer_retry_skipped", transfer_id=transfer.id, reason=exc.message)
            except BusinessException as exc:
                logger.warning("transfer_retry_sweep_error", transfer_id=transfer.id, error=exc.message)
        logger.info("transfer_retry_sweep_done", due=len(due), attempted=attempted)
        return attempted

    async def recover_stale(self, now: Optional[datetime] = None) -> int:
        """
        回收卡在 processing 的转账，返回回收条数

        进程在网关调用前后中断时结果不会落库；超过 stale_processing_seconds 的尝试按一次失败
        计数（retry_count + 1），之后由 retry_due 按退避重试。幂等键保证渠道侧已成功的转账
        重试时不会重复打款。
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self._settings.stale_processing_seconds)
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.transfer_repository.list_stale_processing(
                cutoff, limit=self._settings.sweep_batch_size
            )

        events: List[DomainEvent] = []
        for candidate in stale:
            async with self._uow_factory() as uow:
                transfer = await uow.transfer_repository.get_by_id(candidate.id, for_update=True)
                if transfer is None or transfer.status != TransferStatus.PROCESSING:
                    continue
                if transfer.processed_at is not None and transfer.processed_at >= cutoff:
                    continue
                transfer.mark_failed(
                    "transfer attempt did not finish",
                    self.backoff.next_attempt_at(now, transfer.retry_count + 1),
                )
                if not await uow.transfer_repository.transition_status(
                    transfer.id,
                    TransferStatus.PROCESSING,
                    transfer.status,
                    retry_count=transfer.retry_count,
                    error_message=transfer.error_message,
                    failed_at=transfer.failed_at,
                    next_retry_at=transfer.next_retry_at,
                ):
                    continue
            events.append(
                TransferFailed(
                    transfer_id=transfer.id,
                    transaction_id=transfer.transaction_id,
                    payee=str(transfer.payee),
                    retry_count=transfer.retry_count,
                    max_retries=transfer.max_retries,
                    error_message=transfer.error_message,
                    final=not transfer.can_retry(),
                )
            )
            logger.warning(
                "transfer_processing_stalled",
                transfer_id=transfer.id,
                transaction_id=transfer.transaction_id,
                retry_count=transfer.retry_count,
                next_retry_at=transfer.next_retry_at.isoformat() if transfer.next_retry_at else None,
            )

        logger.info("transfer_stale_sweep_done", stale=len(stale), recovered=len(events))
        self._publisher.publish(events)
        return len(events)

    async def _refresh_account(self, uow: AbstractUnitOfWork, transfer: Transfer) -> None:
        """收款方完成开户后补齐账户；仍无账户则不可执行"""
        if transfer.stripe_account_id:
            return
        acc = await uow.tenant_repository.get_acc(transfer.payee.party_id)
        if acc is None or not acc.stripe_account_id:
            raise TransferNotEligibleException(transfer.transaction_id, "payee has no connected account")
        transfer.stripe_account_id = acc.stripe_account_id

    async def _attempt(self, transfer_id: int) -> Transfer:
        async with self._uow_factory(readonly=True) as uow:
            transfer = await uow.transfer_repository.get_by_id(transfer_id)

        request = TransferRequest(
            destination_account=transfer.stripe_account_id,
            amount=transfer.net_amount,
            currency=transfer.currency,
            idempotency_key=transfer.idempotency_key,
            description=f"Code purchase payout (transaction {transfer.transaction_id})",
            metadata={
                "transfer_id": str(transfer.id),
                "transaction_id": str(transfer.transaction_id),
                "payee": str(transfer.payee),
            },
        )
        try:
            result = await self._payments.create_transfer(request)
        except GatewayException as exc:
            result = TransferResult(success=False, error=exc.message, recoverable=exc.recoverable)

        events: List[DomainEvent] = []
        delay: Optional[int] = None
        async with self._uow_factory() as uow:
            transfer = await uow.transfer_repository.get_by_id(transfer_id, for_update=True)
            now = datetime.now(timezone.utc)
            if transfer.status != TransferStatus.PROCESSING:
                # 已被 recover_stale 记为失败，结果交给下一次重试（同一幂等键）
                logger.warning(
                    "transfer_attempt_outcome_discarded",
                    transfer_id=transfer_id,
                    status=transfer.status.value,
                    success=result.success,
                )
                return transfer
            if result.success:
                transfer.mark_completed(result.transfer_id)
                events.append(
                    TransferCompleted(
                        transfer_id=transfer.id,
                        transaction_id=transfer.transaction_id,
                        payee=str(transfer.payee),
                        net_amount=str(transfer.net_amount),
                        stripe_transfer_id=result.transfer_id,
                    )
                )
            else:
                delay = self.backoff.delay_for(transfer.retry_count + 1)
                transfer.mark_failed(result.error or "transfer failed", self.backoff.next_attempt_at(now, transfer.retry_count + 1))
                if not transfer.can_retry():
                    delay = None
                events.append(
                    TransferFailed(
                        transfer_id=transfer.id,
                        transaction_id=transfer.transaction_id,
                        payee=str(transfer.payee),
                        retry_count=transfer.retry_count,
                        max_retries=transfer.max_retries,
                        error_message=transfer.error_message,
                        final=delay is None,
                        next_retry_in_seconds=delay,
                    )
                )
            transfer = await uow.transfer_repository.update(transfer)

        if result.success:
            logger.info(
                "transfer_completed",
                transfer_id=transfer.id,
                transaction_id=transfer.transaction_id,
                stripe_transfer_id=result.transfer_id,
            )
        else:
            logger.warning(
                "transfer_failed",
                transfer_id=transfer.id,
                transaction_id=transfer.transaction_id,
                retry_count=transfer.retry_count,
                max_retries=transfer.max_retries,
                next_retry_in_seconds=delay,
                error=transfer.error_message,
            )
            if delay is not None:
                self._scheduler.schedule_transfer_retry(transfer.id, countdown=delay)
        self._publisher.publish(events)
        return transfer
