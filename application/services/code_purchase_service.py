"""
兑换码批量采购应用服务（application/services）

流程：校验采购资格 → 计算价格 → 创建支付意图 → 确认付款后在同一事务内
生成批次、兑换码、交易与分账记录；人工付款则只落库待审核批次。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from application.dto import (
    PaymentIntentResultDTO,
    PriceCalculation,
    PurchaseQuoteDTO,
    PurchaseRequestDTO,
    PurchaseResultDTO,
    PurchaseValidation,
    ReceiptUpload,
)
from application.dtos.payments import CreatePayment, PaymentIntent, QueryPayment, RefundRequest
from application.ports.events import EventPublisher, TaskScheduler
from application.ports.storage import ReceiptStorage, StoredFile
from application.services.payment_service import PaymentService
from core.config import settings
from core.logging_config import get_logger
from domain.code_batch.entity import BatchPaymentStatus, CodeBatch, PaymentMethod
from domain.code_batch.events import CodePurchaseCompleted, ManualPaymentSubmitted
from domain.code_batch.service import CodeGenerator, CodeMintingService
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    AccInactiveException,
    AccNotFoundException,
    AmountMismatchException,
    CourseNotFoundException,
    DiscountInvalidException,
    DomainValidationException,
    ForbiddenException,
    NotAuthorizedForAccException,
    PaymentGatewayException,
    PaymentVerificationException,
    PurchaseAlreadyProcessedException,
    ReceiptRequiredException,
)
from domain.common.money import amounts_match, to_minor_units, to_money
from domain.common.party import Actor, PartyRef
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.discount.service import DiscountEngine
from domain.ledger.entity import PaymentType, Transaction, TransactionType
from domain.ledger.service import CommissionSettlementEngine
from domain.pricing.entity import CoursePricing
from domain.pricing.service import PricingResolver
from domain.tenant.entity import Acc


logger = get_logger(__name__)

TRANSACTION_TYPE_CODE_PURCHASE = TransactionType.CODE_PURCHASE.value
REFERENCE_TYPE_CODE_BATCH = "code_batch"


class CodeBatchPurchaseOrchestrator:
    """兑换码采购编排"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payment_service: PaymentService,
        publisher: EventPublisher,
        scheduler: TaskScheduler,
        receipt_storage: Optional[ReceiptStorage] = None,
        *,
        code_generator: Optional[CodeGenerator] = None,
    ):
        self._uow_factory = uow_factory
        self._payments = payment_service
        self._publisher = publisher
        self._scheduler = scheduler
        self._receipts = receipt_storage
        self._code_generator = code_generator or CodeGenerator(length=settings.purchase.code_length)
        self._commission = CommissionSettlementEngine()

    # ------------------------------------------------------------------
    # 校验与计价
    # ------------------------------------------------------------------

    async def _validate(
        self,
        uow: AbstractUnitOfWork,
        training_center_id: int,
        acc_id: int,
        course_id: int,
        at_time: datetime,
    ) -> PurchaseValidation:
        acc = await uow.tenant_repository.get_acc(acc_id)
        if acc is None:
            raise AccNotFoundException(acc_id)
        if not acc.is_active:
            raise AccInactiveException(acc_id, acc.status.value)

        training_center = await uow.tenant_repository.get_training_center(training_center_id)
        authorization = await uow.tenant_repository.get_authorization(training_center_id, acc_id)
        if training_center is None or authorization is None or not authorization.is_approved:
            raise NotAuthorizedForAccException(training_center_id, acc_id)

        course = await uow.tenant_repository.get_course(course_id)
        if course is None or course.acc_id != acc_id:
            raise CourseNotFoundException(course_id, acc_id)

        pricing = await PricingResolver(uow.pricing_repository).resolve(course_id, acc_id, at_time)
        return PurchaseValidation(acc=acc, training_center=training_center, course=course, pricing=pricing)

    async def validate_purchase_request(
        self,
        training_center_id: int,
        acc_id: int,
        course_id: int,
        at_time: Optional[datetime] = None,
    ) -> PurchaseValidation:
        """校验 ACC 状态、培训中心授权、课程归属与生效价格；失败抛出对应的 PolicyException"""
        at_time = at_time or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            return await self._validate(uow, training_center_id, acc_id, course_id, at_time)

    async def _calculate(
        self,
        uow: AbstractUnitOfWork,
        pricing: CoursePricing,
        quantity: int,
        discount_code: Optional[str],
        acc: Acc,
        course_id: int,
        at_time: datetime,
    ) -> PriceCalculation:
        if quantity < 1 or quantity > settings.purchase.max_quantity:
            raise DomainValidationException(
                f"购买数量必须在1到{settings.purchase.max_quantity}之间",
                field="quantity",
            )
        unit_price = to_money(pricing.base_price)
        total_amount = to_money(unit_price * quantity)

        discount_amount = Decimal("0.00")
        discount = None
        if discount_code:
            engine = DiscountEngine(uow.discount_repository)
            # 折扣码无效是硬错误，不静默忽略
            discount = await engine.require_valid(discount_code, acc.id, course_id, at_time)
            discount_amount = engine.compute_discount(total_amount, discount.discount_percentage)

        final_amount = max(total_amount - discount_amount, Decimal("0.00"))
        split = self._commission.split(final_amount, acc.commission_percentage)
        return PriceCalculation(
            unit_price=unit_price,
            quantity=quantity,
            total_amount=total_amount,
            discount_amount=discount_amount,
            final_amount=final_amount,
            currency=pricing.currency,
            commission_amount=split.group_amount,
            provider_amount=split.acc_amount,
            discount_code_id=discount.id if discount else None,
            discount_code=discount.code if discount else None,
            discount_percentage=discount.discount_percentage if discount else None,
        )

    async def calculate_price(
        self,
        pricing: CoursePricing,
        quantity: int,
        discount_code: Optional[str],
        acc: Acc,
        course_id: int,
        at_time: Optional[datetime] = None,
    ) -> PriceCalculation:
        at_time = at_time or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            return await self._calculate(uow, pricing, quantity, discount_code, acc, course_id, at_time)

    async def quote(
        self,
        training_center_id: int,
        request: PurchaseQuoteDTO,
        at_time: Optional[datetime] = None,
    ) -> tuple[PurchaseValidation, PriceCalculation]:
        """校验 + 计价（同一只读会话）"""
        at_time = at_time or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            validation = await self._validate(
                uow, training_center_id, request.acc_id, request.course_id, at_time
            )
            price = await self._calculate(
                uow,
                validation.pricing,
                request.quantity,
                request.discount_code,
                validation.acc,
                request.course_id,
                at_time,
            )
        return validation, price

    # ------------------------------------------------------------------
    # 支付意图
    # ------------------------------------------------------------------

    @staticmethod
    def _intent_metadata(validation: PurchaseValidation, price: PriceCalculation, payment_type: PaymentType) -> dict:
        return {
            "transaction_type": TRANSACTION_TYPE_CODE_PURCHASE,
            "payer_type": PartyRef.training_center(validation.training_center.id).party_type.value,
            "payer_id": str(validation.training_center.id),
            "payee_type": PartyRef.acc(validation.acc.id).party_type.value,
            "payee_id": str(validation.acc.id),
            "course_id": str(validation.course.id),
            "quantity": str(price.quantity),
            "discount_code": price.discount_code or "",
            "discount_code_id": str(price.discount_code_id or ""),
            "unit_price": str(price.unit_price),
            "total_amount": str(price.total_amount),
            "discount_amount": str(price.discount_amount),
            "final_amount": str(price.final_amount),
            "commission_amount": str(price.commission_amount),
            "provider_amount": str(price.provider_amount),
            "payment_type": payment_type.value,
        }

    async def create_payment_intent(
        self,
        validation: PurchaseValidation,
        price: PriceCalculation,
        actor: Actor,
    ) -> PaymentIntentResultDTO:
        """
        创建刷卡支付意图，不落库

        ACC 已绑定收款账户且佣金大于0时使用 destination charge，失败则回退为普通支付意图。
        """
        self._ensure_actor_for_training_center(actor, validation.training_center.id)
        if price.final_amount <= 0:
            raise DomainValidationException("应付金额为0的采购请使用人工付款提交", field="final_amount")

        acc = validation.acc
        reference = f"codes-{validation.training_center.id}-{validation.course.id}-{uuid.uuid4().hex[:12]}"
        intent: Optional[PaymentIntent] = None
        payment_type = PaymentType.STANDARD

        if acc.has_connected_account and price.commission_amount > 0:
            try:
                intent = await self._payments.create_payment(
                    CreatePayment(
                        reference=reference,
                        amount=price.final_amount,
                        currency=price.currency,
                        description=f"Certificate codes x{price.quantity}",
                        destination_account=acc.stripe_account_id,
                        application_fee_amount=price.commission_amount,
                        metadata=self._intent_metadata(validation, price, PaymentType.DESTINATION_CHARGE),
                    )
                )
                payment_type = PaymentType.DESTINATION_CHARGE
            except PaymentGatewayException as exc:
                logger.warning(
                    "destination_charge_fallback",
                    acc_id=acc.id,
                    training_center_id=validation.training_center.id,
                    error=exc.message,
                )

        if intent is None:
            intent = await self._payments.create_payment(
                CreatePayment(
                    reference=reference,
                    amount=price.final_amount,
                    currency=price.currency,
                    description=f"Certificate codes x{price.quantity}",
                    metadata=self._intent_metadata(validation, price, PaymentType.STANDARD),
                )
            )

        logger.info(
            "code_purchase_intent_created",
            payment_intent_id=intent.intent_id,
            training_center_id=validation.training_center.id,
            acc_id=acc.id,
            amount=str(price.final_amount),
            payment_type=payment_type.value,
        )
        return PaymentIntentResultDTO(
            client_secret=intent.client_secret,
            payment_intent_id=intent.intent_id,
            amount=price.final_amount,
            currency=price.currency,
            commission_amount=price.commission_amount,
            provider_amount=price.provider_amount,
            payment_type=payment_type.value,
        )

    # ------------------------------------------------------------------
    # 提交采购
    # ------------------------------------------------------------------

    async def purchase(
        self,
        actor: Actor,
        training_center_id: int,
        request: PurchaseRequestDTO,
        receipt: Optional[ReceiptUpload] = None,
    ) -> PurchaseResultDTO:
        validation, price = await self.quote(training_center_id, request)
        return await self.process_purchase(request, validation, price, actor, receipt=receipt)

    async def process_purchase(
        self,
        request: PurchaseRequestDTO,
        validation: PurchaseValidation,
        price: PriceCalculation,
        actor: Actor,
        *,
        receipt: Optional[ReceiptUpload] = None,
    ) -> PurchaseResultDTO:
        self._ensure_actor_for_training_center(actor, validation.training_center.id)
        if request.payment_method == PaymentMethod.CREDIT_CARD:
            return await self._process_card(request, validation, price, actor)
        return await self._process_manual(request, validation, price, actor, receipt)

    async def _process_card(
        self,
        request: PurchaseRequestDTO,
        validation: PurchaseValidation,
        price: PriceCalculation,
        actor: Actor,
    ) -> PurchaseResultDTO:
        intent_id = request.payment_intent_id
        if not intent_id:
            raise DomainValidationException("刷卡付款必须提供 payment_intent_id", field="payment_intent_id")
        if price.final_amount <= 0:
            raise DomainValidationException("应付金额为0的采购请使用人工付款提交", field="final_amount")

        # 不信任客户端的成功声明，事务开启前向渠道重新查询
        intent = await self._payments.query_payment(QueryPayment(intent_id=intent_id))
        self._verify_intent(intent, validation, price)
        payment_type = PaymentType(intent.metadata.get("payment_type") or PaymentType.STANDARD.value)

        events: List[DomainEvent] = []
        try:
            batch, transaction, codes = await self._record_card_purchase(
                validation, price, actor, intent_id, payment_type, events
            )
        except DiscountInvalidException as exc:
            # 款项已被渠道扣收，折扣名额却已用尽：全额退款并留下失败交易
            await self._refund_unredeemable_payment(intent_id, validation, price, payment_type, exc)
            raise

        logger.info(
            "code_purchase_completed",
            batch_id=batch.id,
            transaction_id=transaction.id,
            payment_intent_id=intent_id,
            quantity=batch.quantity,
            amount=str(batch.final_amount),
            payment_type=payment_type.value,
        )
        self._publisher.publish(events)
        if payment_type == PaymentType.STANDARD:
            self._scheduler.schedule_transfer_for_transaction(transaction.id)
        return PurchaseResultDTO.from_batch(batch, [c.code for c in codes])

    async def _record_card_purchase(
        self,
        validation: PurchaseValidation,
        price: PriceCalculation,
        actor: Actor,
        intent_id: str,
        payment_type: PaymentType,
        events: List[DomainEvent],
    ) -> tuple[CodeBatch, Transaction, list]:
        """同一事务内：扣减折扣名额、生成批次与兑换码、完成交易并记账"""
        async with self._uow_factory() as uow:
            if await uow.transaction_repository.get_by_gateway_id(intent_id) is not None:
                raise PurchaseAlreadyProcessedException(intent_id)

            if price.discount_code_id:
                discount = await uow.discount_repository.get_by_id(price.discount_code_id)
                if discount is not None:
                    await DiscountEngine(uow.discount_repository).consume(discount)

            batch = await uow.batch_repository.create(
                self._new_batch(validation, price, PaymentMethod.CREDIT_CARD, actor, payment_intent_id=intent_id)
            )
            transaction = await uow.transaction_repository.create(
                self._new_transaction(validation, price, batch, PaymentMethod.CREDIT_CARD, payment_type, intent_id)
            )
            codes = await self._minting_service(uow).mint(batch)

            transaction.mark_completed(intent_id)
            transaction = await uow.transaction_repository.update(transaction)
            batch.mark_completed(transaction.id)
            if not await uow.batch_repository.transition_status(
                batch.id,
                BatchPaymentStatus.PENDING,
                batch.payment_status,
                transaction_id=transaction.id,
            ):
                raise PurchaseAlreadyProcessedException(intent_id)

            entry = self._commission.build_ledger_entry(
                transaction,
                validation.acc.id,
                validation.acc.commission_percentage,
                training_center_id=validation.training_center.id,
            )
            await uow.ledger_repository.create(entry)

            events.append(
                CodePurchaseCompleted(
                    batch_id=batch.id,
                    transaction_id=transaction.id,
                    training_center_id=batch.training_center_id,
                    acc_id=batch.acc_id,
                    course_id=batch.course_id,
                    quantity=batch.quantity,
                    amount=str(batch.final_amount),
                    payment_method=batch.payment_method.value,
                )
            )
        return batch, transaction, codes

    async def _refund_unredeemable_payment(
        self,
        intent_id: str,
        validation: PurchaseValidation,
        price: PriceCalculation,
        payment_type: PaymentType,
        exc: DiscountInvalidException,
    ) -> None:
        """
        已扣款但无法发放兑换码时的补偿

        先全额退款（幂等键由支付意图决定，重复投递不会重复退款），再以支付意图号
        落一条 failed 交易，之后的重复确认按“已处理”短路。
        """
        refund = await self._payments.refund(
            RefundRequest(
                intent_id=intent_id,
                currency=price.currency,
                reason=f"discount_{exc.discount_reason}",
            )
        )
        transaction = self._new_transaction(
            validation, price, None, PaymentMethod.CREDIT_CARD, payment_type, intent_id
        )
        transaction.mark_failed(f"discount_{exc.discount_reason}; refunded {refund.refund_id}")
        try:
            async with self._uow_factory() as uow:
                transaction = await uow.transaction_repository.create(transaction)
        except PurchaseAlreadyProcessedException:
            logger.info("unredeemable_payment_already_recorded", payment_intent_id=intent_id)
            return
        logger.warning(
            "card_payment_refunded_discount_unavailable",
            payment_intent_id=intent_id,
            transaction_id=transaction.id,
            refund_id=refund.refund_id,
            discount_code=price.discount_code,
            discount_reason=exc.discount_reason,
            amount=str(price.final_amount),
        )

    async def _process_manual(
        self,
        request: PurchaseRequestDTO,
        validation: PurchaseValidation,
        price: PriceCalculation,
        actor: Actor,
        receipt: Optional[ReceiptUpload],
    ) -> PurchaseResultDTO:
        if request.payment_amount is None:
            raise DomainValidationException("人工付款必须填写付款金额", field="payment_amount")
        if not amounts_match(price.final_amount, request.payment_amount, settings.purchase.amount_tolerance):
            raise AmountMismatchException(price.final_amount, request.payment_amount)
        if receipt is None or not receipt.data:
            raise ReceiptRequiredException()
        if self._receipts is None:
            raise RuntimeError("Receipt storage is not configured")

        # 凭证在事务外上传；事务失败时删除，避免孤立文件
        stored: StoredFile = await self._receipts.save(receipt.data, receipt.filename, receipt.content_type)
        events: List[DomainEvent] = []
        try:
            async with self._uow_factory() as uow:
                if price.discount_code_id:
                    discount = await uow.discount_repository.get_by_id(price.discount_code_id)
                    if discount is not None:
                        # 提交时预占名额，驳回时归还
                        await DiscountEngine(uow.discount_repository).consume(discount)

                batch = self._new_batch(validation, price, PaymentMethod.MANUAL_PAYMENT, actor)
                batch.payment_receipt_url = stored.url
                batch.payment_amount = to_money(request.payment_amount)
                batch = await uow.batch_repository.create(batch)

                if batch.final_amount > 0:
                    transaction = await uow.transaction_repository.create(
                        self._new_transaction(
                            validation, price, batch, PaymentMethod.MANUAL_PAYMENT, PaymentType.STANDARD, None
                        )
                    )
                    batch.transaction_id = transaction.id
                    batch = await uow.batch_repository.update(batch)

                events.append(
                    ManualPaymentSubmitted(
                        batch_id=batch.id,
                        training_center_id=batch.training_center_id,
                        acc_id=batch.acc_id,
                        quantity=batch.quantity,
                        amount=str(batch.final_amount),
                    )
                )
        except Exception:
            await self._receipts.delete(stored.key)
            raise

        logger.info(
            "manual_payment_submitted",
            batch_id=batch.id,
            training_center_id=batch.training_center_id,
            acc_id=batch.acc_id,
            amount=str(batch.final_amount),
        )
        self._publisher.publish(events)
        return PurchaseResultDTO.from_batch(batch)

    async def confirm_card_payment(self, payment_intent_id: str) -> Optional[PurchaseResultDTO]:
        """
        渠道回调确认支付成功

        已有对应交易时为空操作；否则根据支付意图元数据重建采购请求，走刷卡确认流程。
        """
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.transaction_repository.get_by_gateway_id(payment_intent_id)
        if existing is not None:
            logger.info("card_payment_already_confirmed", payment_intent_id=payment_intent_id)
            return None

        intent = await self._payments.query_payment(QueryPayment(intent_id=payment_intent_id))
        meta = intent.metadata
        if meta.get("transaction_type") != TRANSACTION_TYPE_CODE_PURCHASE:
            logger.info(
                "card_payment_not_code_purchase",
                payment_intent_id=payment_intent_id,
                transaction_type=meta.get("transaction_type"),
            )
            return None
        try:
            training_center_id = int(meta["payer_id"])
            request = PurchaseRequestDTO(
                acc_id=int(meta["payee_id"]),
                course_id=int(meta["course_id"]),
                quantity=int(meta["quantity"]),
                discount_code=meta.get("discount_code") or None,
                payment_method=PaymentMethod.CREDIT_CARD,
                payment_intent_id=payment_intent_id,
            )
            price = PriceCalculation(
                unit_price=Decimal(meta["unit_price"]),
                quantity=int(meta["quantity"]),
                total_amount=Decimal(meta["total_amount"]),
                discount_amount=Decimal(meta["discount_amount"]),
                final_amount=Decimal(meta["final_amount"]),
                currency=(intent.currency or settings.purchase.default_currency).upper(),
                commission_amount=Decimal(meta["commission_amount"]),
                provider_amount=Decimal(meta["provider_amount"]),
                discount_code_id=int(meta["discount_code_id"]) if meta.get("discount_code_id") else None,
                discount_code=meta.get("discount_code") or None,
            )
        except (KeyError, ValueError, ArithmeticError) as exc:
            raise PaymentVerificationException(
                payment_intent_id,
                "metadata_mismatch",
                details={"error": str(exc)},
            ) from exc

        validation = await self.validate_purchase_request(training_center_id, request.acc_id, request.course_id)
        try:
            return await self.process_purchase(request, validation, price, Actor.system())
        except PurchaseAlreadyProcessedException:
            # 与客户端确认并发，对方已完成
            logger.info("card_payment_confirmed_concurrently", payment_intent_id=payment_intent_id)
            return None
        except DiscountInvalidException:
            # 已退款并记录失败交易，回调无需重投
            return None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_actor_for_training_center(actor: Actor, training_center_id: int) -> None:
        if not actor.acts_for(PartyRef.training_center(training_center_id)):
            raise ForbiddenException("Actor cannot purchase for this training center")

    @staticmethod
    def _verify_intent(intent: PaymentIntent, validation: PurchaseValidation, price: PriceCalculation) -> None:
        if intent.raw_status == "processing":
            raise PaymentVerificationException(intent.intent_id, "payment_processing")
        if intent.raw_status != "succeeded":
            raise PaymentVerificationException(
                intent.intent_id,
                "payment_not_confirmed",
                details={"status": intent.raw_status or intent.status},
            )
        expected_minor = to_minor_units(price.final_amount, price.currency)
        if intent.amount_minor != expected_minor:
            raise PaymentVerificationException(
                intent.intent_id,
                "amount_mismatch",
                details={"expected_amount_minor": expected_minor, "provided_amount_minor": intent.amount_minor},
            )
        expected_meta = {
            "transaction_type": TRANSACTION_TYPE_CODE_PURCHASE,
            "payer_id": str(validation.training_center.id),
            "payee_id": str(validation.acc.id),
            "course_id": str(validation.course.id),
            "quantity": str(price.quantity),
        }
        for key, expected in expected_meta.items():
            if intent.metadata.get(key) != expected:
                raise PaymentVerificationException(
                    intent.intent_id,
                    "metadata_mismatch",
                    details={"field": key, "expected": expected, "provided": intent.metadata.get(key)},
                )

    def _minting_service(self, uow: AbstractUnitOfWork) -> CodeMintingService:
        return CodeMintingService(
            uow.code_repository,
            generator=self._code_generator,
            max_attempts=settings.purchase.code_generation_max_attempts,
        )

    @staticmethod
    def _new_batch(
        validation: PurchaseValidation,
        price: PriceCalculation,
        payment_method: PaymentMethod,
        actor: Actor,
        payment_intent_id: Optional[str] = None,
    ) -> CodeBatch:
        return CodeBatch(
            id=None,
            training_center_id=validation.training_center.id,
            acc_id=validation.acc.id,
            course_id=validation.course.id,
            quantity=price.quantity,
            unit_price=price.unit_price,
            total_amount=price.total_amount,
            discount_amount=price.discount_amount,
            final_amount=price.final_amount,
            currency=price.currency,
            payment_method=payment_method,
            discount_code_id=price.discount_code_id,
            payment_intent_id=payment_intent_id,
            created_by=actor.user_id or None,
        )

    @staticmethod
    def _new_transaction(
        validation: PurchaseValidation,
        price: PriceCalculation,
        batch: Optional[CodeBatch],
        payment_method: PaymentMethod,
        payment_type: PaymentType,
        gateway_transaction_id: Optional[str],
    ) -> Transaction:
        return Transaction(
            id=None,
            transaction_type=TransactionType.CODE_PURCHASE,
            payer=PartyRef.training_center(validation.training_center.id),
            payee=PartyRef.acc(validation.acc.id),
            amount=price.final_amount,
            currency=price.currency,
            payment_method=payment_method.value,
            payment_type=payment_type,
            payment_gateway_transaction_id=gateway_transaction_id,
            commission_amount=price.commission_amount,
            provider_amount=price.provider_amount,
            reference_type=REFERENCE_TYPE_CODE_BATCH,
            reference_id=batch.id if batch else None,
            description=f"Certificate codes x{price.quantity} (course {validation.course.id})",
        )
