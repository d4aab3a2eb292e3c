"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import json
import os
import tempfile

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE__LOCAL_BASE_PATH", os.path.join(tempfile.gettempdir(), "certmarket-test-receipts"))
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test")

from datetime import date
from decimal import Decimal
from functools import partial
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dto import PurchaseQuoteDTO, PurchaseRequestDTO
from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    QueryPayment,
    RefundRequest,
    RefundResult,
    TransferRequest,
    TransferResult,
    WebhookEvent,
)
from application.ports.storage import StoredFile
from application.services.code_purchase_service import CodeBatchPurchaseOrchestrator
from application.services.manual_payment_service import ManualPaymentApprovalWorkflow
from application.services.payment_event_service import PaymentEventHandler
from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from application.services.transfer_service import TransferRetryManager
from core.settings import TransferSettings
from domain.code_batch.entity import PaymentMethod
from domain.common.exceptions import PaymentGatewayException
from domain.common.money import to_minor_units
from domain.common.party import Actor, PartyRef
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.models import (
    AccModel,
    Base,
    CourseModel,
    CoursePricingModel,
    DiscountCodeModel,
    TrainingCenterAccAuthorizationModel,
    TrainingCenterModel,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# --- fakes ------------------------------------------------------------------


class FakeGateway:
    """In-memory gateway: intents are created unpaid and flipped with ``succeed``."""

    provider = "fake"

    def __init__(self):
        self.intents: dict[str, PaymentIntent] = {}
        self.created: list[CreatePayment] = []
        self.refunds: list[RefundRequest] = []
        self.transfers: list[TransferRequest] = []
        self.transfer_results: list[TransferResult] = []
        self.fail_destination = False

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        if req.destination_account and self.fail_destination:
            raise PaymentGatewayException("destination charges unavailable")
        self.created.append(req)
        intent_id = f"pi_{len(self.created)}"
        intent = PaymentIntent(
            intent_id=intent_id,
            status="failed",
            raw_status="requires_payment_method",
            provider=self.provider,
            client_secret=f"{intent_id}_secret",
            amount_minor=to_minor_units(req.amount, req.currency),
            currency=req.currency,
            metadata={k: str(v) for k, v in (req.metadata or {}).items()},
        )
        self.intents[intent_id] = intent
        return intent

    def succeed(self, intent_id: str, **overrides) -> None:
        values = {"status": "succeeded", "raw_status": "succeeded"}
        values.update(overrides)
        self.intents[intent_id] = self.intents[intent_id].model_copy(update=values)

    async def query_payment(self, query: QueryPayment) -> PaymentIntent:
        return self.intents[query.intent_id]

    async def refund(self, req: RefundRequest) -> RefundResult:
        self.refunds.append(req)
        return RefundResult(refund_id=f"re_{len(self.refunds)}", status="succeeded", provider=self.provider)

    async def create_transfer(self, req: TransferRequest) -> TransferResult:
        self.transfers.append(req)
        if self.transfer_results:
            return self.transfer_results.pop(0)
        return TransferResult(success=True, transfer_id=f"tr_{len(self.transfers)}")

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return signature == "valid"

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        if not self.verify_webhook_signature(body, headers.get("stripe-signature", "")):
            raise PaymentSignatureError("invalid signature", provider=self.provider)
        data = json.loads(body)
        return WebhookEvent(id=data["id"], type=data["type"], provider=self.provider, data=data.get("data") or {})


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, events) -> None:
        self.events.extend(events)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]


class RecordingScheduler:
    def __init__(self):
        self.transactions: list[int] = []
        self.retries: list[tuple[int, int]] = []

    def schedule_transfer_for_transaction(self, transaction_id: int) -> None:
        self.transactions.append(transaction_id)

    def schedule_transfer_retry(self, transfer_id: int, countdown: int) -> None:
        self.retries.append((transfer_id, countdown))


class InMemoryReceiptStorage:
    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def save(self, data: bytes, filename: str, content_type: Optional[str]) -> StoredFile:
        key = f"receipts/{len(self.files) + len(self.deleted) + 1}-{filename}"
        self.files[key] = data
        return StoredFile(key=key, url=f"/files/{key}", size=len(data), content_type=content_type)

    async def delete(self, key: str) -> bool:
        self.deleted.append(key)
        return self.files.pop(key, None) is not None


# --- database ---------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite 默认的事务处理不支持 SAVEPOINT，交由 SQLAlchemy 显式 BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with factory() as session:
        async with session.begin():
            session.add_all([
                AccModel(id=1, name="Global Safety ACC", status="active", commission_percentage=Decimal("10.00"),
                         stripe_account_id="acct_acc1", user_id=501),
                AccModel(id=2, name="Suspended ACC", status="suspended", commission_percentage=Decimal("10.00")),
                AccModel(id=3, name="Unlinked ACC", status="active", commission_percentage=Decimal("20.00"), user_id=503),
                TrainingCenterModel(id=1, name="Riverside Training", user_id=601),
                TrainingCenterModel(id=2, name="Unauthorized Training", user_id=602),
            ])
            await session.flush()
            session.add_all([
                TrainingCenterAccAuthorizationModel(training_center_id=1, acc_id=1, status="approved"),
                TrainingCenterAccAuthorizationModel(training_center_id=1, acc_id=2, status="approved"),
                TrainingCenterAccAuthorizationModel(training_center_id=1, acc_id=3, status="approved"),
                TrainingCenterAccAuthorizationModel(training_center_id=2, acc_id=1, status="pending"),
                CourseModel(id=10, acc_id=1, name="First Aid"),
                CourseModel(id=11, acc_id=1, name="Legacy Fire Safety"),
                CourseModel(id=20, acc_id=2, name="Suspended Course"),
                CourseModel(id=30, acc_id=3, name="Working at Height"),
            ])
            await session.flush()
            session.add_all([
                CoursePricingModel(course_id=10, acc_id=1, base_price=Decimal("100.00"), currency="USD",
                                   effective_from=date(2020, 1, 1)),
                CoursePricingModel(course_id=11, acc_id=1, base_price=Decimal("80.00"), currency="USD",
                                   effective_from=date(2020, 1, 1), effective_to=date(2021, 12, 31)),
                CoursePricingModel(course_id=20, acc_id=2, base_price=Decimal("60.00"), currency="USD",
                                   effective_from=date(2020, 1, 1)),
                CoursePricingModel(course_id=30, acc_id=3, base_price=Decimal("50.00"), currency="USD",
                                   effective_from=date(2020, 1, 1)),
                DiscountCodeModel(acc_id=1, code="SAVE20", discount_type="time_limited",
                                  discount_percentage=Decimal("20.00"), start_date=date(2020, 1, 1),
                                  end_date=date(2099, 12, 31), status="active"),
                DiscountCodeModel(acc_id=1, code="LIMITED10", discount_type="quantity_based",
                                  discount_percentage=Decimal("10.00"), total_quantity=1, used_quantity=0,
                                  status="active"),
                DiscountCodeModel(acc_id=1, code="OLD", discount_type="time_limited",
                                  discount_percentage=Decimal("15.00"), start_date=date(2020, 1, 1),
                                  end_date=date(2020, 12, 31), status="active"),
                DiscountCodeModel(acc_id=1, code="FREE", discount_type="time_limited",
                                  discount_percentage=Decimal("100.00"), start_date=date(2020, 1, 1),
                                  end_date=date(2099, 12, 31), status="active"),
            ])
    return factory


@pytest.fixture
def uow_factory(session_factory):
    return partial(SQLAlchemyUnitOfWork, session_factory)


# --- services ---------------------------------------------------------------


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def receipts():
    return InMemoryReceiptStorage()


@pytest.fixture
def payment_service(gateway):
    return PaymentService(gateway=gateway)


@pytest.fixture
def orchestrator(uow_factory, payment_service, publisher, scheduler, receipts):
    return CodeBatchPurchaseOrchestrator(uow_factory, payment_service, publisher, scheduler, receipts)


@pytest.fixture
def workflow(uow_factory, publisher, scheduler):
    return ManualPaymentApprovalWorkflow(uow_factory, publisher, scheduler)


@pytest.fixture
def transfer_settings():
    return TransferSettings(max_retries=3, backoff="exponential", base_delay_seconds=60, max_delay_seconds=3600)


@pytest.fixture
def transfer_manager(uow_factory, payment_service, publisher, scheduler, transfer_settings):
    return TransferRetryManager(
        uow_factory, payment_service, publisher, scheduler, transfer_settings=transfer_settings
    )


@pytest.fixture
def event_handler(uow_factory, payment_service, orchestrator):
    return PaymentEventHandler(uow_factory, payment_service, orchestrator)


@pytest.fixture
def settlement_service(uow_factory):
    return SettlementService(uow_factory)


# --- actors -----------------------------------------------------------------


@pytest.fixture
def tc_actor():
    return Actor(user_id=601, party=PartyRef.training_center(1), name="Riverside admin")


@pytest.fixture
def acc_actor():
    return Actor(user_id=501, party=PartyRef.acc(1), name="ACC reviewer")


@pytest.fixture
def admin():
    return Actor(user_id=1, party=PartyRef.group(), name="Group admin")


# --- flows ------------------------------------------------------------------


@pytest.fixture
def card_purchase(orchestrator, gateway, tc_actor):
    """Quote, create the intent, let the gateway capture it, then confirm."""

    async def _buy(acc_id: int = 1, course_id: int = 10, quantity: int = 3, discount_code: Optional[str] = None):
        quote = PurchaseQuoteDTO(acc_id=acc_id, course_id=course_id, quantity=quantity, discount_code=discount_code)
        validation, price = await orchestrator.quote(1, quote)
        intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
        gateway.succeed(intent.payment_intent_id)
        request = PurchaseRequestDTO(
            **quote.model_dump(),
            payment_method=PaymentMethod.CREDIT_CARD,
            payment_intent_id=intent.payment_intent_id,
        )
        return await orchestrator.purchase(tc_actor, 1, request)

    return _buy
