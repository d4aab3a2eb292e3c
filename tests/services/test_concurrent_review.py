"""Concurrent reviews of the same manual batch against a file-backed database.

The in-memory engine of conftest shares one connection between sessions, so
two reviews in flight at once need a real connection pool.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from application.dto import ApprovalResultDTO, PurchaseRequestDTO, ReceiptUpload
from domain.code_batch.entity import BatchPaymentStatus, PaymentMethod
from domain.common.exceptions import BatchNotPendingException
from infrastructure.models import Base


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'review.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
    )

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
async def pending_batch(orchestrator, tc_actor):
    return await orchestrator.purchase(
        tc_actor,
        1,
        PurchaseRequestDTO(
            acc_id=1, course_id=10, quantity=4,
            payment_method=PaymentMethod.MANUAL_PAYMENT, payment_amount=Decimal("400.00"),
        ),
        receipt=ReceiptUpload(data=b"slip", filename="slip.png", content_type="image/png"),
    )


@pytest.mark.asyncio
async def test_concurrent_approvals_mint_once(pending_batch, workflow, acc_actor, admin, uow_factory, scheduler):
    outcomes = await asyncio.gather(
        workflow.approve(pending_batch.batch_id, Decimal("400.00"), acc_actor),
        workflow.approve(pending_batch.batch_id, Decimal("400.00"), admin),
        return_exceptions=True,
    )

    approved = [o for o in outcomes if isinstance(o, ApprovalResultDTO)]
    refused = [o for o in outcomes if isinstance(o, BatchNotPendingException)]
    assert len(approved) == 1 and len(refused) == 1
    assert scheduler.transactions == [pending_batch.transaction_id]

    async with uow_factory() as uow:
        assert await uow.code_repository.count_by_batch(pending_batch.batch_id) == 4
        # the guarded update refuses a second pending -> approved transition
        assert not await uow.batch_repository.transition_status(
            pending_batch.batch_id, BatchPaymentStatus.PENDING, BatchPaymentStatus.APPROVED
        )


@pytest.mark.asyncio
async def test_concurrent_approve_and_reject_settle_on_one(pending_batch, workflow, acc_actor, admin, uow_factory):
    outcomes = await asyncio.gather(
        workflow.reject(pending_batch.batch_id, "Receipt unreadable", admin),
        workflow.approve(pending_batch.batch_id, Decimal("400.00"), acc_actor),
        return_exceptions=True,
    )

    assert sum(isinstance(o, ApprovalResultDTO) for o in outcomes) == 1
    assert sum(isinstance(o, BatchNotPendingException) for o in outcomes) == 1

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(pending_batch.batch_id)
        codes = await uow.code_repository.count_by_batch(pending_batch.batch_id)
    if batch.payment_status == BatchPaymentStatus.REJECTED:
        assert codes == 0
    else:
        assert batch.payment_status == BatchPaymentStatus.APPROVED and codes == 4
