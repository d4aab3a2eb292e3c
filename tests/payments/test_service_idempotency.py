import pytest
from decimal import Decimal

from application.services.payment_service import PaymentService
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


class StubGateway:
    provider = "stub"

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        return PaymentIntent(intent_id="pi_1", status="pending", raw_status="requires_payment_method", provider=self.provider)

    async def query_payment(self, query: QueryPayment) -> PaymentIntent:
        return PaymentIntent(intent_id=query.intent_id, status="succeeded", raw_status="succeeded", provider=self.provider)

    async def refund(self, req: RefundRequest) -> RefundResult:
        return RefundResult(refund_id="re_1", status="pending", provider=self.provider)

    async def create_transfer(self, req: TransferRequest) -> TransferResult:
        return TransferResult(success=True, transfer_id="tr_1")

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return True

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        return WebhookEvent(id="evt_1", type="stub.event", provider=self.provider, data={})


def _create(**kw) -> CreatePayment:
    values = dict(reference="codes-1-10-abc", amount=Decimal("300.00"), currency="usd",
                  metadata={"payer_id": "1", "course_id": "10", "quantity": "3"})
    values.update(kw)
    return CreatePayment(**values)


@pytest.mark.asyncio
async def test_create_payment_generates_idempotency_key():
    svc = PaymentService(gateway=StubGateway())
    req = _create()
    assert req.currency == "USD"
    assert req.idempotency_key is None
    await svc.create_payment(req)
    assert isinstance(req.idempotency_key, str) and len(req.idempotency_key) == 64

    same = _create()
    await svc.create_payment(same)
    assert same.idempotency_key == req.idempotency_key

    other = _create(reference="codes-1-10-def")
    await svc.create_payment(other)
    assert other.idempotency_key != req.idempotency_key


@pytest.mark.asyncio
async def test_explicit_idempotency_key_is_kept():
    svc = PaymentService(gateway=StubGateway())
    req = _create(idempotency_key="client-key")
    await svc.create_payment(req)
    assert req.idempotency_key == "client-key"


@pytest.mark.asyncio
async def test_refund_generates_idempotency_key():
    svc = PaymentService(gateway=StubGateway())
    req = RefundRequest(intent_id="pi_1", amount=Decimal("1.00"), currency="USD")
    assert req.idempotency_key is None
    await svc.refund(req)
    assert isinstance(req.idempotency_key, str) and len(req.idempotency_key) == 64


def test_payment_dtos_validate_amount_and_currency():
    with pytest.raises(ValueError):
        _create(amount=Decimal("0"))
    with pytest.raises(ValueError):
        _create(currency="XYZ")
    with pytest.raises(ValueError):
        _create(application_fee_amount=Decimal("-1"))
