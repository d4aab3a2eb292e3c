from decimal import Decimal

import pytest

from domain.code_batch.entity import BatchPaymentStatus, CertificateCode, CodeBatch, CodeStatus, PaymentMethod
from domain.code_batch.repository import DuplicateCertificateCodeError
from domain.code_batch.service import CodeGenerator, CodeMintingService
from domain.common.exceptions import CodeGenerationException, DomainValidationException


class _ScriptedGenerator(CodeGenerator):
    """Hands out the given codes in order, repeating the last one when exhausted."""

    def __init__(self, *codes):
        super().__init__()
        self.codes = list(codes)
        self.calls = 0

    def generate(self) -> str:
        self.calls += 1
        if len(self.codes) > 1:
            return self.codes.pop(0)
        return self.codes[0]


class _CodeRepo:
    def __init__(self, existing=(), conflicts=0):
        self.stored = {c: None for c in existing}
        self.conflicts = conflicts
        self.inserts = 0

    async def find_existing(self, codes):
        return {c for c in codes if c in self.stored}

    async def bulk_create(self, codes):
        self.inserts += 1
        if self.conflicts:
            # a concurrent batch took one of the codes between lookup and insert
            self.conflicts -= 1
            raise DuplicateCertificateCodeError()
        for i, c in enumerate(codes, start=len(self.stored) + 1):
            c.id = i
            self.stored[c.code] = c
        return codes


def _batch(quantity=3, method=PaymentMethod.MANUAL_PAYMENT, **kw):
    values = dict(
        id=7, training_center_id=1, acc_id=1, course_id=10, quantity=quantity,
        unit_price=Decimal("100.00"), total_amount=Decimal("100.00") * quantity,
        discount_amount=Decimal("0.00"), final_amount=Decimal("100.00") * quantity,
        currency="USD", payment_method=method,
    )
    values.update(kw)
    return CodeBatch(**values)


@pytest.mark.asyncio
async def test_repeated_and_existing_codes_are_regenerated():
    generator = _ScriptedGenerator("TAKEN0000001", "AAAA00000001", "AAAA00000001", "BBBB00000002", "CCCC00000003")
    repo = _CodeRepo(existing=["TAKEN0000001"])

    codes = await CodeMintingService(repo, generator=generator).mint(_batch(quantity=3))

    assert sorted(c.code for c in codes) == ["AAAA00000001", "BBBB00000002", "CCCC00000003"]
    assert "TAKEN0000001" not in {c.code for c in codes}
    assert generator.calls == 5
    assert all(c.status == CodeStatus.AVAILABLE and c.batch_id == 7 for c in codes)


@pytest.mark.asyncio
async def test_insert_conflict_regenerates_the_whole_batch():
    generator = _ScriptedGenerator("AAAA00000001", "BBBB00000002", "CCCC00000003", "DDDD00000004")
    repo = _CodeRepo(conflicts=1)

    codes = await CodeMintingService(repo, generator=generator).mint(_batch(quantity=2))

    assert repo.inserts == 2
    assert sorted(c.code for c in codes) == ["CCCC00000003", "DDDD00000004"]


@pytest.mark.asyncio
async def test_generator_stuck_on_existing_code_gives_up():
    repo = _CodeRepo(existing=["TAKEN0000001"])
    service = CodeMintingService(repo, generator=_ScriptedGenerator("TAKEN0000001"), max_attempts=5)

    with pytest.raises(CodeGenerationException) as exc:
        await service.mint(_batch(quantity=1))
    assert exc.value.details["attempts"] == 6
    assert repo.inserts == 0


@pytest.mark.asyncio
async def test_persistent_insert_conflicts_give_up():
    repo = _CodeRepo(conflicts=10)
    with pytest.raises(CodeGenerationException):
        await CodeMintingService(repo, max_insert_rounds=3).mint(_batch(quantity=1))
    assert repo.inserts == 3


@pytest.mark.asyncio
async def test_unsaved_batch_cannot_be_minted():
    with pytest.raises(DomainValidationException):
        await CodeMintingService(_CodeRepo()).mint(_batch(id=None))


def test_batch_review_happens_once():
    batch = _batch()
    batch.approve(verified_by=501)
    assert batch.payment_status == BatchPaymentStatus.APPROVED
    assert batch.verified_by == 501 and batch.verified_at is not None
    with pytest.raises(DomainValidationException):
        batch.reject("too late", verified_by=501)

    rejected = _batch()
    with pytest.raises(DomainValidationException):
        rejected.reject("  ", verified_by=501)
    rejected.reject(" unreadable ", verified_by=1)
    assert rejected.payment_status == BatchPaymentStatus.REJECTED
    assert rejected.rejection_reason == "unreadable"
    with pytest.raises(DomainValidationException):
        rejected.approve(verified_by=1)


def test_only_card_batches_complete_directly():
    with pytest.raises(DomainValidationException):
        _batch().mark_completed(transaction_id=3)

    card = _batch(method=PaymentMethod.CREDIT_CARD)
    card.mark_completed(transaction_id=3)
    assert card.payment_status == BatchPaymentStatus.COMPLETED
    assert card.transaction_id == 3


def test_code_is_used_once():
    code = CertificateCode(id=1, code="AAAA00000001", batch_id=7, training_center_id=1, acc_id=1, course_id=10,
                           purchased_price=Decimal("100.00"))
    code.mark_used(certificate_id=42)
    assert code.status == CodeStatus.USED
    assert code.used_for_certificate_id == 42 and code.used_at is not None
    with pytest.raises(DomainValidationException):
        code.mark_used(certificate_id=43)
