import pytest
from kombu.exceptions import OperationalError as KombuOperationalError

from core.config import StorageSettings
from domain.code_batch.events import ManualPaymentSubmitted
from infrastructure.events.celery_publisher import CeleryEventPublisher, CeleryTaskScheduler
from infrastructure.external.storage.exceptions import ReceiptRejectedError, StorageError
from infrastructure.external.storage.local import LocalReceiptStorage
from infrastructure.tasks.tasks.notifications import deliver
from infrastructure.tasks.utils import dispatcher as dispatcher_module
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class _RecordingDispatcher:
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def _record(self, name, *args):
        if name in self.fail_on:
            raise KombuOperationalError("broker unreachable")
        self.calls.append((name, *args))

    def deliver_notification(self, event_name, payload):
        self._record("deliver", event_name, payload)

    def initiate_transfer(self, transaction_id):
        self._record("initiate", transaction_id)

    def retry_transfer(self, transfer_id, countdown):
        self._record("retry", transfer_id, countdown)


def _submitted(batch_id=1):
    return ManualPaymentSubmitted(batch_id=batch_id, training_center_id=1, acc_id=1, quantity=2, amount="200.00")


def test_publisher_sends_event_payloads():
    dispatcher = _RecordingDispatcher()
    CeleryEventPublisher(dispatcher).publish([_submitted(1), _submitted(2)])
    assert [c[1] for c in dispatcher.calls] == ["ManualPaymentSubmitted", "ManualPaymentSubmitted"]
    payload = dispatcher.calls[0][2]
    assert payload["batch_id"] == 1 and payload["event_id"]


def test_broker_outage_does_not_propagate():
    dispatcher = _RecordingDispatcher(fail_on={"deliver", "initiate", "retry"})
    CeleryEventPublisher(dispatcher).publish([_submitted()])
    scheduler = CeleryTaskScheduler(dispatcher)
    scheduler.schedule_transfer_for_transaction(5)
    scheduler.schedule_transfer_retry(3, countdown=60)
    assert dispatcher.calls == []


def test_dispatcher_enqueues_by_task_name(monkeypatch):
    sent = []

    def fake_send_task(name, args=(), kwargs=None, countdown=None):
        sent.append((name, kwargs, countdown))

    monkeypatch.setattr(dispatcher_module.celery_app, "send_task", fake_send_task)
    TaskDispatcher().retry_transfer(9, countdown=120)
    TaskDispatcher().initiate_transfer(4)
    assert sent == [
        ("transfers.retry", {"transfer_id": 9}, 120),
        ("transfers.initiate", {"transaction_id": 4}, None),
    ]


def test_notification_task_routes_by_audience():
    assert deliver(event_name="ManualPaymentApproved", payload={"event_id": "e1"}) == {
        "delivered": True,
        "audience": "training_center",
    }
    assert deliver(event_name="SomethingElse", payload={}) == {"delivered": False}


@pytest.mark.asyncio
async def test_local_receipt_storage(tmp_path):
    storage = LocalReceiptStorage(StorageSettings(local_base_path=str(tmp_path)))
    stored = await storage.save(b"%PDF-1.4", "bank slip.pdf", "application/pdf")

    assert stored.key.startswith("receipts/") and stored.key.endswith(".pdf")
    assert stored.url == f"/files/{stored.key}"
    assert (tmp_path / stored.key).read_bytes() == b"%PDF-1.4"
    assert await storage.delete(stored.key) is True
    assert await storage.delete(stored.key) is False


@pytest.mark.asyncio
async def test_local_receipt_storage_rejects_bad_files(tmp_path):
    storage = LocalReceiptStorage(StorageSettings(local_base_path=str(tmp_path), max_file_size=4))
    with pytest.raises(ReceiptRejectedError):
        await storage.save(b"", "a.pdf", "application/pdf")
    with pytest.raises(ReceiptRejectedError):
        await storage.save(b"12345", "a.pdf", "application/pdf")
    with pytest.raises(ReceiptRejectedError):
        await storage.save(b"1", "a.exe", "application/x-msdownload")
    with pytest.raises(StorageError):
        await storage.delete("../../etc/passwd")
