import pytest

from conftest import FakeClient
from services.delivery import DeliveryError, DeliveryTimeout
from services.offline_queue import OfflineRequestQueue
from services.submission import (
    STATUS_QUEUED,
    STATUS_SENT,
    EmergencySubmitter,
    ValidationError,
    build_payload,
    validate_form,
)


FORM = {"name": "Sam", "phone": "07700900123", "location": "A34 layby", "issue": "puncture"}


class ScriptedClient:
    """Raises the scripted errors in order, then succeeds."""

    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    def deliver(self, payload):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return {"id": 42}


def _submitter(client, queue, sleeps):
    return EmergencySubmitter(client, queue, retry_attempts=3, retry_delay=1.0, phone="0800", sleep=sleeps.append)


def test_successful_submission_is_not_queued(queue):
    sleeps = []
    outcome = _submitter(FakeClient(), queue, sleeps).submit(FORM)

    assert outcome.status == STATUS_SENT
    assert outcome.sent
    assert outcome.fallback_phone is None
    assert "Sam" in outcome.message
    assert queue.count() == 0
    assert sleeps == []


def test_transient_errors_retry_with_growing_delay(queue):
    sleeps = []
    client = ScriptedClient([DeliveryTimeout("slow"), DeliveryError("reset", transient=True)])

    outcome = _submitter(client, queue, sleeps).submit(FORM)

    assert outcome.sent
    assert client.calls == 3
    assert sleeps == [1.0, 2.0]


def test_exhausted_retries_queue_the_request(queue):
    sleeps = []
    client = ScriptedClient([DeliveryTimeout("slow")] * 10)

    outcome = _submitter(client, queue, sleeps).submit(FORM)

    assert outcome.status == STATUS_QUEUED
    assert client.calls == 4
    assert sleeps == [1.0, 2.0, 3.0]
    [pending] = queue.list_pending()
    assert pending.payload["requestId"] == outcome.request_id
    assert pending.payload["name"] == "Sam"


def test_http_error_is_not_retried(queue):
    sleeps = []
    client = ScriptedClient([DeliveryError("HTTP 503", status_code=503)])

    outcome = _submitter(client, queue, sleeps).submit(FORM)

    assert outcome.status == STATUS_QUEUED
    assert client.calls == 1
    assert sleeps == []
    assert queue.count() == 1


def test_failure_always_offers_the_phone_number(queue):
    outcome = _submitter(FakeClient(error=RuntimeError("bug")), queue, []).submit(FORM)

    assert outcome.status == STATUS_QUEUED
    assert outcome.fallback_phone == "0800"
    assert "0800" in outcome.message
    assert queue.count() == 1


def test_storage_failure_still_offers_the_phone_number(broken_factory, clock):
    queue = OfflineRequestQueue("testQueue", broken_factory, clock=clock)
    client = FakeClient(error=DeliveryError("HTTP 500", status_code=500))

    outcome = _submitter(client, queue, []).submit(FORM)

    assert outcome.status == STATUS_QUEUED
    assert "call us now on 0800" in outcome.message
    assert queue.degraded


def test_validation_runs_before_delivery(queue):
    client = FakeClient()
    with pytest.raises(ValidationError) as excinfo:
        _submitter(client, queue, []).submit({"name": "  ", "phone": "1"})

    assert excinfo.value.missing == ("name", "location")
    assert client.calls == 0
    assert queue.count() == 0


def test_validate_form_strips_strings():
    cleaned = validate_form({"name": " Sam ", "phone": "1", "location": " here", "lat": 51.5})
    assert cleaned == {"name": "Sam", "phone": "1", "location": "here", "lat": 51.5}


def test_build_payload_keeps_existing_metadata():
    payload = build_payload({"name": "Sam", "requestId": "abc"})
    assert payload["requestId"] == "abc"
    assert payload["priority"] == "emergency"
    assert payload["timestamp"].endswith("Z")


def test_queued_entry_uses_the_payload_request_id(queue):
    outcome = _submitter(ScriptedClient([DeliveryError("bad", status_code=400)]), queue, []).submit(FORM)

    [pending] = queue.list_pending()
    assert pending.request_id == outcome.request_id == pending.payload["requestId"]
