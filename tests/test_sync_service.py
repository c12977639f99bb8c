import pytest

from conftest import FakeClient
from datetime_utils import HOUR_MS
from services.delivery import DeliveryTimeout
from services.sync_service import TRIGGER_BACKGROUND, TRIGGER_ONLINE, SyncCoordinator


def test_offline_then_reconnect_drains_queue(queue):
    queue.enqueue({"name": "A"})
    coordinator = SyncCoordinator(queue, FakeClient())

    report = coordinator.run_pass(TRIGGER_ONLINE)

    assert report.delivered == 1
    assert report.trigger == TRIGGER_ONLINE
    assert queue.list_pending() == []


def test_delivery_is_fifo(queue, clock):
    ids = []
    for name in ("p1", "p2", "p3"):
        ids.append(queue.enqueue({"name": name}).request_id)
        clock.advance(1)
    client = FakeClient()

    report = SyncCoordinator(queue, client).run_pass()

    assert [p["name"] for p in client.delivered] == ["p1", "p2", "p3"]
    assert report.delivered_ids == ids


def test_partial_failure_does_not_block_later_entries(queue, clock):
    for name in ("p1", "p2", "p3"):
        queue.enqueue({"name": name})
        clock.advance(1)
    client = FakeClient(failing={"p2"})

    report = SyncCoordinator(queue, client).run_pass()

    assert report.attempted == 3
    assert report.delivered == 2
    assert report.failed == 1
    assert [p.payload["name"] for p in queue.list_pending()] == ["p2"]


def test_repeated_failure_leaves_entry_untouched(queue, clock):
    entry = queue.enqueue({"name": "A"})
    client = FakeClient(failing={"A"})
    coordinator = SyncCoordinator(queue, client)

    for _ in range(3):
        clock.advance(60_000)
        coordinator.run_pass(TRIGGER_BACKGROUND)

    pending = queue.list_pending()
    assert len(pending) == 1
    assert pending[0].enqueued_at == entry.enqueued_at
    assert pending[0].payload == {"name": "A"}
    assert client.calls == 3


def test_requests_enqueued_during_a_pass_wait_for_the_next_one(queue):
    queue.enqueue({"name": "first"})

    class EnqueueingClient(FakeClient):
        def deliver(self, payload):
            result = super().deliver(payload)
            if payload["name"] == "first":
                queue.enqueue({"name": "late"})
            return result

    client = EnqueueingClient()
    coordinator = SyncCoordinator(queue, client)

    coordinator.run_pass()
    assert [p["name"] for p in client.delivered] == ["first"]
    assert [p.payload["name"] for p in queue.list_pending()] == ["late"]

    coordinator.run_pass()
    assert queue.list_pending() == []


@pytest.mark.parametrize("error", [DeliveryTimeout("slow"), RuntimeError("bug in client")])
def test_errors_never_reach_the_trigger_caller(queue, error):
    queue.enqueue({"name": "A"})
    client = FakeClient(error=error)

    report = SyncCoordinator(queue, client).run_pass()

    assert report.failed == 1
    assert queue.count() == 1


def test_unreadable_queue_returns_empty_report(queue):
    class ExplodingQueue:
        queue_name = "x"

        def list_pending(self):
            raise RuntimeError("boom")

    report = SyncCoordinator(ExplodingQueue(), FakeClient()).run_pass()
    assert report.attempted == 0
    assert report.finished_at is not None


def test_pass_purges_old_synced_entries(queue, clock):
    entry = queue.enqueue({"name": "A"})
    coordinator = SyncCoordinator(queue, FakeClient(), clock=clock)
    coordinator.run_pass()
    assert queue.stats()["synced"] == 1

    clock.advance(25 * HOUR_MS)
    report = coordinator.run_pass()

    assert report.purged == 1
    assert queue.stats()["synced"] == 0
    assert entry.request_id not in {p.request_id for p in queue.list_pending()}


def test_leased_entries_are_skipped(queue):
    leased = queue.enqueue({"name": "A"})
    queue.enqueue({"name": "B"})
    assert queue.claim(leased.request_id, ttl_ms=60_000)
    client = FakeClient()

    report = SyncCoordinator(queue, client, use_leases=True).run_pass()

    assert report.skipped == 1
    assert [p["name"] for p in client.delivered] == ["B"]
    assert [p.request_id for p in queue.list_pending()] == [leased.request_id]


def test_failed_delivery_releases_lease(queue):
    entry = queue.enqueue({"name": "A"})
    coordinator = SyncCoordinator(queue, FakeClient(failing={"A"}), use_leases=True)

    coordinator.run_pass()

    assert queue.claim(entry.request_id, ttl_ms=1000)


def test_status_reports_counts(queue):
    queue.enqueue({"name": "A"})
    queue.enqueue({"name": "B"})
    coordinator = SyncCoordinator(queue, FakeClient(failing={"B"}))
    coordinator.run_pass()

    status = coordinator.status()
    assert status["queue"] == "testQueue"
    assert status["pending"] == 1
    assert status["synced"] == 1
    assert status["degraded"] is False
