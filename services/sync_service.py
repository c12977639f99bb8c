from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from core.settings import QUEUE
from datetime_utils import now_ms
from services.delivery import DeliveryError
from services.log import get_logger
from services.offline_queue import DEFAULT_RETENTION_MS, OfflineRequestQueue


TRIGGER_ONLINE = "online"
TRIGGER_BACKGROUND = "background"
TRIGGER_MANUAL = "manual"


class Deliverer(Protocol):
    def deliver(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...


@dataclass
class SyncReport:
    trigger: str
    started_at: int
    finished_at: Optional[int] = None
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0
    purged: int = 0
    delivered_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "trigger": self.trigger,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "attempted": self.attempted,
            "delivered": self.delivered,
            "failed": self.failed,
            "skipped": self.skipped,
            "purged": self.purged,
        }


class SyncCoordinator:
    """Drains the offline queue whenever a trigger says the network may be back.

    Holds no state between passes, so it is safe to call repeatedly; callers
    debounce triggers themselves.
    """

    def __init__(
        self,
        queue: OfflineRequestQueue,
        client: Deliverer,
        *,
        retention_ms: int = DEFAULT_RETENTION_MS,
        use_leases: bool = QUEUE.use_leases,
        lease_ttl_ms: int = QUEUE.lease_ttl_seconds * 1000,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.queue = queue
        self.client = client
        self.retention_ms = retention_ms
        self.use_leases = use_leases
        self.lease_ttl_ms = lease_ttl_ms
        self._clock = clock
        self.logger = get_logger("sync")

    def run_pass(self, trigger: str = TRIGGER_MANUAL) -> SyncReport:
        report = SyncReport(trigger=trigger, started_at=self._clock())
        try:
            snapshot = self.queue.list_pending()
        except Exception:
            self.logger.exception("Sync pass (%s) could not read the queue", trigger)
            report.finished_at = self._clock()
            return report

        if snapshot:
            self.logger.info("Sync pass (%s): %s pending request(s)", trigger, len(snapshot))

        for entry in snapshot:
            token: Optional[str] = None
            if self.use_leases:
                token = self.queue.claim(entry.request_id, self.lease_ttl_ms)
                if token is None:
                    self.logger.debug("Request %s is leased elsewhere, skipping", entry.request_id)
                    report.skipped += 1
                    continue

            report.attempted += 1
            try:
                self.client.deliver(entry.payload)
            except DeliveryError as exc:
                report.failed += 1
                self.logger.warning("Delivery of %s failed: %s", entry.request_id, exc)
                self.queue.record_failure(entry.request_id, str(exc))
                continue
            except Exception as exc:
                report.failed += 1
                self.logger.exception("Delivery of %s crashed", entry.request_id)
                self.queue.record_failure(entry.request_id, repr(exc))
                continue

            # also drops the lease, if any
            self.queue.mark_synced(entry.request_id)
            report.delivered += 1
            report.delivered_ids.append(entry.request_id)
            self.logger.info("Request %s delivered", entry.request_id)

        try:
            report.purged = self.queue.purge_old(self.retention_ms)
        except Exception:
            self.logger.exception("Purge after sync pass failed")

        report.finished_at = self._clock()
        if report.attempted:
            self.logger.info(
                "Sync pass (%s) done: %s delivered, %s failed",
                trigger,
                report.delivered,
                report.failed,
            )
        return report

    def status(self) -> dict:
        return {
            "queue": self.queue.queue_name,
            "degraded": self.queue.degraded,
            **self.queue.stats(),
        }


__all__ = [
    "SyncCoordinator",
    "SyncReport",
    "TRIGGER_BACKGROUND",
    "TRIGGER_MANUAL",
    "TRIGGER_ONLINE",
]
