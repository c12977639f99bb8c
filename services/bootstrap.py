from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import QUEUE
from services.delivery import EmergencyClient
from services.log import get_logger
from services.offline_queue import STORAGE_ERRORS, OfflineRequestQueue
from services.submission import EmergencySubmitter
from services.sync_service import SyncCoordinator
from storage.config import AppConfig, load_config
from storage.db import init_db


logger = get_logger()


@dataclass
class Services:
    config: AppConfig
    queue: OfflineRequestQueue
    client: EmergencyClient
    coordinator: SyncCoordinator
    submitter: EmergencySubmitter


def build_services(config: Optional[AppConfig] = None, *, init: bool = True) -> Services:
    cfg = config or load_config()
    if init:
        try:
            init_db()
        except STORAGE_ERRORS as exc:
            # the queue degrades to memory on its own
            logger.error("Could not initialise the queue database: %s", exc)
    queue = OfflineRequestQueue(QUEUE.name, max_attempts=cfg.resolved_max_attempts())
    client = EmergencyClient(cfg.resolved_base_url())
    coordinator = SyncCoordinator(queue, client, use_leases=cfg.resolved_use_leases())
    submitter = EmergencySubmitter(client, queue)
    return Services(
        config=cfg,
        queue=queue,
        client=client,
        coordinator=coordinator,
        submitter=submitter,
    )


__all__ = ["Services", "build_services"]
