"""Import of the browser-era ``offlineEmergencyRequests`` localStorage dump."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from datetime_utils import now_ms, parse_rfc3339, to_ms
from services.log import get_logger
from services.offline_queue import OfflineRequestQueue


# bookkeeping keys the old web client mixed into the payload
_META_KEYS = {"storedAt", "synced"}

logger = get_logger("queue")


def _entry_timestamp(raw: Dict[str, Any]) -> int:
    stored = raw.get("storedAt")
    if isinstance(stored, (int, float)) and stored > 0:
        return int(stored)
    parsed = parse_rfc3339(raw.get("timestamp")) if isinstance(raw.get("timestamp"), str) else None
    if parsed is not None:
        return to_ms(parsed)
    return now_ms()


def load_legacy_entries(path: Path) -> List[Dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        # some exports wrap the array under the storage key
        data = data.get("offlineEmergencyRequests", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of requests")
    return [item for item in data if isinstance(item, dict)]


def import_legacy_json(path: Path, queue: OfflineRequestQueue) -> int:
    """Copy every legacy entry into ``queue`` keeping its time and synced flag."""

    imported = 0
    for raw in load_legacy_entries(path):
        payload = {key: value for key, value in raw.items() if key not in _META_KEYS}
        queue.restore(
            payload,
            _entry_timestamp(raw),
            synced=bool(raw.get("synced")),
        )
        imported += 1
    logger.info("Imported %s legacy request(s) from %s", imported, path)
    return imported


__all__ = ["import_legacy_json", "load_legacy_entries"]
