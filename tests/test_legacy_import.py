import json

import pytest

from services.legacy_import import import_legacy_json, load_legacy_entries


def _write(tmp_path, data):
    path = tmp_path / "offline.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_import_keeps_order_time_and_synced_flag(tmp_path, queue):
    path = _write(
        tmp_path,
        [
            {"name": "A", "requestId": "r1", "storedAt": 1_700_000_000_000, "synced": False},
            {"name": "B", "requestId": "r2", "storedAt": 1_700_000_100_000, "synced": True},
            {"name": "C", "requestId": "r3", "storedAt": 1_699_999_000_000, "synced": False},
        ],
    )

    assert import_legacy_json(path, queue) == 3

    pending = queue.list_pending()
    assert [p.payload["name"] for p in pending] == ["C", "A"]
    assert pending[1].enqueued_at == 1_700_000_000_000
    assert "storedAt" not in pending[0].payload
    assert "synced" not in pending[0].payload
    assert queue.stats()["synced"] == 1


def test_import_falls_back_to_iso_timestamp(tmp_path, queue):
    path = _write(tmp_path, {"offlineEmergencyRequests": [{"name": "A", "timestamp": "2024-01-01T00:00:00.000Z"}]})

    import_legacy_json(path, queue)

    [entry] = queue.list_pending()
    assert entry.enqueued_at == 1_704_067_200_000


def test_load_rejects_non_list(tmp_path):
    path = _write(tmp_path, "nope")
    with pytest.raises(ValueError):
        load_legacy_entries(path)
