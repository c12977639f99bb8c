"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH, DELIVERY, QUEUE


@dataclass
class AppConfig:
    """User overrides persisted to ``config.json``.

    ``None`` means "use the default from :mod:`core.settings`".
    """

    api_base_url: Optional[str] = None
    max_attempts: Optional[int] = None
    use_leases: Optional[bool] = None

    def resolved_base_url(self) -> str:
        return self.api_base_url or DELIVERY.base_url

    def resolved_max_attempts(self) -> Optional[int]:
        if self.max_attempts is not None and self.max_attempts > 0:
            return self.max_attempts
        return QUEUE.max_attempts

    def resolved_use_leases(self) -> bool:
        if self.use_leases is None:
            return QUEUE.use_leases
        return bool(self.use_leases)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    return AppConfig(
        api_base_url=data.get("api_base_url"),
        max_attempts=data.get("max_attempts"),
        use_leases=data.get("use_leases"),
    )


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
