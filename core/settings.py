"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``TYREHERO_DATA_DIR`` in ``env`` wins over the platform defaults.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())

    override = environ.get("TYREHERO_DATA_DIR")
    if override:
        return Path(override).expanduser()

    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "TyreHero"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "offline_queue.db"
CONFIG_PATH = DATA_DIR / "config.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class QueueSettings:
    name: str = "offlineEmergencyRequests"
    retention_hours: int = 24
    # None keeps undeliverable entries queued forever.
    max_attempts: Optional[int] = None
    lease_ttl_seconds: int = 30
    use_leases: bool = False


@dataclass(frozen=True)
class DeliverySettings:
    base_url: str = os.environ.get("TYREHERO_API_URL", "http://localhost:3000")
    endpoint: str = "/api/emergency-request"
    timeout_seconds: float = 15.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0


@dataclass(frozen=True)
class EmergencySettings:
    phone: str = "08001234567"
    required_fields: tuple[str, ...] = ("name", "phone", "location")


@dataclass(frozen=True)
class ConnectivitySettings:
    enabled: bool = True
    poll_interval_sec: int = 10
    debounce_sec: float = 5.0
    probe_timeout_sec: float = 3.0


@dataclass(frozen=True)
class UISettings:
    app_title: str = f"{APP_NAME} Emergency"
    theme_mode: str = "light"
    color_scheme_seed: str = "#DC2626"
    window_min_width: int = 480
    window_min_height: int = 640


QUEUE = QueueSettings()
DELIVERY = DeliverySettings()
EMERGENCY = EmergencySettings()
CONNECTIVITY = ConnectivitySettings()
UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "SYNC_LOG_PATH",
    "QUEUE",
    "DELIVERY",
    "EMERGENCY",
    "CONNECTIVITY",
    "UI",
    "QueueSettings",
    "DeliverySettings",
    "get_default_data_dir",
]
