from __future__ import annotations

import socket
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import requests

from core.settings import CONNECTIVITY, DELIVERY
from services.log import get_logger


logger = get_logger("delivery")


class DeliveryError(Exception):
    """A request could not be delivered to the emergency endpoint."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class DeliveryTimeout(DeliveryError):
    def __init__(self, message: str):
        super().__init__(message, transient=True)


class EmergencyClient:
    """POSTs emergency request payloads as JSON to the booking API."""

    def __init__(
        self,
        base_url: str = DELIVERY.base_url,
        endpoint: str = DELIVERY.endpoint,
        *,
        timeout: float = DELIVERY.timeout_seconds,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Emergency-Request": "true",
            }
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    def deliver(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise DeliveryTimeout(f"Timed out after {self.timeout}s: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise DeliveryError(f"Network error: {exc}", transient=True) from exc

        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        logger.debug("POST %s -> %s", self.url, response.status_code)
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}

    def is_reachable(self, timeout: float = CONNECTIVITY.probe_timeout_sec) -> bool:
        """TCP probe of the API host; cheap enough to poll."""

        parts = urlsplit(self.base_url)
        host = parts.hostname
        if not host:
            return False
        port = parts.port or (443 if parts.scheme == "https" else 80)
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False


__all__ = ["EmergencyClient", "DeliveryError", "DeliveryTimeout"]
