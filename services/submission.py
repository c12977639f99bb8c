"""Interactive emergency form submission.

The live submit path retries network failures a few times, then hands the
payload to the offline queue. Whatever happens, a failed submission always
comes back with the direct phone number so the caller can show it.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from core.settings import DELIVERY, EMERGENCY
from datetime_utils import to_rfc3339_utc, utc_now
from models.queued_request import new_request_id
from services.delivery import DeliveryError
from services.log import get_logger
from services.offline_queue import OfflineRequestQueue
from services.sync_service import Deliverer


STATUS_SENT = "sent"
STATUS_QUEUED = "queued"

logger = get_logger("submission")


class ValidationError(ValueError):
    def __init__(self, missing: Iterable[str]):
        self.missing = tuple(missing)
        super().__init__("Missing required fields: " + ", ".join(self.missing))


@dataclass
class SubmissionOutcome:
    status: str
    request_id: str
    payload: Dict[str, Any]
    message: str
    response: Optional[Dict[str, Any]] = None
    fallback_phone: Optional[str] = None
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == STATUS_SENT


def validate_form(
    form: Dict[str, Any],
    required: Iterable[str] = EMERGENCY.required_fields,
) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in form.items():
        cleaned[key] = value.strip() if isinstance(value, str) else value
    missing = [name for name in required if not cleaned.get(name)]
    if missing:
        raise ValidationError(missing)
    return cleaned


def build_payload(form: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(form)
    payload.setdefault("requestId", new_request_id())
    payload.setdefault("timestamp", to_rfc3339_utc(utc_now()))
    payload.setdefault("priority", "emergency")
    return payload


class EmergencySubmitter:
    def __init__(
        self,
        client: Deliverer,
        queue: OfflineRequestQueue,
        *,
        retry_attempts: int = DELIVERY.retry_attempts,
        retry_delay: float = DELIVERY.retry_delay_seconds,
        phone: str = EMERGENCY.phone,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.queue = queue
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.phone = phone
        self._sleep = sleep

    def submit(self, form: Dict[str, Any]) -> SubmissionOutcome:
        payload = build_payload(validate_form(form))
        request_id = payload["requestId"]

        try:
            response = self._deliver_with_retry(payload)
        except DeliveryError as exc:
            return self._fallback(payload, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error submitting %s", request_id)
            return self._fallback(payload, repr(exc))

        logger.info("Emergency request %s submitted", request_id)
        name = payload.get("name") or "there"
        return SubmissionOutcome(
            status=STATUS_SENT,
            request_id=request_id,
            payload=payload,
            response=response,
            message=f"Help is on the way, {name}. A technician will call you shortly.",
        )

    def _deliver_with_retry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        attempt = 0
        while True:
            try:
                return self.client.deliver(payload)
            except DeliveryError as exc:
                if not exc.transient or attempt >= self.retry_attempts:
                    raise
                delay = self.retry_delay * (attempt + 1)
                logger.warning(
                    "Submission attempt %s failed (%s), retrying in %.1fs",
                    attempt + 1,
                    exc,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    def _fallback(self, payload: Dict[str, Any], error: str) -> SubmissionOutcome:
        entry = self.queue.enqueue(payload, request_id=payload["requestId"])
        logger.warning("Emergency request %s queued for later delivery: %s", payload["requestId"], error)
        if entry.in_memory:
            message = (
                "We couldn't reach our dispatch team or save your request on this device. "
                f"Please call us now on {self.phone}."
            )
        else:
            message = (
                "We couldn't reach our dispatch team. Your request is saved and will be sent "
                f"automatically once you're back online. For immediate help call {self.phone}."
            )
        return SubmissionOutcome(
            status=STATUS_QUEUED,
            request_id=entry.request_id,
            payload=payload,
            message=message,
            fallback_phone=self.phone,
            error=error,
        )


__all__ = [
    "EmergencySubmitter",
    "SubmissionOutcome",
    "ValidationError",
    "STATUS_QUEUED",
    "STATUS_SENT",
    "build_payload",
    "validate_form",
]
