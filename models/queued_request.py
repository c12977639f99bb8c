"""SQLModel table for emergency requests awaiting delivery."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import now_ms


def new_request_id() -> str:
    return uuid.uuid4().hex


class QueuedRequest(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: str = Field(default_factory=new_request_id, index=True, unique=True)
    queue_name: str = Field(index=True)
    payload: str
    enqueued_at: int = Field(default_factory=now_ms, index=True)
    synced: bool = Field(default=False, index=True)
    synced_at: Optional[int] = None
    attempts: int = Field(default=0)
    last_error: Optional[str] = None
    dead_lettered: bool = Field(default=False)
    claim_token: Optional[str] = None
    claimed_until: Optional[int] = None


__all__ = ["QueuedRequest", "new_request_id"]
