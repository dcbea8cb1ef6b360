"""Notification schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: dict
    is_read: bool
    channels: dict
    priority: str
    sent_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}
