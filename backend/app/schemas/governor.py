"""Schemas exposing request governor state."""
from __future__ import annotations

from pydantic import BaseModel


class GovernorStatus(BaseModel):
    key: str
    in_window: int
    queued: int
    processing: bool
    max_requests: int
    window_seconds: float
