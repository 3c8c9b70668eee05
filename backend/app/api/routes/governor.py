"""Read-only view of request governor state."""
from __future__ import annotations

from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends

from app.deps import get_governor
from app.schemas.governor import GovernorStatus
from app.services.rate_limit import RequestGovernor

router = APIRouter(prefix="/governor", tags=["governor"])


@router.get("", response_model=List[GovernorStatus], summary="List throttled keys")
async def list_governor_keys(
    governor: RequestGovernor = Depends(get_governor),
) -> List[GovernorStatus]:
    return [GovernorStatus(**asdict(governor.snapshot(key))) for key in governor.keys()]


@router.get("/{key}", response_model=GovernorStatus, summary="Inspect one key")
async def get_governor_key(
    key: str,
    governor: RequestGovernor = Depends(get_governor),
) -> GovernorStatus:
    return GovernorStatus(**asdict(governor.snapshot(key)))
