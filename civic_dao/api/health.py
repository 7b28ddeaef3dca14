# civic_dao/api/health.py
from __future__ import annotations

"""
Health endpoints.

Routes
------
- GET /health
    Simple heartbeat.

- GET /health/summary
    Record counts per collection (users included), proposal counts per
    status, and whether the chain and IPFS collaborators are configured.
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

router = APIRouter(prefix="/health", tags=["health"])


class PingResponse(BaseModel):
    ok: bool = True
    ts: float = Field(..., description="Server timestamp.")


class HealthSummaryResponse(BaseModel):
    ok: bool = True
    proposals: int
    votes: int
    comments: int
    users: int
    by_status: Dict[str, int]
    chain_enabled: bool
    ipfs_enabled: bool
    network: Dict[str, Any] = Field(default_factory=dict)


@router.get("", response_model=PingResponse)
def ping() -> PingResponse:
    return PingResponse(ts=time.time())


@router.get("/summary", response_model=HealthSummaryResponse)
def summary(request: Request) -> HealthSummaryResponse:
    state = request.app.state
    store = state.store
    return HealthSummaryResponse(
        proposals=store.count_proposals(),
        votes=store.count_votes(),
        comments=store.count_comments(),
        users=state.users.count_users(),
        by_status=store.count_by_status(),
        chain_enabled=state.aggregator.enabled,
        ipfs_enabled=state.pinner is not None,
        network=state.network,
    )
