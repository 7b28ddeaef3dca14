"""Shared request plumbing for the routers: app-state lookups, caller identity, envelope."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder

from ..chain.aggregator import ChainReadAggregator
from ..errors import Unauthorized
from ..ipfs.client import IPFSPinner
from ..services.governance_stats import GovernanceStatsService
from ..services.user_profiles import UserProfileService
from ..store.models import PaginationInfo, normalize_address
from ..store.proposal_store import ProposalStore
from ..store.user_store import UserStore


def get_store(request: Request) -> ProposalStore:
    return request.app.state.store


def get_aggregator(request: Request) -> ChainReadAggregator:
    return request.app.state.aggregator


def get_stats(request: Request) -> GovernanceStatsService:
    return request.app.state.stats


def get_pinner(request: Request) -> Optional[IPFSPinner]:
    return request.app.state.pinner


def get_users(request: Request) -> UserStore:
    return request.app.state.users


def get_profiles(request: Request) -> UserProfileService:
    return request.app.state.profiles


def current_address_optional(
    x_user_address: Optional[str] = Header(default=None, alias="X-User-Address"),
) -> Optional[str]:
    """Caller address as set by the upstream auth layer."""
    addr = normalize_address(x_user_address)
    return addr or None


def _require_auth(address: Optional[str]) -> str:
    if not address:
        raise HTTPException(status_code=401, detail="auth_required")
    return address


def _require_admin(address: Optional[str], users: UserStore) -> str:
    who = _require_auth(address)
    if not users.is_admin(who):
        raise Unauthorized("Admin access required")
    return who


def ok(
    data: Any = None,
    message: Optional[str] = None,
    pagination: Optional[PaginationInfo] = None,
) -> Any:
    body: dict = {"success": True, "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    if message:
        body["message"] = message
    return jsonable_encoder(body, by_alias=True)
