from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..chain.aggregator import ChainReadAggregator
from ..errors import Unauthorized
from ..services.governance_stats import GovernanceStatsService
from ..services.user_profiles import UserProfileService
from ..store.models import StrictCamelModel, UserPatch, normalize_address
from ..store.proposal_store import ProposalStore
from ..store.user_store import UserStore
from .deps import (
    _require_admin,
    _require_auth,
    current_address_optional,
    get_aggregator,
    get_profiles,
    get_stats,
    get_store,
    get_users,
    ok,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


class SignIn(StrictCamelModel):
    address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    # optional personal_sign proof of key ownership
    signature: Optional[str] = Field(None, pattern=r"^0x[0-9a-fA-F]{130}$")
    message: Optional[str] = Field(None, max_length=1000)


class VerificationUpdate(StrictCamelModel):
    is_verified: bool


class ProofSubmission(StrictCamelModel):
    identity_hash: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$")
    proof: str = Field(..., pattern=r"^0x([0-9a-fA-F]{2})*$")
    metadata: str = Field("", max_length=1000)


@router.post("/auth")
def sign_in(payload: SignIn, profiles: UserProfileService = Depends(get_profiles)):
    user, created = profiles.register_or_login(payload.address, payload.signature, payload.message)
    return ok({"user": user}, message="Registration successful" if created else "Login successful")


@router.get("")
def list_users(
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    verified: Optional[bool] = None,
    caller: Optional[str] = Depends(current_address_optional),
    users: UserStore = Depends(get_users),
):
    _require_admin(caller, users)
    result = users.list_users(search=search, verified=verified, page=page, limit=limit)
    return ok(result.items, pagination=result.pagination)


@router.get("/{address}")
def user_profile(address: str, profiles: UserProfileService = Depends(get_profiles)):
    return ok(profiles.get_profile(address))


@router.put("/{address}")
def update_profile(
    address: str,
    patch: UserPatch,
    caller: Optional[str] = Depends(current_address_optional),
    users: UserStore = Depends(get_users),
):
    actor = _require_auth(caller)
    return ok(users.update_profile(address, patch, actor), message="Profile updated successfully")


@router.put("/{address}/verification")
def update_verification(
    address: str,
    payload: VerificationUpdate,
    caller: Optional[str] = Depends(current_address_optional),
    users: UserStore = Depends(get_users),
):
    admin = _require_admin(caller, users)
    user = users.set_verification(address, payload.is_verified)
    log.info("[users] %s set verification of %s to %s", admin, user.address, user.is_verified)
    return ok(user, message="User verification status updated")


@router.get("/{address}/identity")
def user_identity(address: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok(aggregator.get_user_identity(address))


@router.get("/{address}/verified")
def user_verified(address: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok({"address": normalize_address(address), "isVerified": aggregator.is_user_verified(address)})


@router.post("/{address}/verify")
def submit_proof(
    address: str,
    payload: ProofSubmission,
    caller: Optional[str] = Depends(current_address_optional),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
    users: UserStore = Depends(get_users),
):
    who = _require_auth(caller)
    if who != normalize_address(address):
        raise Unauthorized("Proofs can only be submitted for your own address")
    tx_hash = aggregator.submit_zk_proof(payload.identity_hash, payload.proof, payload.metadata)
    if users.find_user(who) is not None:
        users.set_verification(who, True)
    return ok({"txHash": tx_hash}, message="ZK proof submitted successfully")


@router.get("/{address}/votes")
def user_votes(address: str, page: int = 1, limit: int = 20, store: ProposalStore = Depends(get_store)):
    result = store.get_votes_by_voter(address, page=page, limit=limit)
    return ok(result.items, pagination=result.pagination)


@router.get("/{address}/proposals")
def user_proposals(address: str, page: int = 1, limit: int = 20, store: ProposalStore = Depends(get_store)):
    result = store.get_proposals_by_proposer(address, page=page, limit=limit)
    return ok(result.items, pagination=result.pagination)


@router.get("/{address}/stats")
def user_stats(address: str, stats: GovernanceStatsService = Depends(get_stats)):
    return ok(stats.get_user_stats(address))
