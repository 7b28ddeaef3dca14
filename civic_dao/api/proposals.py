from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field, field_validator

from ..chain.aggregator import ChainReadAggregator
from ..errors import DuplicateVote
from ..ipfs.client import IPFSPinner
from ..store.models import (
    CommentCreate,
    ProposalCategory,
    ProposalCreate,
    ProposalPatch,
    ProposalStatus,
    StrictCamelModel,
    VoteCreate,
    VoteSupport,
    parse_support,
)
from ..store.proposal_store import ProposalStore
from .deps import (
    _require_auth,
    current_address_optional,
    get_aggregator,
    get_pinner,
    get_store,
    ok,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proposals", tags=["proposals"])


class NewProposal(StrictCamelModel):
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=5000)
    budget: str = Field(..., pattern=r"^\d+(\.\d{1,2})?$")
    category: ProposalCategory
    # optional Governor actions; a no-op treasury call is used when empty
    targets: List[str] = Field(default_factory=list)
    values: List[int] = Field(default_factory=list)
    calldatas: List[str] = Field(default_factory=list)


class CastVote(StrictCamelModel):
    support: VoteSupport
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("support", mode="before")
    @classmethod
    def _support(cls, v: Any) -> VoteSupport:
        return parse_support(v)


class NewComment(StrictCamelModel):
    content: str = Field(..., min_length=1, max_length=1000)


@router.get("")
def list_proposals(
    page: int = 1,
    limit: int = 10,
    status: Optional[ProposalStatus] = None,
    category: Optional[ProposalCategory] = None,
    proposer: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    store: ProposalStore = Depends(get_store),
):
    result = store.list_proposals(
        status=status,
        category=category,
        proposer=proposer,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ok(result.items, pagination=result.pagination)


@router.get("/search/{query}")
def search_proposals(
    query: str,
    page: int = 1,
    limit: int = 10,
    store: ProposalStore = Depends(get_store),
):
    result = store.search_proposals(query, page=page, limit=limit)
    return ok(result.items, pagination=result.pagination)


@router.get("/{proposal_id}")
def get_proposal(proposal_id: str, store: ProposalStore = Depends(get_store)):
    return ok(store.get_proposal_by_id(proposal_id))


@router.post("", status_code=201)
def create_proposal(
    payload: NewProposal,
    address: Optional[str] = Depends(current_address_optional),
    store: ProposalStore = Depends(get_store),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
    pinner: Optional[IPFSPinner] = Depends(get_pinner),
):
    proposer = _require_auth(address)

    ipfs_hash = None
    if pinner is not None:
        ipfs_hash = pinner.pin_json({
            "title": payload.title,
            "description": payload.description,
            "category": payload.category.value,
            "budget": payload.budget,
            "proposer": proposer,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        })

    tx_hash = None
    chain_id = None
    if aggregator.enabled:
        submitted = aggregator.create_proposal(
            title=payload.title,
            description=f"ipfs://{ipfs_hash}" if ipfs_hash else payload.description,
            budget=payload.budget,
            category=payload.category.value,
            targets=payload.targets,
            values=payload.values,
            calldatas=payload.calldatas,
        )
        tx_hash, chain_id = submitted.tx_hash, submitted.chain_proposal_id
        if chain_id is None:
            log.warning("[api] %s mined without a ProposalCreatedWithBudget log", tx_hash)

    proposal = store.create_proposal(ProposalCreate(
        title=payload.title,
        description=payload.description,
        proposer=proposer,
        budget=payload.budget,
        category=payload.category,
        status=ProposalStatus.PENDING,
        ipfs_hash=ipfs_hash,
        tx_hash=tx_hash,
        chain_proposal_id=chain_id,
    ))
    return ok(proposal, message="Proposal created successfully")


@router.put("/{proposal_id}")
def update_proposal(
    proposal_id: str,
    patch: ProposalPatch,
    address: Optional[str] = Depends(current_address_optional),
    store: ProposalStore = Depends(get_store),
):
    actor = _require_auth(address)
    return ok(store.update_proposal(proposal_id, patch, actor), message="Proposal updated successfully")


@router.delete("/{proposal_id}")
def delete_proposal(
    proposal_id: str,
    address: Optional[str] = Depends(current_address_optional),
    store: ProposalStore = Depends(get_store),
):
    actor = _require_auth(address)
    store.delete_proposal(proposal_id, actor)
    return ok(message="Proposal deleted successfully")


@router.post("/{proposal_id}/vote", status_code=201)
def cast_vote(
    proposal_id: str,
    payload: CastVote,
    address: Optional[str] = Depends(current_address_optional),
    store: ProposalStore = Depends(get_store),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
):
    voter = _require_auth(address)
    proposal = store.get_proposal_by_id(proposal_id)
    # checked again under the store lock by add_vote; this one avoids a wasted chain write
    if store.has_voted(proposal.id, voter):
        raise DuplicateVote(f"{voter} has already voted on proposal {proposal.id}")

    tx_hash = None
    if proposal.chain_proposal_id and aggregator.enabled:
        tx_hash = aggregator.vote_on_proposal(proposal.chain_proposal_id, payload.support, payload.reason or "")

    vote = store.add_vote(proposal.id, VoteCreate(
        voter=voter,
        support=payload.support,
        reason=payload.reason,
        tx_hash=tx_hash,
    ))
    return ok(vote, message="Vote cast successfully")


@router.get("/{proposal_id}/votes")
def list_votes(proposal_id: str, store: ProposalStore = Depends(get_store)):
    return ok(store.get_proposal_votes(proposal_id))


@router.get("/{proposal_id}/comments")
def list_comments(proposal_id: str, store: ProposalStore = Depends(get_store)):
    return ok(store.get_proposal_comments(proposal_id))


@router.post("/{proposal_id}/comments", status_code=201)
def add_comment(
    proposal_id: str,
    payload: NewComment,
    address: Optional[str] = Depends(current_address_optional),
    store: ProposalStore = Depends(get_store),
):
    author = _require_auth(address)
    comment = store.add_comment(proposal_id, CommentCreate(author=author, content=payload.content))
    return ok(comment, message="Comment added successfully")


@router.get("/{proposal_id}/analytics")
def proposal_analytics(proposal_id: str, store: ProposalStore = Depends(get_store)):
    return ok(store.get_proposal_analytics(proposal_id))
