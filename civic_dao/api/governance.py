from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from ..chain.aggregator import ChainReadAggregator
from ..services.governance_stats import GovernanceStatsService
from ..store.models import StrictCamelModel
from ..store.proposal_store import ProposalStore
from .deps import _require_auth, current_address_optional, get_aggregator, get_stats, get_store, ok

router = APIRouter(prefix="/api/governance", tags=["governance"])

_ADDRESS = r"^0x[0-9a-fA-F]{40}$"


class Delegation(StrictCamelModel):
    delegatee: str = Field(..., pattern=_ADDRESS)


class Deposit(StrictCamelModel):
    token: str = Field(..., pattern=_ADDRESS)
    amount: str = Field(..., pattern=r"^\d+(\.\d{1,18})?$")


@router.get("/stats")
def governance_stats(stats: GovernanceStatsService = Depends(get_stats)):
    return ok(stats.get_governance_stats())


@router.get("/parameters")
def governance_parameters(aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok(aggregator.get_governance_parameters())


@router.get("/voting-power/{address}")
def voting_power(address: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok(aggregator.get_voting_power(address))


@router.post("/delegate")
def delegate(
    payload: Delegation,
    address: Optional[str] = Depends(current_address_optional),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
):
    _require_auth(address)
    tx_hash = aggregator.delegate_voting_power(payload.delegatee)
    return ok({"txHash": tx_hash}, message="Voting power delegated successfully")


@router.get("/transaction/{tx_hash}")
def transaction_status(tx_hash: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok(aggregator.get_transaction_status(tx_hash))


@router.post("/execute/{chain_proposal_id}")
def execute(
    chain_proposal_id: str,
    address: Optional[str] = Depends(current_address_optional),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
):
    _require_auth(address)
    tx_hash = aggregator.execute_proposal(chain_proposal_id)
    return ok({"txHash": tx_hash}, message="Proposal execution initiated")


@router.get("/proposals/{chain_proposal_id}")
def chain_proposal(chain_proposal_id: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok(aggregator.get_proposal_details(chain_proposal_id))


@router.get("/treasury/{token}")
def treasury_balance(token: str, aggregator: ChainReadAggregator = Depends(get_aggregator)):
    return ok({"token": token.lower(), "balance": aggregator.get_treasury_balance(token)})


@router.post("/treasury/deposit")
def treasury_deposit(
    payload: Deposit,
    address: Optional[str] = Depends(current_address_optional),
    aggregator: ChainReadAggregator = Depends(get_aggregator),
):
    _require_auth(address)
    tx_hash = aggregator.deposit_funds(payload.token, payload.amount)
    return ok({"txHash": tx_hash}, message="Funds deposited successfully")


@router.get("/history")
def governance_history(page: int = 1, limit: int = 20, store: ProposalStore = Depends(get_store)):
    result = store.get_submitted_proposals(page=page, limit=limit)
    return ok(result.items, pagination=result.pagination)
