from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from ..store.models import CamelModel

# Governor ProposalState
PROPOSAL_STATES = {
    0: "Pending",
    1: "Active",
    2: "Canceled",
    3: "Defeated",
    4: "Succeeded",
    5: "Queued",
    6: "Expired",
    7: "Executed",
}


def proposal_state_name(state: int) -> str:
    return PROPOSAL_STATES.get(int(state), "Unknown")


class GovernanceParameters(CamelModel):
    voting_delay: int
    voting_period: int
    proposal_threshold: str
    quorum_votes: str
    timelock_delay: int


class VotingPower(CamelModel):
    address: str
    balance: str
    voting_power: str
    delegated_to: str
    # not computed; needs an event index
    delegated_from: List[str] = Field(default_factory=list)


class TransactionStatus(CamelModel):
    hash: str
    status: Literal["pending", "confirmed", "failed"]
    block_number: Optional[int] = None
    gas_used: Optional[str] = None
    gas_price: Optional[str] = None


class UserIdentity(CamelModel):
    identity_hash: str
    verification_timestamp: int  # epoch millis, 0 when never verified
    is_verified: bool
    metadata: str
    proof_count: int


class ChainProposal(CamelModel):
    id: str
    title: str
    description: str
    budget: str
    category: str
    proposer: str
    created_at: int  # epoch millis
    state: str


class ProposalSubmission(CamelModel):
    tx_hash: str
    # from the ProposalCreatedWithBudget log; None if the receipt lacks it
    chain_proposal_id: Optional[str] = None
