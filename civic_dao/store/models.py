"""
Records held by the proposal store, plus the typed inputs that create and
patch them.

Field names are snake_case in Python and camelCase on the wire
(``votes_for`` <-> ``votesFor``), matching what the dashboard consumes.
"""

from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

_BUDGET_RE = re.compile(r"^\d+(\.\d{1,2})?$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    """Input model: unknown keys are rejected instead of silently merged."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    DEFEATED = "defeated"
    EXECUTED = "executed"
    CANCELED = "canceled"
    EXPIRED = "expired"


class ProposalCategory(str, Enum):
    INFRASTRUCTURE = "Infrastructure"
    ENVIRONMENT = "Environment"
    EDUCATION = "Education"
    HEALTHCARE = "Healthcare"
    TRANSPORTATION = "Transportation"
    SAFETY = "Safety"
    CULTURE = "Culture"
    TECHNOLOGY = "Technology"
    OTHER = "Other"


class VoteSupport(str, Enum):
    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


# Governor encoding: 0 = against, 1 = for, 2 = abstain
GOVERNOR_SUPPORT = {0: VoteSupport.AGAINST, 1: VoteSupport.FOR, 2: VoteSupport.ABSTAIN}
SUPPORT_TO_GOVERNOR = {v: k for k, v in GOVERNOR_SUPPORT.items()}


def normalize_address(addr: Optional[str]) -> str:
    return str(addr or "").strip().lower()


def parse_support(value: Union[int, str, VoteSupport]) -> VoteSupport:
    """Accept ``for|against|abstain`` or the Governor integer encoding."""
    if isinstance(value, VoteSupport):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid support value: {value!r}")
    if isinstance(value, int):
        if value in GOVERNOR_SUPPORT:
            return GOVERNOR_SUPPORT[value]
        raise ValueError(f"invalid support value: {value!r}")
    raw = str(value).strip().lower()
    if raw.isdigit() and int(raw) in GOVERNOR_SUPPORT:
        return GOVERNOR_SUPPORT[int(raw)]
    try:
        return VoteSupport(raw)
    except ValueError:
        raise ValueError(f"invalid support value: {value!r}")


def _parse_budget(value: Any) -> Decimal:
    if isinstance(value, float):
        raise ValueError("budget must be a decimal string, not a float")
    raw = str(value).strip()
    if not _BUDGET_RE.match(raw):
        raise ValueError("budget must match digits with at most two decimals")
    return Decimal(raw)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Proposal(CamelModel):
    id: str
    title: str
    description: str
    proposer: str
    budget: Decimal
    category: ProposalCategory
    status: ProposalStatus = ProposalStatus.PENDING
    created_at: int
    votes_for: int = 0
    votes_against: int = 0
    votes_abstain: int = 0
    total_votes: int = 0
    quorum: int = 0
    executed: bool = False
    canceled: bool = False
    ipfs_hash: Optional[str] = None
    tx_hash: Optional[str] = None
    chain_proposal_id: Optional[str] = None
    start_block: Optional[int] = None
    end_block: Optional[int] = None

    @field_serializer("budget")
    def _budget_as_string(self, budget: Decimal) -> str:
        return str(budget)


class Vote(CamelModel):
    id: str
    proposal_id: str
    voter: str
    support: VoteSupport
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    created_at: int


class Comment(CamelModel):
    id: str
    proposal_id: str
    author: str
    content: str
    created_at: int


class User(CamelModel):
    id: str
    address: str
    name: str = ""
    email: str = ""
    is_admin: bool = False
    is_verified: bool = False
    created_at: int
    last_login: int


# ---------------------------------------------------------------------------
# Typed inputs
# ---------------------------------------------------------------------------


class ProposalCreate(StrictCamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    proposer: str
    budget: Decimal
    category: ProposalCategory
    status: ProposalStatus = ProposalStatus.PENDING
    quorum: Optional[int] = Field(None, ge=0)
    ipfs_hash: Optional[str] = None
    tx_hash: Optional[str] = None
    chain_proposal_id: Optional[str] = None
    start_block: Optional[int] = Field(None, ge=0)
    end_block: Optional[int] = Field(None, ge=0)

    @field_validator("budget", mode="before")
    @classmethod
    def _budget(cls, v: Any) -> Decimal:
        return _parse_budget(v)

    @field_validator("proposer")
    @classmethod
    def _canonical_proposer(cls, v: str) -> str:
        v = normalize_address(v)
        if not v:
            raise ValueError("proposer is required")
        return v


class ProposalPatch(StrictCamelModel):
    """The fields of a proposal an owner may change after creation."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    budget: Optional[Decimal] = None
    category: Optional[ProposalCategory] = None
    status: Optional[ProposalStatus] = None
    quorum: Optional[int] = Field(None, ge=0)
    executed: Optional[bool] = None
    canceled: Optional[bool] = None

    @field_validator("budget", mode="before")
    @classmethod
    def _budget(cls, v: Any) -> Any:
        return None if v is None else _parse_budget(v)


class VoteCreate(StrictCamelModel):
    voter: str
    support: VoteSupport
    reason: Optional[str] = Field(None, max_length=500)
    tx_hash: Optional[str] = None

    @field_validator("support", mode="before")
    @classmethod
    def _support(cls, v: Any) -> VoteSupport:
        return parse_support(v)

    @field_validator("voter")
    @classmethod
    def _canonical_voter(cls, v: str) -> str:
        v = normalize_address(v)
        if not v:
            raise ValueError("voter is required")
        return v


class CommentCreate(StrictCamelModel):
    author: str
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator("author")
    @classmethod
    def _canonical_author(cls, v: str) -> str:
        v = normalize_address(v)
        if not v:
            raise ValueError("author is required")
        return v


class UserPatch(StrictCamelModel):
    """Profile fields a user (or an admin) may change. The address is fixed."""

    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=254, pattern=r"^($|[^@\s]+@[^@\s]+\.[^@\s]+)$")


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


class PaginationInfo(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ProposalPage(CamelModel):
    items: List[Proposal]
    pagination: PaginationInfo


class VotePage(CamelModel):
    items: List[Vote]
    pagination: PaginationInfo


class UserPage(CamelModel):
    items: List[User]
    pagination: PaginationInfo


class VoteDistribution(CamelModel):
    for_: int = Field(..., alias="for")
    against: int
    abstain: int
    total: int


class ActivityEntry(CamelModel):
    type: Literal["vote", "comment"]
    data: Union[Vote, Comment]


class ProposalAnalytics(CamelModel):
    proposal: Proposal
    vote_distribution: VoteDistribution
    participation_rate: float
    comment_count: int
    recent_activity: List[ActivityEntry]


SORTABLE_FIELDS: Dict[str, str] = {
    to_camel(name): name for name in Proposal.model_fields
}
SORTABLE_FIELDS.update({name: name for name in Proposal.model_fields})
