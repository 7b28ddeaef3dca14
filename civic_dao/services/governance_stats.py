from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..chain.aggregator import ChainReadAggregator
from ..errors import CivicDAOError
from ..fanout import fan_out
from ..store.models import CamelModel, Proposal, ProposalStatus, normalize_address
from ..store.proposal_store import ProposalStore

log = logging.getLogger(__name__)

RECENT_PROPOSALS_LIMIT = 10


class GovernanceStats(CamelModel):
    voting_delay: int
    voting_period: int
    proposal_threshold: str
    quorum_votes: str
    timelock_delay: int
    total_proposals: int
    active_proposals: int
    executed_proposals: int
    treasury_balance: str
    recent_proposals: List[Proposal]


class UserStats(CamelModel):
    address: str
    voting_power: str
    token_balance: str
    proposals_created: int
    votes_cast: int
    is_verified: bool


class GovernanceStatsService:
    """
    Dashboard aggregate: governance parameters and treasury balance from the
    chain, proposal counts and the ten most recent proposals from the store.

    The three branches run concurrently under one deadline. There is no
    partial result: if any branch fails or the deadline passes, the whole
    call fails.
    """

    def __init__(
        self,
        store: ProposalStore,
        aggregator: ChainReadAggregator,
        treasury_token: str,
        timeout: float = 15.0,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.treasury_token = normalize_address(treasury_token)
        self.timeout = float(timeout)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stats")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def get_governance_stats(self) -> GovernanceStats:
        r = fan_out(
            self._pool,
            {
                "params": self.aggregator.get_governance_parameters,
                "store": lambda: self.store.overview(RECENT_PROPOSALS_LIMIT),
                "treasury": lambda: self.aggregator.get_treasury_balance(self.treasury_token),
            },
            self.timeout,
            "get governance stats",
        )
        params, (recent, counts) = r["params"], r["store"]
        log.debug("[stats] status counts %s", counts)

        return GovernanceStats(
            **params.model_dump(),
            total_proposals=recent.pagination.total,
            active_proposals=counts[ProposalStatus.ACTIVE.value],
            executed_proposals=counts[ProposalStatus.EXECUTED.value],
            treasury_balance=r["treasury"],
            recent_proposals=recent.items,
        )

    def get_user_stats(self, address: str) -> UserStats:
        """Chain figures fall back to "0"/False when the chain read fails."""
        who = normalize_address(address)
        voting_power: Optional[str] = None
        balance: Optional[str] = None
        verified = False

        try:
            vp = self.aggregator.get_voting_power(who)
            voting_power, balance = vp.voting_power, vp.balance
        except CivicDAOError as e:
            log.warning("[stats] voting power unavailable for %s: %s", who, e.message)
        try:
            verified = self.aggregator.is_user_verified(who)
        except CivicDAOError as e:
            log.warning("[stats] verification status unavailable for %s: %s", who, e.message)

        return UserStats(
            address=who,
            voting_power=voting_power or "0",
            token_balance=balance or "0",
            proposals_created=self.store.get_proposals_by_proposer(who, page=1, limit=1).pagination.total,
            votes_cast=self.store.get_votes_by_voter(who, page=1, limit=1).pagination.total,
            is_verified=verified,
        )
