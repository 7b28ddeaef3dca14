"""
civic_dao/chain/aggregator.py
-----------------------------

Read-through view of the governance, token, treasury and identity
contracts, plus the handful of writes the API exposes.

- Reads that need several contract calls fan them out on a thread pool
  under one deadline; a failure or timeout in any branch fails the whole
  read and no partial result is returned.
- Every public method names its operation; lower-level errors leave as
  UpstreamFailure("Failed to <operation>: <cause>"), timeouts as
  UpstreamTimeout. Nothing is retried or cached.
- Writes block until the transaction is mined and return its hash.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from ..errors import NotFound, UpstreamFailure, UpstreamTimeout, ValidationFailure
from ..fanout import fan_out
from ..store.models import SUPPORT_TO_GOVERNOR, VoteSupport, normalize_address, parse_support
from .contracts import PROPOSAL_CREATED_TOPIC, ChainGateway, hex_to_int
from .models import (
    ChainProposal,
    GovernanceParameters,
    ProposalSubmission,
    TransactionStatus,
    UserIdentity,
    VotingPower,
    proposal_state_name,
)

log = logging.getLogger(__name__)

TIMELOCK_DELAY_SEC = 2 * 24 * 60 * 60
TOKEN_DECIMALS = 18


def to_base_units(amount: Any, decimals: int = TOKEN_DECIMALS) -> int:
    """Whole-token amount ("1000.50") -> integer base units."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value() or scaled < 0:
        raise ValueError(f"amount {amount!r} is not representable in base units")
    return int(scaled)


def _chain_id(value: Any) -> int:
    try:
        pid = int(str(value).strip(), 0)
    except ValueError:
        raise ValidationFailure(f"invalid chain proposal id: {value!r}")
    if pid < 0:
        raise ValidationFailure(f"invalid chain proposal id: {value!r}")
    return pid


def _amount(value: Any) -> int:
    try:
        return to_base_units(value)
    except (ArithmeticError, ValueError):
        raise ValidationFailure(f"invalid token amount: {value!r}")


def _created_proposal_id(receipt: Dict[str, Any], dao_address: str) -> Optional[str]:
    for entry in receipt.get("logs") or []:
        topics = entry.get("topics") or []
        if str(entry.get("address", "")).lower() != dao_address:
            continue
        if len(topics) > 1 and str(topics[0]).lower() == PROPOSAL_CREATED_TOPIC:
            return str(int(topics[1], 16))
    return None


class ChainReadAggregator:
    def __init__(
        self,
        gateway: Optional[ChainGateway],
        timeout: float = 10.0,
        timelock_delay: int = TIMELOCK_DELAY_SEC,
        max_workers: int = 8,
    ) -> None:
        self.gateway = gateway
        self.timeout = float(timeout)
        self.timelock_delay = int(timelock_delay)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chain-read")

    @property
    def enabled(self) -> bool:
        return self.gateway is not None

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        if self.gateway is not None:
            self.gateway.rpc.close()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[ChainGateway]:
        if self.gateway is None:
            raise UpstreamFailure(name, "chain not configured")
        try:
            yield self.gateway
        except (NotFound, UpstreamFailure, ValidationFailure):
            raise
        except UpstreamTimeout as e:
            log.warning("[chain] %s timed out", name)
            raise UpstreamTimeout(name, e.seconds)
        except Exception as e:
            log.warning("[chain] failed to %s: %s", name, e)
            raise UpstreamFailure(name, str(e) or type(e).__name__)

    def _parallel(self, calls: Dict[str, Any], operation: str) -> Dict[str, Any]:
        return fan_out(self._pool, calls, self.timeout, operation)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_governance_parameters(self) -> GovernanceParameters:
        with self._operation("get governance parameters") as gw:

            def quorum_now() -> int:
                # quorum() rejects the current block as a timepoint
                block = gw.block_number()
                return gw.call("civic_dao", "quorum", max(block - 1, 0))

            r = self._parallel(
                {
                    "delay": lambda: gw.call("civic_dao", "votingDelay"),
                    "period": lambda: gw.call("civic_dao", "votingPeriod"),
                    "threshold": lambda: gw.call("civic_dao", "proposalThreshold"),
                    "quorum": quorum_now,
                },
                "get governance parameters",
            )
            return GovernanceParameters(
                voting_delay=int(r["delay"]),
                voting_period=int(r["period"]),
                proposal_threshold=str(r["threshold"]),
                quorum_votes=str(r["quorum"]),
                timelock_delay=self.timelock_delay,
            )

    def get_voting_power(self, address: str) -> VotingPower:
        addr = normalize_address(address)
        with self._operation("get voting power") as gw:
            r = self._parallel(
                {
                    "balance": lambda: gw.call("civic_token", "balanceOf", addr),
                    "votes": lambda: gw.call("civic_token", "getVotes", addr),
                    "delegate": lambda: gw.call("civic_token", "delegates", addr),
                },
                "get voting power",
            )
            return VotingPower(
                address=addr,
                balance=str(r["balance"]),
                voting_power=str(r["votes"]),
                delegated_to=str(r["delegate"]),
                delegated_from=[],
            )

    def get_treasury_balance(self, token_address: str) -> str:
        with self._operation("get treasury balance") as gw:
            return str(gw.call("treasury", "getTokenBalance", normalize_address(token_address)))

    def get_transaction_status(self, tx_hash: str) -> TransactionStatus:
        with self._operation("get transaction status") as gw:
            r = self._parallel(
                {
                    "tx": lambda: gw.get_transaction(tx_hash),
                    "receipt": lambda: gw.get_receipt(tx_hash),
                },
                "get transaction status",
            )
            tx, receipt = r["tx"], r["receipt"]
            if tx is None:
                raise NotFound(f"Transaction {tx_hash} not found")
            gas_price = hex_to_int(tx.get("gasPrice"))
            if not receipt:
                return TransactionStatus(
                    hash=tx_hash,
                    status="pending",
                    gas_price=None if gas_price is None else str(gas_price),
                )
            gas_used = hex_to_int(receipt.get("gasUsed"))
            return TransactionStatus(
                hash=tx_hash,
                status="confirmed" if hex_to_int(receipt.get("status")) == 1 else "failed",
                block_number=hex_to_int(receipt.get("blockNumber")),
                gas_used=None if gas_used is None else str(gas_used),
                gas_price=None if gas_price is None else str(gas_price),
            )

    def get_proposal_details(self, chain_proposal_id: Any) -> ChainProposal:
        pid = _chain_id(chain_proposal_id)
        with self._operation("get proposal details") as gw:
            r = self._parallel(
                {
                    "data": lambda: gw.call("civic_dao", "getProposalData", pid),
                    "state": lambda: gw.call("civic_dao", "state", pid),
                },
                "get proposal details",
            )
            data = r["data"]
            return ChainProposal(
                id=str(pid),
                title=data["title"],
                description=data["description"],
                budget=str(data["budget"]),
                category=data["category"],
                proposer=data["proposer"],
                created_at=int(data["createdAt"]) * 1000,
                state=proposal_state_name(r["state"]),
            )

    def is_user_verified(self, address: str) -> bool:
        with self._operation("check user verification") as gw:
            return bool(gw.call("zk_identity", "isVerified", normalize_address(address)))

    def get_user_identity(self, address: str) -> UserIdentity:
        with self._operation("get user identity") as gw:
            ident = gw.call("zk_identity", "getIdentity", normalize_address(address))
            return UserIdentity(
                identity_hash=ident["identityHash"],
                verification_timestamp=int(ident["verificationTimestamp"]) * 1000,
                is_verified=bool(ident["isVerified"]),
                metadata=ident["metadata"],
                proof_count=int(ident["proofCount"]),
            )

    # ------------------------------------------------------------------
    # writes (each blocks until mined)
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        title: str,
        description: str,
        budget: Any,
        category: str,
        targets: Optional[List[str]] = None,
        values: Optional[List[int]] = None,
        calldatas: Optional[List[str]] = None,
    ) -> ProposalSubmission:
        base_units = _amount(budget)
        with self._operation("create proposal") as gw:
            if not targets:
                # a no-op call on the treasury; Governor needs at least one action
                targets = [gw.addresses.get("treasury", "")]
                values = [0]
                calldatas = ["0x"]
            receipt = gw.transact_receipt(
                "civic_dao",
                "proposeWithBudget",
                targets,
                list(values or [0] * len(targets)),
                list(calldatas or ["0x"] * len(targets)),
                description,
                title,
                base_units,
                category,
            )
            return ProposalSubmission(
                tx_hash=receipt["transactionHash"],
                chain_proposal_id=_created_proposal_id(receipt, gw.addresses.get("civic_dao", "")),
            )

    def vote_on_proposal(self, chain_proposal_id: Any, support: Any, reason: str = "") -> str:
        try:
            choice: VoteSupport = parse_support(support)
        except ValueError as e:
            raise ValidationFailure(str(e))
        pid = _chain_id(chain_proposal_id)
        with self._operation("vote on proposal") as gw:
            encoded = SUPPORT_TO_GOVERNOR[choice]
            if reason:
                return gw.transact("civic_dao", "castVoteWithReason", pid, encoded, reason)
            return gw.transact("civic_dao", "castVote", pid, encoded)

    def execute_proposal(self, chain_proposal_id: Any) -> str:
        pid = _chain_id(chain_proposal_id)
        with self._operation("execute proposal") as gw:
            return gw.transact("civic_dao", "execute", pid)

    def delegate_voting_power(self, delegatee: str) -> str:
        with self._operation("delegate voting power") as gw:
            return gw.transact("civic_token", "delegate", normalize_address(delegatee))

    def deposit_funds(self, token_address: str, amount: Any) -> str:
        base_units = _amount(amount)
        with self._operation("deposit funds") as gw:
            return gw.transact("treasury", "depositFunds", normalize_address(token_address), base_units)

    def submit_zk_proof(self, identity_hash: str, proof: str, metadata: str) -> str:
        with self._operation("submit ZK proof") as gw:
            return gw.transact("zk_identity", "submitProof", identity_hash, proof, metadata)
