"""Demonstration records loaded at start-up when CIVIC_SEED_DEMO is on."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from .models import Proposal, ProposalCategory, ProposalStatus, User
from .proposal_store import ProposalStore, _now_ms
from .user_store import UserStore

log = logging.getLogger(__name__)

DAY_MS = 86_400_000


def demo_proposals(now_ms: int) -> List[Proposal]:
    return [
        Proposal(
            id="1",
            title="New Bike Lane Infrastructure",
            description=(
                "This proposal aims to implement a comprehensive bike lane infrastructure "
                "project on Main Street to improve cycling safety and promote sustainable "
                "transportation within our city."
            ),
            proposer="0x1234567890abcdef1234567890abcdef12345678",
            budget=Decimal("50000"),
            category=ProposalCategory.INFRASTRUCTURE,
            status=ProposalStatus.ACTIVE,
            created_at=now_ms - DAY_MS * 2,
            start_block=1000000,
            end_block=1001000,
            votes_for=1250,
            votes_against=320,
            votes_abstain=50,
            total_votes=1620,
            quorum=1000,
            ipfs_hash="QmMockHash1",
            tx_hash="0xMockTxHash1",
        ),
        Proposal(
            id="2",
            title="Community Garden Initiative",
            description=(
                "Establish community gardens in three neighborhoods to promote local food "
                "production and community engagement."
            ),
            proposer="0x9876543210fedcba9876543210fedcba98765432",
            budget=Decimal("25000"),
            category=ProposalCategory.ENVIRONMENT,
            status=ProposalStatus.SUCCEEDED,
            created_at=now_ms - DAY_MS * 7,
            start_block=999000,
            end_block=1000000,
            votes_for=2100,
            votes_against=400,
            votes_abstain=100,
            total_votes=2600,
            quorum=1000,
            executed=True,
            ipfs_hash="QmMockHash2",
            tx_hash="0xMockTxHash2",
        ),
    ]


def seed_demo_data(store: ProposalStore, now_ms: Optional[int] = None) -> int:
    """Load the demo proposals into an empty store. Returns how many were added."""
    if store.count_proposals():
        log.info("[store] store not empty, skipping demo seed")
        return 0
    if now_ms is None:
        now_ms = store.now()
    records = demo_proposals(now_ms)
    for p in records:
        store.import_proposal(p)
    log.info("[store] seeded %d demo proposals", len(records))
    return len(records)


def demo_users(now_ms: int) -> List[User]:
    return [
        User(
            id="1",
            address="0x1234567890abcdef1234567890abcdef12345678",
            name="Alice Johnson",
            email="alice@example.com",
            is_verified=True,
            created_at=now_ms,
            last_login=now_ms,
        ),
        User(
            id="2",
            address="0x9876543210fedcba9876543210fedcba98765432",
            name="Bob Smith",
            email="bob@example.com",
            is_admin=True,
            is_verified=True,
            created_at=now_ms,
            last_login=now_ms,
        ),
    ]


def seed_demo_users(users: UserStore, now_ms: Optional[int] = None) -> int:
    if users.count_users():
        return 0
    records = demo_users(_now_ms() if now_ms is None else now_ms)
    for u in records:
        users.import_user(u)
    log.info("[store] seeded %d demo users", len(records))
    return len(records)
