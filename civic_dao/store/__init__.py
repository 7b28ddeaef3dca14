from .models import (
    Comment,
    CommentCreate,
    Proposal,
    ProposalCategory,
    ProposalCreate,
    ProposalPatch,
    ProposalStatus,
    User,
    UserPatch,
    Vote,
    VoteCreate,
    VoteSupport,
)
from .proposal_store import ProposalStore
from .seed import seed_demo_data, seed_demo_users
from .user_store import UserStore

__all__ = [
    "Comment",
    "CommentCreate",
    "Proposal",
    "ProposalCategory",
    "ProposalCreate",
    "ProposalPatch",
    "ProposalStatus",
    "ProposalStore",
    "User",
    "UserPatch",
    "UserStore",
    "Vote",
    "VoteCreate",
    "VoteSupport",
    "seed_demo_data",
    "seed_demo_users",
]
