from __future__ import annotations

import logging
import threading
import time
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from ..errors import DuplicateVote, NotFound, Unauthorized, ValidationFailure
from .models import (
    SORTABLE_FIELDS,
    ActivityEntry,
    Comment,
    CommentCreate,
    PaginationInfo,
    Proposal,
    ProposalAnalytics,
    ProposalCreate,
    ProposalPage,
    ProposalPatch,
    ProposalStatus,
    Vote,
    VoteCreate,
    VoteDistribution,
    VotePage,
    VoteSupport,
    normalize_address,
)

log = logging.getLogger(__name__)

Clock = Callable[[], int]

RECENT_ACTIVITY_PER_KIND = 5


def _now_ms() -> int:
    return int(time.time() * 1000)


def _coerce(model: Any, data: Any) -> Any:
    """Turn a plain dict into ``model``; pydantic errors become ValidationFailure."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", "invalid input")
        raise ValidationFailure(f"{loc}: {msg}" if loc else msg)


def _sort_key(value: Any) -> Tuple[int, Any]:
    # None sorts before any value; strings compare case-insensitively
    if value is None:
        return (0, "")
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return (1, value.lower())
    return (1, value)


def _paginate(items: List[Any], page: int, limit: int) -> Tuple[List[Any], PaginationInfo]:
    total = len(items)
    pages = (total + limit - 1) // limit
    start = (page - 1) * limit
    return items[start:start + limit], PaginationInfo(page=page, limit=limit, total=total, pages=pages)


class ProposalStore:
    """
    Volatile store of proposals, votes and comments.

    One re-entrant lock guards all three collections, so every
    read-then-write sequence (the duplicate-vote check and the counter
    increments, find-then-replace on update, find-then-remove on delete)
    is linearizable. Records handed out are copies; mutating them does not
    touch the store.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        default_quorum: int = 1000,
        assumed_total_holders: int = 1000,
        max_page_limit: int = 100,
    ) -> None:
        if assumed_total_holders <= 0:
            raise ValueError("assumed_total_holders must be positive")
        self._clock: Clock = clock or _now_ms
        self.default_quorum = int(default_quorum)
        self.assumed_total_holders = int(assumed_total_holders)
        self.max_page_limit = int(max_page_limit)

        self._lock = threading.RLock()
        # insertion-ordered
        self._proposals: Dict[str, Proposal] = {}
        self._votes: List[Vote] = []
        self._comments: List[Comment] = []
        self._voted: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def now(self) -> int:
        return self._clock()

    def _check_page(self, page: int, limit: int) -> None:
        if page < 1:
            raise ValidationFailure("page must be >= 1")
        if limit < 1:
            raise ValidationFailure("limit must be >= 1")
        if limit > self.max_page_limit:
            raise ValidationFailure(f"limit must be <= {self.max_page_limit}")

    def _get(self, proposal_id: str) -> Proposal:
        p = self._proposals.get(str(proposal_id))
        if p is None:
            raise NotFound(f"Proposal {proposal_id} not found")
        return p

    def _owned(self, proposal_id: str, actor_address: str) -> Proposal:
        p = self._get(proposal_id)
        actor = normalize_address(actor_address)
        if not actor or actor != p.proposer:
            raise Unauthorized("Only the proposer can modify this proposal")
        return p

    # ------------------------------------------------------------------
    # proposals
    # ------------------------------------------------------------------

    def list_proposals(
        self,
        status: Optional[Union[ProposalStatus, str]] = None,
        category: Optional[str] = None,
        proposer: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> ProposalPage:
        """
        Filter, sort and slice the proposals.

        ``status`` and ``category`` match exactly; ``proposer`` and ``search``
        are case-insensitive substring matches (``search`` against title or
        description). Filters combine with AND.
        """
        self._check_page(page, limit)
        field = SORTABLE_FIELDS.get(sort_by)
        if field is None:
            raise ValidationFailure(f"cannot sort by {sort_by!r}")
        order = str(sort_order or "").lower()
        if order not in ("asc", "desc"):
            raise ValidationFailure("sortOrder must be 'asc' or 'desc'")

        status_val = status.value if isinstance(status, Enum) else status
        category_val = category.value if isinstance(category, Enum) else category
        proposer_q = proposer.lower() if proposer else None
        search_q = search.lower() if search else None

        with self._lock:
            rows = list(self._proposals.values())

        def keep(p: Proposal) -> bool:
            if status_val and p.status.value != status_val:
                return False
            if category_val and p.category.value != category_val:
                return False
            if proposer_q and proposer_q not in p.proposer:
                return False
            if search_q and search_q not in p.title.lower() and search_q not in p.description.lower():
                return False
            return True

        rows = [p for p in rows if keep(p)]
        rows.sort(key=lambda p: _sort_key(getattr(p, field)), reverse=(order == "desc"))
        items, info = _paginate(rows, page, limit)
        return ProposalPage(items=[p.model_copy(deep=True) for p in items], pagination=info)

    def search_proposals(self, query: str, page: int = 1, limit: int = 10) -> ProposalPage:
        """Substring match on title, description or category; insertion order."""
        self._check_page(page, limit)
        q = str(query or "").lower()
        with self._lock:
            rows = [
                p for p in self._proposals.values()
                if q in p.title.lower() or q in p.description.lower() or q in p.category.value.lower()
            ]
        items, info = _paginate(rows, page, limit)
        return ProposalPage(items=[p.model_copy(deep=True) for p in items], pagination=info)

    def get_proposal_by_id(self, proposal_id: str) -> Proposal:
        with self._lock:
            return self._get(proposal_id).model_copy(deep=True)

    def create_proposal(self, data: Union[ProposalCreate, Dict[str, Any]]) -> Proposal:
        req: ProposalCreate = _coerce(ProposalCreate, data)
        fields = req.model_dump(exclude_none=True)
        fields.setdefault("quorum", self.default_quorum)
        proposal = Proposal(
            id=str(uuid.uuid4()),
            created_at=self._clock(),
            votes_for=0,
            votes_against=0,
            votes_abstain=0,
            total_votes=0,
            executed=False,
            canceled=False,
            **fields,
        )
        with self._lock:
            self._proposals[proposal.id] = proposal
        log.info("[store] proposal %s created by %s", proposal.id, proposal.proposer)
        return proposal.model_copy(deep=True)

    def import_proposal(self, proposal: Proposal) -> Proposal:
        """Insert a fully-formed record as is (used for seeding)."""
        with self._lock:
            if proposal.id in self._proposals:
                raise ValidationFailure(f"proposal id {proposal.id} already exists")
            proposal = proposal.model_copy(
                deep=True, update={"proposer": normalize_address(proposal.proposer)}
            )
            self._proposals[proposal.id] = proposal
        return proposal.model_copy(deep=True)

    def update_proposal(
        self,
        proposal_id: str,
        patch: Union[ProposalPatch, Dict[str, Any]],
        actor_address: str,
    ) -> Proposal:
        req: ProposalPatch = _coerce(ProposalPatch, patch)
        changes = req.model_dump(exclude_unset=True)
        # explicit nulls do not clear required fields
        changes = {k: v for k, v in changes.items() if v is not None}
        with self._lock:
            current = self._owned(proposal_id, actor_address)
            updated = current.model_copy(update=changes)
            self._proposals[current.id] = updated
        log.info("[store] proposal %s updated (%s)", proposal_id, ",".join(sorted(changes)) or "no-op")
        return updated.model_copy(deep=True)

    def delete_proposal(self, proposal_id: str, actor_address: str) -> None:
        """Remove the proposal along with its votes and comments."""
        with self._lock:
            current = self._owned(proposal_id, actor_address)
            pid = current.id
            del self._proposals[pid]
            self._votes = [v for v in self._votes if v.proposal_id != pid]
            self._comments = [c for c in self._comments if c.proposal_id != pid]
            self._voted = {key for key in self._voted if key[0] != pid}
        log.info("[store] proposal %s deleted", proposal_id)

    def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in ProposalStatus}
        with self._lock:
            for p in self._proposals.values():
                counts[p.status.value] += 1
        return counts

    def overview(self, recent_limit: int = 10) -> Tuple[ProposalPage, Dict[str, int]]:
        """Newest proposals and per-status counts taken from one snapshot."""
        self._check_page(1, recent_limit)
        counts = {s.value: 0 for s in ProposalStatus}
        with self._lock:
            rows = list(self._proposals.values())
        for p in rows:
            counts[p.status.value] += 1
        rows.sort(key=lambda p: _sort_key(p.created_at), reverse=True)
        items, info = _paginate(rows, 1, recent_limit)
        return ProposalPage(items=[p.model_copy(deep=True) for p in items], pagination=info), counts

    def count_proposals(self) -> int:
        with self._lock:
            return len(self._proposals)

    def get_proposals_by_proposer(self, address: str, page: int = 1, limit: int = 10) -> ProposalPage:
        """Exact (canonical) proposer match, newest first."""
        self._check_page(page, limit)
        who = normalize_address(address)
        with self._lock:
            rows = [p for p in self._proposals.values() if p.proposer == who]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        items, info = _paginate(rows, page, limit)
        return ProposalPage(items=[p.model_copy(deep=True) for p in items], pagination=info)

    def get_submitted_proposals(self, page: int = 1, limit: int = 20) -> ProposalPage:
        """Proposals that carry a transaction hash, newest first."""
        self._check_page(page, limit)
        with self._lock:
            rows = [p for p in self._proposals.values() if p.tx_hash]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        items, info = _paginate(rows, page, limit)
        return ProposalPage(items=[p.model_copy(deep=True) for p in items], pagination=info)

    # ------------------------------------------------------------------
    # votes
    # ------------------------------------------------------------------

    def has_voted(self, proposal_id: str, voter: str) -> bool:
        with self._lock:
            return (str(proposal_id), normalize_address(voter)) in self._voted

    def add_vote(self, proposal_id: str, vote: Union[VoteCreate, Dict[str, Any]]) -> Vote:
        req: VoteCreate = _coerce(VoteCreate, vote)
        with self._lock:
            current = self._get(proposal_id)
            key = (current.id, req.voter)
            if key in self._voted:
                raise DuplicateVote(f"{req.voter} has already voted on proposal {current.id}")

            record = Vote(
                id=str(uuid.uuid4()),
                proposal_id=current.id,
                voter=req.voter,
                support=req.support,
                reason=req.reason,
                tx_hash=req.tx_hash,
                created_at=self._clock(),
            )
            counter = {
                VoteSupport.FOR: "votes_for",
                VoteSupport.AGAINST: "votes_against",
                VoteSupport.ABSTAIN: "votes_abstain",
            }[req.support]
            self._proposals[current.id] = current.model_copy(update={
                counter: getattr(current, counter) + 1,
                "total_votes": current.total_votes + 1,
            })
            self._votes.append(record)
            self._voted.add(key)
        log.info("[store] vote %s on %s by %s", record.support.value, record.proposal_id, record.voter)
        return record.model_copy(deep=True)

    def get_proposal_votes(self, proposal_id: str) -> List[Vote]:
        with self._lock:
            pid = self._get(proposal_id).id
            return [v.model_copy(deep=True) for v in self._votes if v.proposal_id == pid]

    def get_votes_by_voter(self, voter: str, page: int = 1, limit: int = 10) -> VotePage:
        """Voting history of one address, newest first."""
        self._check_page(page, limit)
        who = normalize_address(voter)
        with self._lock:
            rows = [v for v in self._votes if v.voter == who]
        rows.reverse()
        rows.sort(key=lambda v: v.created_at, reverse=True)
        items, info = _paginate(rows, page, limit)
        return VotePage(items=[v.model_copy(deep=True) for v in items], pagination=info)

    def count_votes(self) -> int:
        with self._lock:
            return len(self._votes)

    # ------------------------------------------------------------------
    # comments
    # ------------------------------------------------------------------

    def add_comment(self, proposal_id: str, comment: Union[CommentCreate, Dict[str, Any]]) -> Comment:
        req: CommentCreate = _coerce(CommentCreate, comment)
        with self._lock:
            pid = self._get(proposal_id).id
            record = Comment(
                id=str(uuid.uuid4()),
                proposal_id=pid,
                author=req.author,
                content=req.content,
                created_at=self._clock(),
            )
            self._comments.append(record)
        return record.model_copy(deep=True)

    def get_proposal_comments(self, proposal_id: str) -> List[Comment]:
        with self._lock:
            pid = self._get(proposal_id).id
            return [c.model_copy(deep=True) for c in self._comments if c.proposal_id == pid]

    def count_comments(self) -> int:
        with self._lock:
            return len(self._comments)

    # ------------------------------------------------------------------
    # analytics
    # ------------------------------------------------------------------

    def get_proposal_analytics(self, proposal_id: str) -> ProposalAnalytics:
        """
        Vote distribution (taken from the proposal's counters), participation
        against the assumed holder count, and the last five votes plus last
        five comments, newest first.
        """
        with self._lock:
            p = self._get(proposal_id).model_copy(deep=True)
            votes = [v for v in self._votes if v.proposal_id == p.id]
            comments = [c for c in self._comments if c.proposal_id == p.id]

        activity: List[ActivityEntry] = []
        activity.extend(_activity("vote", votes[-RECENT_ACTIVITY_PER_KIND:]))
        activity.extend(_activity("comment", comments[-RECENT_ACTIVITY_PER_KIND:]))
        activity.sort(key=lambda e: e.data.created_at, reverse=True)

        return ProposalAnalytics(
            proposal=p,
            vote_distribution=VoteDistribution(
                for_=p.votes_for,
                against=p.votes_against,
                abstain=p.votes_abstain,
                total=p.total_votes,
            ),
            participation_rate=p.total_votes / self.assumed_total_holders,
            comment_count=len(comments),
            recent_activity=activity,
        )


def _activity(kind: str, records: Iterable[Union[Vote, Comment]]) -> List[ActivityEntry]:
    return [ActivityEntry(type=kind, data=r.model_copy(deep=True)) for r in records]
