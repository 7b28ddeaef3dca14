from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from ..errors import NotFound, Unauthorized, ValidationFailure
from .models import User, UserPage, UserPatch, normalize_address
from .proposal_store import Clock, _coerce, _now_ms, _paginate

log = logging.getLogger(__name__)


class UserStore:
    """
    Volatile registry of the addresses that have signed in.

    Same discipline as ProposalStore: one re-entrant lock around the map,
    records replaced rather than mutated, copies handed out. ``admins`` are
    addresses that are administrators whether or not they have registered.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        admins: Iterable[str] = (),
        max_page_limit: int = 100,
    ) -> None:
        self._clock: Clock = clock or _now_ms
        self.admins = {normalize_address(a) for a in admins if normalize_address(a)}
        self.max_page_limit = int(max_page_limit)
        self._lock = threading.RLock()
        # address -> user, insertion-ordered
        self._users: Dict[str, User] = {}

    def _get(self, address: str) -> User:
        u = self._users.get(normalize_address(address))
        if u is None:
            raise NotFound(f"User {address} not found")
        return u

    def register_or_login(self, address: str) -> Tuple[User, bool]:
        """Create the user on first sight, otherwise stamp the login. Returns (user, created)."""
        who = normalize_address(address)
        if not who:
            raise ValidationFailure("address is required")
        with self._lock:
            now = self._clock()
            current = self._users.get(who)
            if current is None:
                user = User(
                    id=str(uuid.uuid4()),
                    address=who,
                    is_admin=who in self.admins,
                    created_at=now,
                    last_login=now,
                )
                created = True
            else:
                user = current.model_copy(update={"last_login": now})
                created = False
            self._users[who] = user
        log.info("[users] %s %s", "registered" if created else "login", who)
        return user.model_copy(deep=True), created

    def import_user(self, user: User) -> User:
        with self._lock:
            self._users[user.address] = user.model_copy(deep=True)
        return user

    def find_user(self, address: str) -> Optional[User]:
        with self._lock:
            u = self._users.get(normalize_address(address))
        return None if u is None else u.model_copy(deep=True)

    def get_user(self, address: str) -> User:
        with self._lock:
            return self._get(address).model_copy(deep=True)

    def is_admin(self, address: Optional[str]) -> bool:
        who = normalize_address(address)
        if not who:
            return False
        if who in self.admins:
            return True
        with self._lock:
            u = self._users.get(who)
            return bool(u and u.is_admin)

    def list_users(
        self,
        search: Optional[str] = None,
        verified: Optional[bool] = None,
        page: int = 1,
        limit: int = 50,
    ) -> UserPage:
        """``search`` is a case-insensitive substring of name, address or email."""
        if page < 1 or limit < 1:
            raise ValidationFailure("page and limit must be >= 1")
        if limit > self.max_page_limit:
            raise ValidationFailure(f"limit must be <= {self.max_page_limit}")
        q = search.lower() if search else None
        with self._lock:
            rows = list(self._users.values())
        if q:
            rows = [u for u in rows if q in u.name.lower() or q in u.address or q in u.email.lower()]
        if verified is not None:
            rows = [u for u in rows if u.is_verified == verified]
        items, info = _paginate(rows, page, limit)
        return UserPage(items=[u.model_copy(deep=True) for u in items], pagination=info)

    def update_profile(
        self,
        address: str,
        patch: Union[UserPatch, Dict[str, Any]],
        actor_address: str,
    ) -> User:
        req: UserPatch = _coerce(UserPatch, patch)
        changes = {k: v for k, v in req.model_dump(exclude_unset=True).items() if v is not None}
        actor = normalize_address(actor_address)
        with self._lock:
            current = self._get(address)
            if actor != current.address and not self.is_admin(actor):
                raise Unauthorized("Can only update your own profile")
            updated = current.model_copy(update=changes)
            self._users[current.address] = updated
        log.info("[users] %s updated (%s)", updated.address, ",".join(sorted(changes)) or "no-op")
        return updated.model_copy(deep=True)

    def set_verification(self, address: str, is_verified: bool) -> User:
        with self._lock:
            current = self._get(address)
            updated = current.model_copy(update={"is_verified": bool(is_verified)})
            self._users[current.address] = updated
        return updated.model_copy(deep=True)

    def count_users(self) -> int:
        with self._lock:
            return len(self._users)
