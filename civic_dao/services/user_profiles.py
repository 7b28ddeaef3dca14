from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct

from ..chain.aggregator import ChainReadAggregator
from ..chain.models import UserIdentity, VotingPower
from ..errors import CivicDAOError, Unauthorized, UpstreamTimeout, ValidationFailure
from ..fanout import fan_out
from ..store.models import CamelModel, User, normalize_address
from ..store.user_store import UserStore

log = logging.getLogger(__name__)


class UserProfile(CamelModel):
    user: User
    voting_power: Optional[VotingPower] = None
    identity: Optional[UserIdentity] = None


def recover_signer(message: str, signature: str) -> str:
    """Address that produced an EIP-191 ``personal_sign`` signature over ``message``."""
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature).lower()
    except Exception as e:
        raise Unauthorized(f"Invalid signature: {e}") from e


class UserProfileService:
    """
    Sign-in and profile reads for the user registry.

    Chain figures are best effort here: a failed or slow chain read leaves
    the figure null (or the stored verification flag unchanged) instead of
    failing the request.
    """

    def __init__(
        self,
        users: UserStore,
        aggregator: ChainReadAggregator,
        timeout: float = 15.0,
        max_workers: int = 4,
    ) -> None:
        self.users = users
        self.aggregator = aggregator
        self.timeout = float(timeout)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="profiles")

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def register_or_login(
        self,
        address: str,
        signature: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Tuple[User, bool]:
        who = normalize_address(address)
        if signature:
            if not message:
                raise ValidationFailure("message is required with a signature")
            if recover_signer(message, signature) != who:
                raise Unauthorized("Signature does not match address")

        user, created = self.users.register_or_login(who)
        if not self.aggregator.enabled:
            return user, created
        try:
            verified = self.aggregator.is_user_verified(who)
        except CivicDAOError as e:
            log.warning("[users] could not refresh verification for %s: %s", who, e.message)
            return user, created
        return self.users.set_verification(who, verified), created

    def _best_effort(self, what: str, fn: Callable[[], Any]) -> Callable[[], Any]:
        def run() -> Any:
            try:
                return fn()
            except CivicDAOError as e:
                log.warning("[users] %s unavailable: %s", what, e.message)
                return None

        return run

    def get_profile(self, address: str) -> UserProfile:
        user = self.users.get_user(address)
        try:
            r = fan_out(
                self._pool,
                {
                    "power": self._best_effort(
                        "voting power", lambda: self.aggregator.get_voting_power(user.address)
                    ),
                    "identity": self._best_effort(
                        "identity", lambda: self.aggregator.get_user_identity(user.address)
                    ),
                },
                self.timeout,
                "get user profile",
            )
        except UpstreamTimeout:
            log.warning("[users] chain reads for %s passed the %ss deadline", user.address, self.timeout)
            r = {}
        return UserProfile(user=user, voting_power=r.get("power"), identity=r.get("identity"))
