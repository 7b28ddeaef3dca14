from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config as civic_config
from .api import governance, health, proposals, users
from .chain.aggregator import ChainReadAggregator
from .chain.contracts import ChainGateway
from .chain.rpc import JsonRpcClient
from .errors import CivicDAOError
from .ipfs.client import IPFSPinner
from .services.governance_stats import GovernanceStatsService
from .services.user_profiles import UserProfileService
from .settings import Settings, settings as default_settings
from .store.proposal_store import ProposalStore
from .store.seed import seed_demo_data, seed_demo_users
from .store.user_store import UserStore

log = logging.getLogger(__name__)

_HTTP_KINDS = {
    401: ("auth_required", "Authentication required"),
    404: ("not_found", "Not found"),
    405: ("method_not_allowed", "Method not allowed"),
}
_KIND_RE = re.compile(r"^[a-z][a-z0-9_]*$")


def _error(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": kind, "message": message},
    )


def build_aggregator(cfg: Dict[str, Any]) -> ChainReadAggregator:
    chain = cfg.get("chain", {})
    gateway = None
    if civic_config.chain_enabled(cfg):
        rpc = JsonRpcClient(civic_config.get_rpc_url(cfg), timeout=float(chain.get("timeout_sec", 10.0)))
        gateway = ChainGateway(
            rpc,
            addresses=dict(cfg.get("contracts", {})),
            sender=chain.get("sender") or None,
            private_key=chain.get("private_key") or None,
            receipt_timeout=float(chain.get("receipt_timeout_sec", 120.0)),
            poll_interval=float(chain.get("receipt_poll_sec", 1.0)),
        )
        log.info("[chain] using %s (%s signing)", rpc.url, "local" if gateway.signs_locally else "node")
    else:
        log.info("[chain] no RPC url configured; chain-backed endpoints are disabled")
    return ChainReadAggregator(
        gateway,
        timeout=float(chain.get("timeout_sec", 10.0)),
        timelock_delay=civic_config.get_timelock_delay(cfg),
    )


def build_pinner(cfg: Dict[str, Any]) -> Optional[IPFSPinner]:
    url = civic_config.get_ipfs_api_url(cfg)
    if not url:
        return None
    return IPFSPinner(url, timeout=float(cfg.get("ipfs", {}).get("timeout_sec", 30.0)))


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.stats.close()
    app.state.profiles.close()
    app.state.aggregator.close()


def create_app(
    settings: Optional[Settings] = None,
    cfg: Optional[Dict[str, Any]] = None,
    store: Optional[ProposalStore] = None,
    aggregator: Optional[ChainReadAggregator] = None,
    pinner: Optional[IPFSPinner] = None,
    user_store: Optional[UserStore] = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if cfg is None:
        cfg = civic_config.load_config(settings.CONFIG_PATH)

    if store is None:
        store = ProposalStore(
            default_quorum=settings.DEFAULT_QUORUM,
            assumed_total_holders=settings.ASSUMED_TOTAL_HOLDERS,
            max_page_limit=settings.MAX_PAGE_LIMIT,
        )
        if settings.SEED_DEMO:
            seed_demo_data(store)
    if user_store is None:
        user_store = UserStore(admins=settings.ADMIN_ADDRESSES, max_page_limit=settings.MAX_PAGE_LIMIT)
        if settings.SEED_DEMO:
            seed_demo_users(user_store)
    if aggregator is None:
        aggregator = build_aggregator(cfg)
    if pinner is None:
        pinner = build_pinner(cfg)

    app = FastAPI(title="Civic DAO API", lifespan=_lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.config = cfg
    app.state.network = civic_config.get_network(cfg)
    app.state.store = store
    app.state.aggregator = aggregator
    app.state.pinner = pinner
    app.state.stats = GovernanceStatsService(
        store,
        aggregator,
        treasury_token=civic_config.get_contract_address(cfg, "civic_token"),
        timeout=settings.STATS_TIMEOUT_SEC,
    )
    app.state.users = user_store
    app.state.profiles = UserProfileService(user_store, aggregator, timeout=settings.STATS_TIMEOUT_SEC)

    @app.exception_handler(CivicDAOError)
    async def _civic_error(request: Request, exc: CivicDAOError) -> JSONResponse:
        return _error(exc.status_code, exc.kind, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errs = exc.errors()
        first = errs[0] if errs else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "invalid request")
        return _error(400, "validation_failed", f"{loc}: {msg}" if loc else msg)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind, message = _HTTP_KINDS.get(exc.status_code, ("http_error", "Request failed"))
        detail = exc.detail if isinstance(exc.detail, str) else ""
        if _KIND_RE.match(detail):
            kind = detail
        elif detail:
            message = detail
        return _error(exc.status_code, kind, message)

    app.include_router(health.router)
    app.include_router(proposals.router)
    app.include_router(governance.router)
    app.include_router(users.router)

    return app
