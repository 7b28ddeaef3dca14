# civic_dao/config.py
import copy
import os
from typing import Any, Dict, Optional

import yaml

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# -------- Defaults (non-secret) --------
_DEFAULT: Dict[str, Any] = {
    "chain": {
        "network": "polygonAmoy",
        # Empty -> chain-backed features are disabled
        "rpc_url": "",
        # Node-managed (unlocked) account used for eth_sendTransaction on dev nodes
        "sender": "",
        # Hex private key; when set, transactions are signed locally and sent raw
        "private_key": "",
        "timeout_sec": 10.0,
        "receipt_timeout_sec": 120.0,
        "receipt_poll_sec": 1.0,
    },
    "contracts": {
        "civic_token": ZERO_ADDRESS,
        "civic_dao": ZERO_ADDRESS,
        "timelock": ZERO_ADDRESS,
        "treasury": ZERO_ADDRESS,
        "zk_identity": ZERO_ADDRESS,
    },
    "networks": {
        "polygon": {
            "chain_id": 137,
            "name": "Polygon",
            "rpc_url": "https://polygon-rpc.com",
            "block_explorer": "https://polygonscan.com",
        },
        "polygonAmoy": {
            "chain_id": 80002,
            "name": "Polygon Amoy",
            "rpc_url": "https://rpc-amoy.polygon.technology",
            "block_explorer": "https://amoy.polygonscan.com",
        },
        "sepolia": {
            "chain_id": 11155111,
            "name": "Sepolia",
            "rpc_url": "",
            "block_explorer": "https://sepolia.etherscan.io",
        },
    },
    "governance": {
        "voting_delay": 1,  # blocks
        "voting_period": 40320,  # ~1 week at 12s blocks
        "proposal_threshold": "1000000000000000000000",  # 1000 tokens
        "quorum_percentage": 4,
        "min_proposal_budget": "1000000000000000000000",
        "max_proposal_budget": "1000000000000000000000000",
        "timelock_delay": 2 * 24 * 60 * 60,  # seconds
    },
    "ipfs": {
        # Empty -> proposals are stored without pinning metadata
        "api_url": "",
        "timeout_sec": 30.0,
    },
}

# -------- ENV overrides (addresses and endpoints are deployment specific) --------
_ENV_MAP = {
    ("chain", "rpc_url"): ("RPC_URL", str),
    ("chain", "sender"): ("CHAIN_SENDER_ADDRESS", str),
    ("chain", "private_key"): ("CHAIN_PRIVATE_KEY", str),
    ("chain", "timeout_sec"): ("CHAIN_TIMEOUT_SEC", float),
    ("chain", "receipt_timeout_sec"): ("CHAIN_RECEIPT_TIMEOUT_SEC", float),
    ("contracts", "civic_token"): ("CIVIC_TOKEN_ADDRESS", str),
    ("contracts", "civic_dao"): ("CIVIC_DAO_ADDRESS", str),
    ("contracts", "timelock"): ("TIMELOCK_ADDRESS", str),
    ("contracts", "treasury"): ("TREASURY_ADDRESS", str),
    ("contracts", "zk_identity"): ("ZK_IDENTITY_ADDRESS", str),
    ("ipfs", "api_url"): ("IPFS_HTTP_API", str),
}


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        try:
            casted = cast(val)
        except ValueError:
            raise ValueError(f"{env_name} must be a {cast.__name__}, got {val!r}")
        cfg.setdefault(section, {})
        cfg[section][key] = casted
    return cfg


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the YAML config (civic_config.yaml by default) over the defaults,
    then applies ENV overrides. A missing file means defaults + ENV.
    """
    cfg = copy.deepcopy(_DEFAULT)

    if path and os.path.exists(path):
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        cfg = _deep_merge(cfg, data)

    cfg = _apply_env_overrides(cfg)

    # Addresses are compared in lowercase everywhere
    contracts = cfg.get("contracts", {})
    for name, addr in list(contracts.items()):
        contracts[name] = str(addr or ZERO_ADDRESS).strip().lower()

    return cfg


# -------- Small helpers used by the app --------
def get_rpc_url(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("chain", {}).get("rpc_url") or "").strip()


def chain_enabled(cfg: Dict[str, Any]) -> bool:
    return bool(get_rpc_url(cfg))


def get_contract_address(cfg: Dict[str, Any], name: str) -> str:
    return str(cfg.get("contracts", {}).get(name) or ZERO_ADDRESS)


def get_timelock_delay(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("governance", {}).get("timelock_delay", 2 * 24 * 60 * 60))


def get_network(cfg: Dict[str, Any]) -> Dict[str, Any]:
    name = cfg.get("chain", {}).get("network", "")
    return dict(cfg.get("networks", {}).get(name) or {})


def get_ipfs_api_url(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("ipfs", {}).get("api_url") or "").strip()
