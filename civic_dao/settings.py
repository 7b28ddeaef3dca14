from __future__ import annotations

import os
from typing import List


def _csv(name: str, default: List[str] | None = None) -> List[str]:
    raw = os.getenv(name, "")
    items = [x.strip() for x in raw.split(",") if x.strip()]
    return items if items else list(default or [])


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    # Server
    BIND_HOST: str = os.getenv("CIVIC_BIND_HOST", "127.0.0.1")
    BIND_PORT: int = int(os.getenv("CIVIC_BIND_PORT", "5000"))
    CORS_ORIGINS: List[str] = _csv("CIVIC_CORS_ORIGINS", default=["http://localhost:3000"])
    LOG_LEVEL: str = os.getenv("CIVIC_LOG_LEVEL", "INFO").upper()

    # YAML config with contract addresses / network (see civic_dao.config)
    CONFIG_PATH: str = os.getenv("CIVIC_CONFIG_PATH", "civic_config.yaml")

    # Store
    SEED_DEMO: bool = _flag("CIVIC_SEED_DEMO", "1")
    DEFAULT_QUORUM: int = int(os.getenv("CIVIC_DEFAULT_QUORUM", "1000"))
    ASSUMED_TOTAL_HOLDERS: int = int(os.getenv("CIVIC_ASSUMED_TOTAL_HOLDERS", "1000"))
    MAX_PAGE_LIMIT: int = int(os.getenv("CIVIC_MAX_PAGE_LIMIT", "100"))

    # Users
    ADMIN_ADDRESSES: List[str] = _csv("CIVIC_ADMIN_ADDRESSES")

    # Dashboard aggregation deadline
    STATS_TIMEOUT_SEC: float = float(os.getenv("CIVIC_STATS_TIMEOUT_SEC", "15"))


settings = Settings()
