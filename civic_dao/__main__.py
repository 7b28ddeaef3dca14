# civic_dao/__main__.py
"""
Entry point for running the Civic DAO API as a module:
    python -m civic_dao [--host 127.0.0.1] [--port 5000] [--config civic_config.yaml]
                        [--no-seed] [--log-level INFO]
Env toggles:
  RPC_URL=...             -> JSON-RPC endpoint; chain features are off without it
  CIVIC_DAO_ADDRESS=...   -> governance contract (see civic_dao.config for the rest)
  IPFS_HTTP_API=...       -> Kubo API used to pin proposal metadata
"""

from __future__ import annotations

import argparse
import os

import uvicorn

from .civic_api import create_app
from .settings import Settings


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="civic-dao",
        description="Run the Civic DAO governance API",
    )
    p.add_argument(
        "--host",
        default=Settings.BIND_HOST,
        help=f"Bind address (default: {Settings.BIND_HOST})",
    )
    p.add_argument(
        "--port",
        type=int,
        default=Settings.BIND_PORT,
        help=f"HTTP port (default: {Settings.BIND_PORT})",
    )
    p.add_argument(
        "--config",
        default=Settings.CONFIG_PATH,
        help="YAML config with network and contract addresses",
    )
    p.add_argument(
        "--no-seed",
        action="store_true",
        help="Start with an empty store instead of the demo proposals",
    )
    p.add_argument(
        "--log-level",
        default=Settings.LOG_LEVEL,
        help="Python logging level (default: INFO)",
    )
    return p.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)

    settings = Settings()
    settings.CONFIG_PATH = args.config
    settings.LOG_LEVEL = str(args.log_level).upper()
    if args.no_seed:
        settings.SEED_DEMO = False

    if args.config and not os.path.exists(args.config):
        print(f"[civic-dao] {args.config} not found, using defaults and environment")

    app = create_app(settings=settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
