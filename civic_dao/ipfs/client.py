"""
IPFS pinning for proposal metadata.

Talks to a Kubo-compatible HTTP API (/api/v0/add?pin=true) with requests.
Accepts a full http URL, a bare host:port, or a /ip4/<host>/tcp/<port>
multiaddr.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

import requests

from ..errors import UpstreamFailure, UpstreamTimeout

log = logging.getLogger(__name__)


def normalize_api_addr(api_addr: str) -> str:
    if api_addr.startswith("/ip4/"):
        # /ip4/127.0.0.1/tcp/5001 -> http://127.0.0.1:5001
        parts = api_addr.split("/")
        if len(parts) < 5:
            raise ValueError(f"bad IPFS multiaddr: {api_addr}")
        api_addr = f"http://{parts[2]}:{parts[4]}"
    elif not api_addr.startswith(("http://", "https://")):
        api_addr = f"http://{api_addr}"
    return api_addr.rstrip("/")


class IPFSPinner:
    def __init__(self, api_addr: str, timeout: float = 30.0) -> None:
        self.base = normalize_api_addr(api_addr)
        self.timeout = float(timeout)

    def _add(self, name: str, data: bytes) -> str:
        r = requests.post(
            self.base + "/api/v0/add",
            params={"pin": "true"},
            files={"file": (name, data)},
            timeout=self.timeout,
        )
        r.raise_for_status()
        cid = r.json().get("Hash")
        if not cid:
            raise ValueError("IPFS add returned no hash")
        return str(cid)

    def pin_json(self, obj: Dict[str, Any], name: str = "metadata.json") -> str:
        """Add ``obj`` as JSON, pinned. Returns the CID."""
        data = json.dumps(obj, sort_keys=True, default=str).encode("utf-8")
        try:
            cid = self._add(name, data)
        except requests.Timeout:
            raise UpstreamTimeout("pin proposal metadata", self.timeout)
        except (requests.RequestException, ValueError) as e:
            log.warning("[ipfs] pin failed: %s", e)
            raise UpstreamFailure("pin proposal metadata", str(e))
        log.info("[ipfs] pinned %s (%d bytes)", cid, len(data))
        return cid

