"""
civic_dao/chain/rpc.py
----------------------

JSON-RPC 2.0 client for an Ethereum-compatible node, over httpx.

Transport timeouts surface as UpstreamTimeout so callers can tell "the node
did not answer in time" apart from "the node answered with an error".
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, List, Optional

import httpx

from ..errors import UpstreamTimeout

log = logging.getLogger(__name__)


class RpcError(Exception):
    """The node answered, but with an error (revert, bad params, ...)."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not url:
            raise ValueError("rpc url is required")
        self.url = url
        self.timeout = float(timeout)
        self._client = httpx.Client(timeout=self.timeout, transport=transport)
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "JsonRpcClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": list(params or []),
        }
        try:
            r = self._client.post(self.url, json=payload)
            r.raise_for_status()
            body = r.json()
        except httpx.TimeoutException:
            log.warning("[chain] %s timed out after %ss", method, self.timeout)
            raise UpstreamTimeout(method, self.timeout)
        except httpx.HTTPStatusError as e:
            raise RpcError(f"node returned HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise RpcError(f"transport error: {e}")
        except ValueError:
            raise RpcError("node returned a non-JSON response")

        if not isinstance(body, dict):
            raise RpcError("malformed JSON-RPC response")
        err = body.get("error")
        if err:
            if isinstance(err, dict):
                msg = str(err.get("message") or "rpc error")
                data = err.get("data")
                # revert reason, when the node includes one
                if isinstance(data, str) and data and data not in msg:
                    msg = f"{msg} ({data})"
                raise RpcError(msg, code=err.get("code"), data=data)
            raise RpcError(str(err))
        if "result" not in body:
            raise RpcError("JSON-RPC response has no result")
        return body["result"]
