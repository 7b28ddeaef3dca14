"""Run a handful of blocking calls concurrently under one deadline."""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, Executor, Future, wait
from typing import Any, Callable, Dict, Optional

from .errors import UpstreamTimeout


def fan_out(
    pool: Executor,
    calls: Dict[str, Callable[[], Any]],
    timeout: Optional[float],
    operation: str,
) -> Dict[str, Any]:
    """
    Submit every call to ``pool`` and collect the results by key.

    The first failure is re-raised as is. If the deadline passes first,
    UpstreamTimeout is raised. In both cases the sub-calls that have not
    started are cancelled and any partial results are dropped; calls
    already running are abandoned and their results ignored.
    """
    futures: Dict[Future, str] = {pool.submit(fn): key for key, fn in calls.items()}
    done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

    failed = [f for f in done if f.exception() is not None]
    if failed or pending:
        for f in pending:
            f.cancel()
    if failed:
        raise failed[0].exception()  # type: ignore[misc]
    if pending:
        raise UpstreamTimeout(operation, timeout)

    return {futures[f]: f.result() for f in done}
