"""JSON-RPC request envelopes."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from solrpc.core.config import get_config


class RequestIdGenerator:
    """Thread-safe source of monotonically increasing request ids."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


_default_ids = RequestIdGenerator()


def create_method_name(name: str) -> str:
    """Convert ``slots_updates_subscribe`` style names into ``slotsUpdatesSubscribe``."""

    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def build_request(
    method: str,
    params: Sequence[Any] | None = None,
    *,
    request_id: int | None = None,
    ids: RequestIdGenerator | None = None,
    json_rpc_version: str | None = None,
) -> dict[str, Any]:
    """Return a JSON-RPC request object for ``method`` with positional ``params``."""

    if request_id is None:
        request_id = (ids or _default_ids).next_id()
    return {
        "jsonrpc": json_rpc_version or get_config().json_rpc_version,
        "id": request_id,
        "method": method,
        "params": list(params or []),
    }


__all__ = ["RequestIdGenerator", "build_request", "create_method_name"]
