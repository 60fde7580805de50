"""Solana JSON-RPC helpers over HTTP."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from solrpc.core.config import ConfigurationError, SolRPCConfig, get_config, resolve_setting

from .errors import SolanaRPCError
from .request_body import RequestIdGenerator, build_request

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


RequestFn = Callable[[str, Any], httpx.Response]


@dataclass
class SolanaRPCClient:
    """Thin wrapper around Solana's JSON-RPC interface.

    ``endpoint`` overrides the configured ``cluster``; construction fails
    with ``ConfigurationError`` when neither is set.
    """

    endpoint: str | None = None
    timeout: float | None = None
    config: SolRPCConfig | None = None
    _request: RequestFn | None = None
    _ids: RequestIdGenerator = field(default_factory=RequestIdGenerator, repr=False)

    def __post_init__(self) -> None:
        settings = self.config or get_config()
        self.endpoint = resolve_setting("cluster", self.endpoint or None, settings)
        if not self.endpoint:
            raise ConfigurationError("An HTTP cluster endpoint is required")
        self.timeout = resolve_setting("request_timeout", self.timeout, settings)
        self._json_rpc_version = settings.json_rpc_version
        self._encoding = settings.encoding
        if self._request is None:
            self._request = httpx.post

    @property
    def cluster(self) -> str:
        return self.endpoint  # type: ignore[return-value]

    def call(self, method: str, params: Sequence[Any] | None = None) -> Any:
        """Send one JSON-RPC request and return its ``result``."""

        payload = build_request(method, params, ids=self._ids, json_rpc_version=self._json_rpc_version)
        try:
            response = self._request(self.endpoint, json=payload, timeout=self.timeout)  # type: ignore[arg-type,misc]
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SolanaRPCError(f"RPC request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:  # pragma: no cover - unexpected for compliant RPC
            raise SolanaRPCError("Invalid JSON in RPC response") from exc

        if not isinstance(data, dict):
            raise SolanaRPCError("Malformed RPC response; expected a JSON object")
        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {}
            message = error.get("message", "Unknown RPC error")
            raise SolanaRPCError(message)
        if "result" not in data:
            raise SolanaRPCError("Malformed RPC response; missing result")

        logger.debug("%s returned from %s", method, self.endpoint)
        return data["result"]

    def get_balance(self, public_key: str, *, commitment: str = "confirmed") -> float:
        """Return balance for `public_key` in SOL."""
        result = self.call("getBalance", [public_key, {"commitment": commitment}])
        try:
            lamports = result["value"]
        except (KeyError, TypeError) as exc:
            raise SolanaRPCError("Malformed RPC response; missing balance value") from exc

        if not isinstance(lamports, int):
            raise SolanaRPCError("Balance value is not an integer")

        balance = lamports / LAMPORTS_PER_SOL
        logger.debug("Fetched balance %.9f SOL for %s", balance, public_key)
        return balance

    def get_slot(self, *, commitment: str | None = None) -> int:
        params = [{"commitment": commitment}] if commitment else []
        slot = self.call("getSlot", params)
        if not isinstance(slot, int):
            raise SolanaRPCError("Slot value is not an integer")
        return slot

    def get_version(self) -> dict[str, Any]:
        return self.call("getVersion")

    def get_account_info(
        self,
        public_key: str,
        *,
        commitment: str | None = None,
        encoding: str | None = None,
    ) -> dict[str, Any] | None:
        """Return the account ``value`` or ``None`` when the account does not exist."""
        options: dict[str, Any] = {}
        if commitment:
            options["commitment"] = commitment
        options["encoding"] = encoding or self._encoding
        result = self.call("getAccountInfo", [public_key, options])
        if not isinstance(result, dict):
            raise SolanaRPCError("Malformed RPC response; expected account context")
        return result.get("value")

    def get_signature_statuses(
        self,
        signatures: Sequence[str],
        *,
        search_transaction_history: bool = False,
    ) -> list[dict[str, Any] | None]:
        params: list[Any] = [list(signatures)]
        if search_transaction_history:
            params.append({"searchTransactionHistory": True})
        result = self.call("getSignatureStatuses", params)
        try:
            return list(result["value"])
        except (KeyError, TypeError) as exc:
            raise SolanaRPCError("Malformed RPC response; missing signature statuses") from exc


__all__ = ["LAMPORTS_PER_SOL", "SolanaRPCClient"]
