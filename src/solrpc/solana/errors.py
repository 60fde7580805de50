"""Solana client errors."""

from __future__ import annotations

from typing import Any


class SolanaRPCError(RuntimeError):
    """Raised when Solana RPC calls fail."""


class TransportError(SolanaRPCError):
    """Raised when the websocket connection cannot be opened or written to."""


class ProtocolError(SolanaRPCError):
    """Raised for inbound frames that cannot be parsed or classified."""

    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(message)
        self.raw = raw


class UnknownSubscriptionError(SolanaRPCError):
    """Raised when unsubscribing from an id that is not an active subscription."""

    def __init__(self, subscription_id: int) -> None:
        super().__init__(f"No active subscription with id {subscription_id}")
        self.subscription_id = subscription_id


class SubscriptionRejectedError(SolanaRPCError):
    """Reported when the node answers a subscribe request with an error object."""

    def __init__(self, topic: str, request_id: int, error: dict[str, Any]) -> None:
        message = error.get("message", "Unknown RPC error")
        super().__init__(f"{topic} subscription (request {request_id}) rejected: {message}")
        self.topic = topic
        self.request_id = request_id
        self.error = error


__all__ = [
    "SolanaRPCError",
    "TransportError",
    "ProtocolError",
    "UnknownSubscriptionError",
    "SubscriptionRejectedError",
]
