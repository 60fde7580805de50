"""solrpc: Solana JSON-RPC client with websocket subscription management."""

from .core.config import ConfigurationError, SolRPCConfig, configure, get_config
from .solana import (
    ProtocolError,
    SolanaRPCClient,
    SolanaRPCError,
    SubscriptionRejectedError,
    TransportError,
    UnknownSubscriptionError,
    WebsocketMethodsWrapper,
)

__all__ = [
    "ConfigurationError",
    "SolRPCConfig",
    "configure",
    "get_config",
    "ProtocolError",
    "SolanaRPCClient",
    "SolanaRPCError",
    "SubscriptionRejectedError",
    "TransportError",
    "UnknownSubscriptionError",
    "WebsocketMethodsWrapper",
]
