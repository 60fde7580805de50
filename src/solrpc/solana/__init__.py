"""Solana RPC and websocket subscription clients."""

from .errors import (
    ProtocolError,
    SolanaRPCError,
    SubscriptionRejectedError,
    TransportError,
    UnknownSubscriptionError,
)
from .request_body import RequestIdGenerator, build_request, create_method_name
from .rpc import SolanaRPCClient
from .subscriptions import TOPICS, Subscription, SubscriptionManager, SubscriptionState, Topic
from .transport import WebsocketTransport
from .websocket_methods import WebsocketMethodsWrapper

__all__ = [
    "ProtocolError",
    "SolanaRPCError",
    "SubscriptionRejectedError",
    "TransportError",
    "UnknownSubscriptionError",
    "RequestIdGenerator",
    "build_request",
    "create_method_name",
    "SolanaRPCClient",
    "TOPICS",
    "Subscription",
    "SubscriptionManager",
    "SubscriptionState",
    "Topic",
    "WebsocketTransport",
    "WebsocketMethodsWrapper",
]
