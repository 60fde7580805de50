"""Topic-level wrappers around Solana's websocket subscription methods.

See https://solana.com/docs/rpc/websocket for the parameters of each method.
Every ``*_subscribe`` returns the subscribe request id; pass it to
:meth:`WebsocketMethodsWrapper.wait_for_subscription` to obtain the
subscription id needed by the matching ``*_unsubscribe``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import Executor
from typing import Any
from urllib.parse import urlparse

from solrpc.core.config import ConfigurationError, SolRPCConfig, get_config, resolve_setting
from solrpc.core.logs import LogBuffer

from .request_body import RequestIdGenerator
from .subscriptions import ErrorHandler, NotificationCallback, SubscriptionManager
from .transport import WebsocketTransport

logger = logging.getLogger(__name__)

COMMITMENTS = {"processed", "confirmed", "finalized"}
ACCOUNT_ENCODINGS = {"base58", "base64", "base64+zstd", "jsonParsed"}
BLOCK_ENCODINGS = {"json", "jsonParsed", "base58", "base64"}
TRANSACTION_DETAILS = {"full", "accounts", "signatures", "none"}
LOGS_FILTERS = {"all", "allWithVotes"}


def is_blank(value: Any) -> bool:
    """``None``, empty strings and empty collections are blank; ``False`` and ``0`` are not."""

    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _check_choice(name: str, value: Any, choices: set[str]) -> None:
    if not is_blank(value) and value not in choices:
        allowed = ", ".join(sorted(choices))
        raise ValueError(f"Invalid {name} '{value}'; expected one of: {allowed}")


def _options(**fields: Any) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if not is_blank(value)}


class WebsocketMethodsWrapper:
    """Subscription client bound to one websocket cluster."""

    def __init__(
        self,
        cluster: str | None = None,
        *,
        config: SolRPCConfig | None = None,
        transport: WebsocketTransport | None = None,
        client_options: Mapping[str, Any] | None = None,
        executor: Executor | None = None,
        log_buffer: LogBuffer | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        settings = config or get_config()
        self.cluster = resolve_setting("ws_cluster", cluster or None, settings)
        if not self.cluster:
            raise ConfigurationError("A websocket cluster is required (ws:// or wss:// URL)")
        if urlparse(self.cluster).scheme not in {"ws", "wss"}:
            raise ConfigurationError(f"Websocket cluster must use ws:// or wss://, got '{self.cluster}'")

        options = dict(settings.client_options)
        options.update(client_options or {})
        self.transport = transport or WebsocketTransport(self.cluster, options=options)
        self.subscriptions = SubscriptionManager(
            self.transport,
            ids=RequestIdGenerator(),
            executor=executor,
            log_buffer=log_buffer,
            error_handler=error_handler,
            json_rpc_version=settings.json_rpc_version,
        )
        self.transport.add_listener(self.subscriptions.on_message)
        self.transport.add_close_listener(self.subscriptions.close_all)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        self.transport.connect()

    def close(self) -> None:
        self.transport.close()
        # Reader close listeners normally do this; covers transports that never connected.
        self.subscriptions.close_all()

    def __enter__(self) -> WebsocketMethodsWrapper:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def wait_for_subscription(self, request_id: int, timeout: float | None = None) -> int | None:
        return self.subscriptions.wait_for_subscription(request_id, timeout)

    # ------------------------------------------------------------------
    # account
    # ------------------------------------------------------------------
    def account_subscribe(
        self,
        account_pubkey: str,
        callback: NotificationCallback,
        *,
        commitment: str | None = None,
        encoding: str | None = None,
    ) -> int:
        """Notify when the lamports or data of ``account_pubkey`` change."""

        _check_choice("commitment", commitment, COMMITMENTS)
        _check_choice("encoding", encoding, ACCOUNT_ENCODINGS)
        params: list[Any] = [account_pubkey]
        config = _options(commitment=commitment, encoding=encoding)
        if config:
            params.append(config)
        return self.subscriptions.subscribe("account", params, callback)

    def account_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "account")

    # ------------------------------------------------------------------
    # block (unstable; needs --rpc-pubsub-enable-block-subscription)
    # ------------------------------------------------------------------
    def block_subscribe(
        self,
        filter: str,
        callback: NotificationCallback,
        *,
        commitment: str | None = None,
        encoding: str | None = None,
        transaction_details: str | None = None,
        show_rewards: bool | None = None,
        max_supported_transaction_version: int | None = None,
    ) -> int:
        """Notify when a block is confirmed or finalized.

        ``filter`` is ``"all"`` or a base-58 account/program key.
        """

        _check_choice("commitment", commitment, COMMITMENTS)
        _check_choice("encoding", encoding, BLOCK_ENCODINGS)
        _check_choice("transaction_details", transaction_details, TRANSACTION_DETAILS)
        if is_blank(filter):
            raise ValueError("block_subscribe requires 'all' or an account/program key")
        param_filter: Any = filter if filter == "all" else {"mentionsAccountOrProgram": filter}
        params: list[Any] = [param_filter]
        config = _options(
            commitment=commitment,
            encoding=encoding,
            transactionDetails=transaction_details,
            showRewards=show_rewards,
            maxSupportedTransactionVersion=max_supported_transaction_version,
        )
        if config:
            params.append(config)
        return self.subscriptions.subscribe("block", params, callback)

    def block_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "block")

    # ------------------------------------------------------------------
    # logs
    # ------------------------------------------------------------------
    def logs_subscribe(
        self,
        filter: str | Iterable[str] | Mapping[str, Any],
        callback: NotificationCallback,
        *,
        commitment: str | None = None,
    ) -> int:
        """Subscribe to transaction logs.

        ``filter`` is ``"all"``, ``"allWithVotes"``, a ``{"mentions": [...]}``
        mapping, or an iterable of pubkeys that is turned into one.
        """

        _check_choice("commitment", commitment, COMMITMENTS)
        if isinstance(filter, str):
            _check_choice("logs filter", filter, LOGS_FILTERS)
            param_filter: Any = filter
        elif isinstance(filter, Mapping):
            param_filter = dict(filter)
        else:
            param_filter = {"mentions": list(filter)}
        params: list[Any] = [param_filter, _options(commitment=commitment)]
        return self.subscriptions.subscribe("logs", params, callback)

    def logs_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "logs")

    # ------------------------------------------------------------------
    # program
    # ------------------------------------------------------------------
    def program_subscribe(
        self,
        program_id_pubkey: str,
        callback: NotificationCallback,
        *,
        commitment: str | None = None,
        encoding: str | None = None,
        filters: list[dict[str, Any]] | None = None,
    ) -> int:
        """Notify when an account owned by ``program_id_pubkey`` changes."""

        _check_choice("commitment", commitment, COMMITMENTS)
        _check_choice("encoding", encoding, ACCOUNT_ENCODINGS)
        params: list[Any] = [program_id_pubkey]
        config = _options(commitment=commitment, encoding=encoding, filters=filters)
        if config:
            params.append(config)
        return self.subscriptions.subscribe("program", params, callback)

    def program_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "program")

    # ------------------------------------------------------------------
    # signature
    # ------------------------------------------------------------------
    def signature_subscribe(
        self,
        transaction_signature: str,
        callback: NotificationCallback,
        *,
        commitment: str | None = None,
        enable_received_notification: bool | None = None,
    ) -> int:
        """Notify once ``transaction_signature`` reaches ``commitment``.

        The node cancels the subscription after the notification, so the
        local entry is retired automatically.
        """

        _check_choice("commitment", commitment, COMMITMENTS)
        params: list[Any] = [
            transaction_signature,
            _options(commitment=commitment, enableReceivedNotification=enable_received_notification),
        ]
        return self.subscriptions.subscribe("signature", params, callback)

    def signature_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "signature")

    # ------------------------------------------------------------------
    # parameterless topics
    # ------------------------------------------------------------------
    def slot_subscribe(self, callback: NotificationCallback) -> int:
        """Notify whenever a slot is processed by the validator."""

        return self.subscriptions.subscribe("slot", [], callback)

    def slot_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "slot")

    def slots_updates_subscribe(self, callback: NotificationCallback) -> int:
        """Unstable: notify on the various updates the validator makes to every slot."""

        return self.subscriptions.subscribe("slotsUpdates", [], callback)

    def slots_updates_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "slotsUpdates")

    def root_subscribe(self, callback: NotificationCallback) -> int:
        """Notify whenever the validator sets a new root."""

        return self.subscriptions.subscribe("root", [], callback)

    def root_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "root")

    def vote_subscribe(self, callback: NotificationCallback) -> int:
        """Unstable: notify on votes observed in gossip (pre-consensus)."""

        return self.subscriptions.subscribe("vote", [], callback)

    def vote_unsubscribe(self, subscription_id: int) -> int:
        return self.subscriptions.unsubscribe(subscription_id, "vote")


__all__ = ["WebsocketMethodsWrapper", "is_blank"]
