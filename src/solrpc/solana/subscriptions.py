"""Subscription registry and notification dispatcher.

A :class:`SubscriptionManager` multiplexes many subscription streams over a
single websocket transport. Each subscribe request is registered as PENDING
under its JSON-RPC request id before it is sent; the server's confirmation
binds the subscription id and the entry becomes ACTIVE. Notifications are
routed by subscription id. Unsubscribe requests move the entry to CANCELLING
and the server's acknowledgment (matched by the unsubscribe request id)
retires it.

All table reads and writes happen under one lock; callbacks always run
outside of it, either inline on the transport reader thread or, when an
executor is supplied, through a per-subscription FIFO mailbox.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from collections.abc import Callable, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from solrpc.core.logs import LogBuffer

from .errors import (
    ProtocolError,
    SubscriptionRejectedError,
    TransportError,
    UnknownSubscriptionError,
)
from .messages import NotificationMessage, ResponseMessage, parse_message
from .request_body import RequestIdGenerator, build_request

logger = logging.getLogger(__name__)

RETIRED_HISTORY = 256

NotificationCallback = Callable[[Any], None]
ErrorHandler = Callable[[Exception], None]


class Sender(Protocol):
    # Returns the id of the connection the frame went out on, or None when
    # the transport does not track connections.
    def send(self, envelope: dict[str, Any]) -> int | None: ...


@dataclass(frozen=True, slots=True)
class Topic:
    """A subscription family and its wire method names."""

    name: str
    one_shot: bool = False

    @property
    def subscribe_method(self) -> str:
        return f"{self.name}Subscribe"

    @property
    def unsubscribe_method(self) -> str:
        return f"{self.name}Unsubscribe"

    @property
    def notification_method(self) -> str:
        return f"{self.name}Notification"


TOPICS: dict[str, Topic] = {
    topic.name: topic
    for topic in (
        Topic("account"),
        Topic("block"),
        Topic("logs"),
        Topic("program"),
        Topic("signature", one_shot=True),
        Topic("slot"),
        Topic("slotsUpdates"),
        Topic("root"),
        Topic("vote"),
    )
}


def get_topic(name: str) -> Topic:
    try:
        return TOPICS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown subscription topic '{name}'") from exc


class SubscriptionState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLING = "cancelling"
    CLOSED = "closed"


@dataclass(eq=False)
class Subscription:
    """One subscription stream and its lifecycle state."""

    topic: Topic
    client_request_id: int
    callback: NotificationCallback | None = None
    params: list[Any] = field(default_factory=list)
    subscription_id: int | None = None
    state: SubscriptionState = SubscriptionState.PENDING
    unsubscribe_request_id: int | None = None
    connection_id: int | None = None
    notification_count: int = 0
    _settled: threading.Event = field(default_factory=threading.Event, repr=False)
    _mailbox: deque[Any] = field(default_factory=deque, repr=False)
    _draining: bool = field(default=False, repr=False)


def _is_interim_signature_result(result: Any) -> bool:
    # Sent first when enableReceivedNotification is set; the final notification follows.
    return isinstance(result, dict) and result.get("value") == "receivedSignature"


class SubscriptionManager:
    """Registry of subscriptions on one connection plus the inbound dispatcher."""

    def __init__(
        self,
        transport: Sender,
        *,
        ids: RequestIdGenerator | None = None,
        executor: Executor | None = None,
        log_buffer: LogBuffer | None = None,
        error_handler: ErrorHandler | None = None,
        json_rpc_version: str | None = None,
    ) -> None:
        self._transport = transport
        self._ids = ids or RequestIdGenerator()
        self._executor = executor
        self._log_buffer = log_buffer
        self._error_handler = error_handler
        self._json_rpc_version = json_rpc_version
        self._lock = threading.Lock()
        self._pending: dict[int, Subscription] = {}
        self._active: dict[int, Subscription] = {}
        self._cancelling: dict[int, Subscription] = {}
        # subscribe request id -> subscription id, for lookups after retirement
        self._retired: OrderedDict[int, int | None] = OrderedDict()
        self._closed_connections: set[int] = set()

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------
    def subscribe(
        self,
        topic: str,
        params: Sequence[Any] | None = None,
        callback: NotificationCallback | None = None,
    ) -> int:
        """Send ``<topic>Subscribe`` and return its request id without waiting for confirmation."""

        topic_info = get_topic(topic)
        envelope = build_request(
            topic_info.subscribe_method,
            params,
            ids=self._ids,
            json_rpc_version=self._json_rpc_version,
        )
        request_id = envelope["id"]
        subscription = Subscription(
            topic=topic_info,
            client_request_id=request_id,
            callback=callback,
            params=envelope["params"],
        )
        # Registered before sending so a fast confirmation always finds it.
        with self._lock:
            self._pending[request_id] = subscription
        try:
            connection_id = self._transport.send(envelope)
        except TransportError:
            with self._lock:
                self._discard_locked(subscription)
            self._record("transport", f"{topic_info.subscribe_method} request {request_id} failed to send", severity="error")
            raise
        with self._lock:
            if subscription.state is not SubscriptionState.CLOSED:
                if connection_id is not None and connection_id in self._closed_connections:
                    # The connection died while the frame was in flight.
                    self._discard_locked(subscription)
                else:
                    subscription.connection_id = connection_id
        logger.debug("Sent %s (request %s)", topic_info.subscribe_method, request_id)
        self._record("subscription", f"{topic_info.subscribe_method} sent (request {request_id})")
        return request_id

    def unsubscribe(self, subscription_id: int, topic: str | None = None) -> int:
        """Send ``<topic>Unsubscribe`` for an ACTIVE subscription and return its request id."""

        if topic is not None:
            get_topic(topic)
        with self._lock:
            subscription = self._active.get(subscription_id)
            if (
                subscription is None
                or subscription.state is not SubscriptionState.ACTIVE
                or (topic is not None and subscription.topic.name != topic)
            ):
                raise UnknownSubscriptionError(subscription_id)
            envelope = build_request(
                subscription.topic.unsubscribe_method,
                [subscription_id],
                ids=self._ids,
                json_rpc_version=self._json_rpc_version,
            )
            request_id = envelope["id"]
            subscription.state = SubscriptionState.CANCELLING
            subscription.unsubscribe_request_id = request_id
            self._cancelling[request_id] = subscription
        try:
            self._transport.send(envelope)
        except TransportError:
            with self._lock:
                if self._cancelling.pop(request_id, None) is subscription:
                    subscription.state = SubscriptionState.ACTIVE
                    subscription.unsubscribe_request_id = None
            raise
        logger.debug("Sent %s for subscription %s (request %s)", envelope["method"], subscription_id, request_id)
        self._record("subscription", f"{envelope['method']} sent for subscription {subscription_id}")
        return request_id

    def retire(self, subscription_id: int) -> bool:
        """Drop a subscription locally. Returns ``False`` if it was already gone."""

        with self._lock:
            subscription = self._active.get(subscription_id)
            if subscription is None:
                return False
            self._discard_locked(subscription)
        return True

    def close_all(self, error: BaseException | None = None, connection_id: int | None = None) -> None:
        """Close the subscriptions sent on ``connection_id``, or every one when it is ``None``.

        Registered as a transport close listener; entries already sent on a
        newer connection are left alone.
        """

        with self._lock:
            if connection_id is not None:
                self._closed_connections.add(connection_id)
            subscriptions = {
                id(sub): sub
                for table in (self._pending, self._active, self._cancelling)
                for sub in table.values()
                if connection_id is None or sub.connection_id == connection_id
            }
            for subscription in subscriptions.values():
                self._discard_locked(subscription)
                subscription._mailbox.clear()
        if subscriptions:
            reason = f": {error}" if error else ""
            logger.info("Closed %d subscription(s) on connection teardown%s", len(subscriptions), reason)
            self._record("transport", f"Connection closed; {len(subscriptions)} subscription(s) dropped")

    def wait_for_subscription(self, request_id: int, timeout: float | None = None) -> int | None:
        """Block until the subscribe request ``request_id`` is confirmed.

        Returns the server-assigned subscription id, or ``None`` when the
        request was rejected, closed before confirmation, unknown, or
        ``timeout`` elapsed. A confirmed subscription that has since been
        retired still reports its id.
        """

        with self._lock:
            subscription = self._pending.get(request_id)
            if subscription is None:
                subscription = next(
                    (sub for sub in self._active.values() if sub.client_request_id == request_id),
                    None,
                )
            if subscription is None:
                return self._retired.get(request_id)
        subscription._settled.wait(timeout)
        return subscription.subscription_id

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def get(self, subscription_id: int) -> Subscription | None:
        with self._lock:
            return self._active.get(subscription_id)

    def pending(self) -> list[Subscription]:
        with self._lock:
            return list(self._pending.values())

    def active(self) -> list[Subscription]:
        with self._lock:
            return list(self._active.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._active)

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------
    def on_message(self, raw: Any) -> None:
        """Dispatch one inbound frame. Never raises for bad frames."""

        try:
            message = parse_message(raw)
            if isinstance(message, NotificationMessage):
                self._handle_notification(message)
            else:
                self._handle_response(message)
        except ProtocolError as exc:
            self._report(exc, category="protocol")

    def _handle_response(self, message: ResponseMessage) -> None:
        rejected: SubscriptionRejectedError | None = None
        with self._lock:
            subscription = self._pending.pop(message.id, None)
            if subscription is None:
                subscription = self._cancelling.get(message.id)
                if subscription is None:
                    raise ProtocolError(f"Response for unknown request id {message.id}", raw=message.model_dump())
                self._discard_locked(subscription)
                if message.error is not None:
                    logger.warning(
                        "Unsubscribe of %s subscription %s returned an error: %s",
                        subscription.topic.name,
                        subscription.subscription_id,
                        message.error.get("message"),
                    )
                else:
                    logger.debug("Subscription %s closed", subscription.subscription_id)
                event = f"{subscription.topic.name} subscription {subscription.subscription_id} closed"
            elif message.error is not None:
                self._discard_locked(subscription)
                rejected = SubscriptionRejectedError(subscription.topic.name, message.id, message.error)
            else:
                self._bind_locked(subscription, message)
                event = f"{subscription.topic.name} subscription {subscription.subscription_id} active"
        if rejected is not None:
            self._report(rejected, category="subscription")
            return
        self._record("subscription", event)

    def _bind_locked(self, subscription: Subscription, message: ResponseMessage) -> None:
        subscription_id = message.result
        if not isinstance(subscription_id, int) or isinstance(subscription_id, bool):
            self._discard_locked(subscription)
            raise ProtocolError(
                f"Confirmation for request {message.id} has non-integer subscription id {subscription_id!r}",
                raw=message.model_dump(),
            )
        if subscription_id in self._active:
            self._discard_locked(subscription)
            raise ProtocolError(
                f"Subscription id {subscription_id} is already bound; dropping request {message.id}",
                raw=message.model_dump(),
            )
        subscription.subscription_id = subscription_id
        subscription.state = SubscriptionState.ACTIVE
        self._active[subscription_id] = subscription
        subscription._settled.set()
        logger.debug(
            "Request %s confirmed as %s subscription %s",
            message.id,
            subscription.topic.name,
            subscription_id,
        )

    def _handle_notification(self, message: NotificationMessage) -> None:
        subscription_id = message.subscription_id
        payload = message.params.result
        schedule = False
        with self._lock:
            subscription = self._active.get(subscription_id)
            if subscription is None or subscription.state is not SubscriptionState.ACTIVE:
                logger.debug("Dropping %s for inactive subscription %s", message.method, subscription_id)
                return
            if message.method != subscription.topic.notification_method:
                raise ProtocolError(
                    f"{message.method} does not match {subscription.topic.name} subscription {subscription_id}",
                    raw=message.model_dump(),
                )
            subscription.notification_count += 1
            if subscription.topic.one_shot and not _is_interim_signature_result(payload):
                # The node cancels these itself after the final notification.
                self._discard_locked(subscription)
            if self._executor is not None:
                subscription._mailbox.append(payload)
                if not subscription._draining:
                    subscription._draining = True
                    schedule = True
        if self._executor is None:
            self._invoke(subscription, payload)
        elif schedule:
            self._schedule(subscription)

    # ------------------------------------------------------------------
    # Callback execution
    # ------------------------------------------------------------------
    def _schedule(self, subscription: Subscription) -> None:
        try:
            self._executor.submit(self._drain, subscription)  # type: ignore[union-attr]
        except RuntimeError as exc:
            with self._lock:
                subscription._draining = False
                subscription._mailbox.clear()
            logger.error("Unable to schedule callback for subscription %s: %s", subscription.subscription_id, exc)

    def _drain(self, subscription: Subscription) -> None:
        while True:
            with self._lock:
                if not subscription._mailbox:
                    subscription._draining = False
                    return
                payload = subscription._mailbox.popleft()
            self._invoke(subscription, payload)

    def _invoke(self, subscription: Subscription, payload: Any) -> None:
        if subscription.callback is None:
            return
        try:
            subscription.callback(payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Callback for %s subscription %s failed",
                subscription.topic.name,
                subscription.subscription_id,
            )
            self._record(
                "notification",
                f"Callback for {subscription.topic.name} subscription {subscription.subscription_id} failed: {exc}",
                severity="error",
            )
            self._notify_error_handler(exc)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _discard_locked(self, subscription: Subscription) -> None:
        if self._pending.get(subscription.client_request_id) is subscription:
            del self._pending[subscription.client_request_id]
        if subscription.subscription_id is not None and self._active.get(subscription.subscription_id) is subscription:
            del self._active[subscription.subscription_id]
        if (
            subscription.unsubscribe_request_id is not None
            and self._cancelling.get(subscription.unsubscribe_request_id) is subscription
        ):
            del self._cancelling[subscription.unsubscribe_request_id]
        subscription.state = SubscriptionState.CLOSED
        subscription._settled.set()
        self._retired[subscription.client_request_id] = subscription.subscription_id
        while len(self._retired) > RETIRED_HISTORY:
            self._retired.popitem(last=False)

    def _report(self, exc: Exception, *, category: str) -> None:
        logger.warning("%s", exc)
        self._record(category, str(exc), severity="warning")
        self._notify_error_handler(exc)

    def _notify_error_handler(self, exc: Exception) -> None:
        if self._error_handler is None:
            return
        try:
            self._error_handler(exc)
        except Exception:  # noqa: BLE001
            logger.exception("Subscription error handler failed")

    def _record(self, category: str, message: str, *, severity: str = "info") -> None:
        if self._log_buffer is not None:
            self._log_buffer.record(category, message, severity=severity)


__all__ = [
    "TOPICS",
    "ErrorHandler",
    "NotificationCallback",
    "Subscription",
    "SubscriptionManager",
    "SubscriptionState",
    "Topic",
    "get_topic",
]
