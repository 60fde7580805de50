"""Persistent websocket transport for subscription traffic."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from .errors import TransportError

logger = logging.getLogger(__name__)

MessageListener = Callable[[Any], None]
CloseListener = Callable[[BaseException | None, int], None]
ConnectFn = Callable[..., Any]


class WebsocketTransport:
    """Owns one websocket connection and a reader thread feeding listeners.

    ``connect_fn`` defaults to ``websockets.sync.client.connect`` and is
    called as ``connect_fn(cluster, **options)``; the returned connection
    must provide ``send``, ``close`` and iteration over received frames.

    Every connection opened gets a new, increasing id. ``send`` returns the
    id of the connection it used and close listeners are called with
    ``(error, connection_id)`` once that connection's reader stops.
    """

    def __init__(
        self,
        cluster: str,
        *,
        options: Mapping[str, Any] | None = None,
        connect_fn: ConnectFn | None = None,
        join_timeout: float = 5.0,
    ) -> None:
        self.cluster = cluster
        self.options = dict(options or {})
        self._connect_fn = connect_fn or connect
        self._join_timeout = join_timeout
        self._connection: Any = None
        self._connection_id = 0
        self._reader: threading.Thread | None = None
        self._listeners: list[MessageListener] = []
        self._close_listeners: list[CloseListener] = []
        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def add_listener(self, listener: MessageListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_close_listener(self, listener: CloseListener) -> None:
        if listener not in self._close_listeners:
            self._close_listeners.append(listener)

    def connect(self, envelope: Mapping[str, Any] | None = None, on_message: MessageListener | None = None) -> None:
        """Open the connection (if needed), register ``on_message`` and send ``envelope``."""

        if on_message is not None:
            self.add_listener(on_message)
        self._ensure_connected()
        if envelope is not None:
            self.send(envelope)

    def send(self, envelope: Mapping[str, Any] | str) -> int:
        connection, connection_id = self._ensure_connected()
        payload = envelope if isinstance(envelope, str) else json.dumps(envelope)
        with self._send_lock:
            try:
                connection.send(payload)
            except (OSError, WebSocketException) as exc:
                raise TransportError(f"Failed to send to {self.cluster}: {exc}") from exc
        logger.debug("Sent websocket frame to %s: %s", self.cluster, payload)
        return connection_id

    def close(self) -> None:
        """Close the connection and wait for the reader thread to finish."""

        with self._state_lock:
            connection = self._connection
            reader = self._reader
            self._connection = None
            self._reader = None
        if connection is None:
            return
        try:
            connection.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Error while closing websocket: %s", exc)
        if reader is not None and reader is not threading.current_thread():
            reader.join(self._join_timeout)

    def _ensure_connected(self) -> tuple[Any, int]:
        with self._state_lock:
            if self._connection is not None:
                return self._connection, self._connection_id
            try:
                connection = self._connect_fn(self.cluster, **self.options)
            except (OSError, TimeoutError, WebSocketException) as exc:
                raise TransportError(f"Unable to connect to {self.cluster}: {exc}") from exc
            self._connection = connection
            self._connection_id += 1
            self._reader = threading.Thread(
                target=self._read_loop,
                args=(connection, self._connection_id),
                name="solrpc-ws-reader",
                daemon=True,
            )
            self._reader.start()
            logger.debug("Connected websocket to %s (connection %s)", self.cluster, self._connection_id)
            return connection, self._connection_id

    def _read_loop(self, connection: Any, connection_id: int) -> None:
        error: BaseException | None = None
        try:
            for raw in connection:
                self._deliver(raw)
        except ConnectionClosed as exc:
            error = exc
            logger.warning("Websocket connection to %s closed: %s", self.cluster, exc)
        except (OSError, WebSocketException) as exc:
            error = exc
            logger.error("Websocket reader for %s failed: %s", self.cluster, exc)
        finally:
            with self._state_lock:
                if self._connection is connection:
                    self._connection = None
                    self._reader = None
            for listener in list(self._close_listeners):
                listener(error, connection_id)

    def _deliver(self, raw: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(raw)
            except Exception:  # noqa: BLE001
                logger.exception("Websocket listener failed")


__all__ = ["WebsocketTransport"]
