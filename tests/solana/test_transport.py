from __future__ import annotations

import json
import queue
import threading
from typing import Any

import pytest

from solrpc.solana.errors import TransportError
from solrpc.solana.subscriptions import SubscriptionManager, SubscriptionState
from solrpc.solana.transport import WebsocketTransport

_CLOSE = object()


class FakeConnection:
    def __init__(self) -> None:
        self.inbox: queue.Queue[Any] = queue.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.fail_send = False

    def send(self, data: str) -> None:
        if self.fail_send:
            raise OSError("broken pipe")
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True
        self.inbox.put(_CLOSE)

    def __iter__(self) -> Any:
        while True:
            item = self.inbox.get()
            if item is _CLOSE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class ConnectFactory:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.connections: list[FakeConnection] = []

    def __call__(self, uri: str, **options: Any) -> FakeConnection:
        self.calls.append((uri, options))
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


def test_connect_sends_envelope_and_delivers_frames_in_order() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport(
        "wss://api.devnet.solana.com",
        options={"open_timeout": 5, "additional_headers": {"x-app": "demo"}},
        connect_fn=factory,
    )
    received: list[Any] = []
    done = threading.Event()

    def listener(raw: Any) -> None:
        received.append(raw)
        if len(received) == 3:
            done.set()

    envelope = {"jsonrpc": "2.0", "id": 1, "method": "slotSubscribe", "params": []}
    transport.connect(envelope, on_message=listener)

    assert factory.calls == [
        ("wss://api.devnet.solana.com", {"open_timeout": 5, "additional_headers": {"x-app": "demo"}})
    ]
    connection = factory.connections[0]
    assert [json.loads(frame) for frame in connection.sent] == [envelope]

    for frame in ("a", "b", "c"):
        connection.inbox.put(frame)
    assert done.wait(5)
    assert received == ["a", "b", "c"]

    transport.close()
    assert connection.closed
    assert not transport.connected


def test_send_connects_lazily_once() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)

    transport.send({"jsonrpc": "2.0", "id": 1, "method": "rootSubscribe", "params": []})
    transport.send('{"raw": true}')

    assert len(factory.calls) == 1
    assert factory.connections[0].sent[1] == '{"raw": true}'
    transport.close()


def test_connect_failure_raises_transport_error() -> None:
    def refuse(uri: str, **_options: Any) -> Any:
        raise OSError("connection refused")

    transport = WebsocketTransport("ws://localhost:1", connect_fn=refuse)

    with pytest.raises(TransportError):
        transport.connect()
    assert not transport.connected


def test_send_failure_raises_transport_error() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    transport.connect()
    factory.connections[0].fail_send = True

    with pytest.raises(TransportError):
        transport.send({"jsonrpc": "2.0", "id": 1, "method": "slotSubscribe", "params": []})
    transport.close()


def test_reader_failure_notifies_close_listeners() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    closed: list[tuple[BaseException | None, int]] = []
    closed_event = threading.Event()

    def on_close(error: BaseException | None, connection_id: int) -> None:
        closed.append((error, connection_id))
        closed_event.set()

    transport.add_close_listener(on_close)
    transport.connect()
    factory.connections[0].inbox.put(OSError("connection reset"))

    assert closed_event.wait(5)
    error, connection_id = closed[0]
    assert isinstance(error, OSError)
    assert connection_id == 1
    assert not transport.connected


def test_listener_exception_does_not_stop_reader() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    received: list[Any] = []
    done = threading.Event()

    def broken(_raw: Any) -> None:
        raise RuntimeError("listener bug")

    def healthy(raw: Any) -> None:
        received.append(raw)
        if len(received) == 2:
            done.set()

    transport.add_listener(broken)
    transport.add_listener(healthy)
    transport.connect()
    factory.connections[0].inbox.put("one")
    factory.connections[0].inbox.put("two")

    assert done.wait(5)
    assert received == ["one", "two"]
    transport.close()


def test_close_notifies_listeners_without_error() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    closed: list[tuple[BaseException | None, int]] = []
    transport.add_close_listener(lambda error, connection_id: closed.append((error, connection_id)))
    transport.connect()

    transport.close()

    assert closed == [(None, 1)]
    transport.close()
    assert closed == [(None, 1)]


def test_send_returns_id_of_connection_used() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    closed = threading.Event()
    transport.add_close_listener(lambda error, connection_id: closed.set())

    assert transport.send('{"first": true}') == 1
    factory.connections[0].inbox.put(OSError("connection reset"))
    assert closed.wait(5)

    assert transport.send('{"second": true}') == 2
    assert len(factory.connections) == 2
    transport.close()


def test_subscription_sent_during_teardown_survives_old_connection_close() -> None:
    factory = ConnectFactory()
    transport = WebsocketTransport("ws://localhost:8900", connect_fn=factory)
    manager = SubscriptionManager(transport)
    transport.add_listener(manager.on_message)
    resubscribed: list[int] = []
    resubscribed_event = threading.Event()
    torn_down = threading.Event()

    def resubscribe(_error: BaseException | None, connection_id: int) -> None:
        if connection_id != 1:
            return
        resubscribed.append(manager.subscribe("slot", [], lambda _: None))
        resubscribed_event.set()

    # Runs ahead of close_all, so the new request reconnects before teardown finishes.
    transport.add_close_listener(resubscribe)
    transport.add_close_listener(manager.close_all)
    transport.add_close_listener(lambda _error, _connection_id: torn_down.set())

    first = manager.subscribe("slot", [], lambda _: None)
    factory.connections[0].inbox.put(json.dumps({"jsonrpc": "2.0", "result": 4, "id": first}))
    assert manager.wait_for_subscription(first, timeout=5) == 4

    factory.connections[0].inbox.put(OSError("connection reset"))
    assert resubscribed_event.wait(5)
    assert torn_down.wait(5)
    second = resubscribed[0]
    factory.connections[1].inbox.put(json.dumps({"jsonrpc": "2.0", "result": 5, "id": second}))

    assert manager.wait_for_subscription(second, timeout=5) == 5
    replacement = manager.get(5)
    assert replacement is not None
    assert replacement.state is SubscriptionState.ACTIVE
    assert replacement.connection_id == 2
    assert manager.get(4) is None
    assert manager.wait_for_subscription(first, timeout=0) == 4
    transport.close()
