from __future__ import annotations

import pytest

from solrpc.solana.errors import ProtocolError
from solrpc.solana.messages import NotificationMessage, ResponseMessage, parse_message


def test_parse_confirmation() -> None:
    message = parse_message('{"jsonrpc": "2.0", "result": 23784, "id": 1}')

    assert isinstance(message, ResponseMessage)
    assert message.id == 1
    assert message.result == 23784
    assert message.error is None


def test_parse_notification_from_bytes() -> None:
    raw = (
        b'{"jsonrpc": "2.0", "method": "slotNotification",'
        b' "params": {"subscription": 0, "result": {"parent": 75, "root": 44, "slot": 76}}}'
    )

    message = parse_message(raw)

    assert isinstance(message, NotificationMessage)
    assert message.subscription_id == 0
    assert message.params.result == {"parent": 75, "root": 44, "slot": 76}


def test_parse_error_reply() -> None:
    message = parse_message({"jsonrpc": "2.0", "error": {"code": -32602, "message": "Invalid params"}, "id": 7})

    assert isinstance(message, ResponseMessage)
    assert message.error == {"code": -32602, "message": "Invalid params"}


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        b"\xff\xfe",
        '"just a string"',
        '{"jsonrpc": "2.0"}',
        '{"jsonrpc": "2.0", "error": {"code": -32700, "message": "Parse error"}, "id": null}',
        '{"jsonrpc": "2.0", "result": 1, "id": "one"}',
        '{"jsonrpc": "2.0", "method": "accountNotification", "params": {"subscription": true}}',
    ],
)
def test_unclassifiable_frames_raise_protocol_error(raw: str | bytes) -> None:
    with pytest.raises(ProtocolError) as excinfo:
        parse_message(raw)

    assert excinfo.value.raw is not None
