"""Inbound websocket frame models."""

from __future__ import annotations

import json
from typing import Any, Union

from pydantic import BaseModel, StrictInt, ValidationError

from .errors import ProtocolError


class ResponseMessage(BaseModel):
    """Reply to a request we sent: a subscribe confirmation or an unsubscribe ack."""

    id: StrictInt
    result: Any = None
    error: dict[str, Any] | None = None


class NotificationParams(BaseModel):
    subscription: StrictInt
    result: Any = None


class NotificationMessage(BaseModel):
    """Server push for an established subscription."""

    method: str
    params: NotificationParams

    @property
    def subscription_id(self) -> int:
        return self.params.subscription


InboundMessage = Union[ResponseMessage, NotificationMessage]


def parse_message(raw: str | bytes | dict[str, Any]) -> InboundMessage:
    """Decode and classify a raw frame, raising ``ProtocolError`` when it is neither kind."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("Inbound frame is not valid UTF-8", raw=raw) from exc
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Inbound frame is not valid JSON: {exc}", raw=raw) from exc
    else:
        data = raw

    if not isinstance(data, dict):
        raise ProtocolError("Inbound frame is not a JSON object", raw=raw)

    params = data.get("params")
    try:
        if "method" in data and isinstance(params, dict) and "subscription" in params:
            return NotificationMessage.model_validate(data)
        if data.get("id") is not None:
            return ResponseMessage.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed inbound frame: {exc}", raw=raw) from exc
    raise ProtocolError("Inbound frame has neither a request id nor a subscription id", raw=raw)


__all__ = [
    "InboundMessage",
    "NotificationMessage",
    "NotificationParams",
    "ResponseMessage",
    "parse_message",
]
