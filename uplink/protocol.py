# uplink/protocol.py
# Inbound frame parsing and validation.
# Every frame from a client must be a JSON object of the form
#   {"type": "<event>", "payload": {...}}
# and its payload must match the schema for that event before the broker sees it.
# Anything else raises ValidationError and is dropped by the transport.

import json

from . import config
from .broker import DIRECT_MESSAGE, JOIN, MESSAGE, PURGE, SCAN
from .errors import ValidationError


def _require_str(payload, field, allow_empty=True):
    value = payload.get(field)
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field}' must not be empty")
    return value


def _optional_bool(payload, field):
    value = payload.get(field, False)
    if not isinstance(value, bool):
        raise ValidationError(f"'{field}' must be a boolean")
    return value


def _join_payload(payload):
    alias = payload.get("alias", "")
    if not isinstance(alias, str):
        raise ValidationError("'alias' must be a string")
    return {"alias": alias.strip()[:config.MAX_ALIAS_LENGTH]}


def _message_payload(payload):
    return {
        "content": _require_str(payload, "content"),
        "encrypted": _optional_bool(payload, "encrypted"),
    }


def _scan_payload(payload):
    return {}


def _direct_message_payload(payload):
    return {
        "target": _require_str(payload, "target", allow_empty=False).strip(),
        "content": _require_str(payload, "content"),
        "encrypted": _optional_bool(payload, "encrypted"),
    }


def _purge_payload(payload):
    return {"key": _require_str(payload, "key")}


# Event type -> payload validator returning the cleaned payload.
SCHEMAS = {
    JOIN: _join_payload,
    MESSAGE: _message_payload,
    SCAN: _scan_payload,
    DIRECT_MESSAGE: _direct_message_payload,
    PURGE: _purge_payload,
}


def parse_frame(raw):
    """
    Parses and validates one inbound text frame.

    Args:
        raw (str | bytes): The frame as received from the WebSocket.

    Returns:
        tuple[str, dict]: The event type and its cleaned payload.

    Raises:
        ValidationError: If the frame is not valid JSON, is not an object, names an
            unknown event type, or its payload does not match the event's schema.
    """
    if isinstance(raw, bytes):
        raise ValidationError("Binary frames are not accepted")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise ValidationError("Frame must be a JSON object")
    event = data.get("type")
    if not isinstance(event, str) or event not in SCHEMAS:
        raise ValidationError(f"Unknown event type: {event!r}")
    # scan carries no fields, so its payload may be omitted entirely.
    payload = data.get("payload", {} if event == SCAN else None)
    if not isinstance(payload, dict):
        raise ValidationError("'payload' must be a JSON object")
    return event, SCHEMAS[event](payload)


def encode(delivery):
    """Serializes a Delivery to the outbound JSON text frame."""
    return json.dumps(delivery.to_dict())
