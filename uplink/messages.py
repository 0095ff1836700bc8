# uplink/messages.py
# Message model shared by the broker and the transport.
# Messages are immutable once built; only the broker creates them, and it always
# stamps the sender and timestamp itself rather than trusting the client.

import time
import uuid
from dataclasses import dataclass

# --- Message kinds ---
SYSTEM = "system"
PEER = "peer"
ERROR = "error"
INFO = "info"

MESSAGE_KINDS = (SYSTEM, PEER, ERROR, INFO)

# Display name used for broker-generated messages.
SYSTEM_SENDER = "SYSTEM"

# --- Outbound event types ---
EVENT_HISTORY = "history"
EVENT_JOINED = "joined"
EVENT_MESSAGE = "message"
EVENT_ROSTER = "rosterResult"
EVENT_PURGE_SIGNAL = "purgeSignal"


def now_ms():
    """Return current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Message:
    id: str
    kind: str
    sender: str
    content: str
    timestamp: int
    encrypted: bool = False

    def to_dict(self):
        # "type" is the key clients already switch on for the message kind.
        return {
            "id": self.id,
            "type": self.kind,
            "sender": self.sender,
            "content": self.content,
            "timestamp": self.timestamp,
            "encrypted": self.encrypted,
        }


def make_message(kind, sender, content, timestamp, encrypted=False):
    """
    Builds a Message with a fresh globally unique id.

    Args:
        kind (str): One of MESSAGE_KINDS.
        sender (str): Trusted display name (never taken from the client payload).
        content (str): Already-sanitized text.
        timestamp (int): Server-assigned timestamp in milliseconds.
        encrypted (bool): Presentation hint for clients; coerced to bool.

    Returns:
        Message: The new immutable message.
    """
    if kind not in MESSAGE_KINDS:
        raise ValueError(f"Unknown message kind: {kind!r}")
    return Message(
        id=str(uuid.uuid4()),
        kind=kind,
        sender=sender,
        content=content,
        timestamp=timestamp,
        encrypted=bool(encrypted),
    )


def truncate(text, limit):
    """Cuts `text` to at most `limit` characters."""
    return text[:limit]
