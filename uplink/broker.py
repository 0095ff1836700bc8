# uplink/broker.py
# Relay Broker: the orchestrator behind the WebSocket transport.
# Responsibilities include:
# - Tracking attached connections and their session lifecycle (Unjoined -> Active -> Terminated).
# - Applying the per-connection rate limiter before chat, scan and direct-message actions.
# - Sanitizing chat content and stamping the trusted sender and server timestamp.
# - Recording broadcast chat in the history buffer and replaying it to newcomers.
# - Deciding the fan-out of every event (broadcast to all, to all but the sender, or unicast).
#
# The broker never touches the network. Each handler returns a list of Delivery
# objects which the transport writes out. All handlers run under one lock, so each
# inbound event is fully committed before the next one is looked at.

import logging
import threading
from dataclasses import dataclass

from . import config
from . import messages as m
from .authority import CommandAuthority
from .errors import AuthorizationError, NotFoundError, RateLimitError
from .history import HistoryBuffer
from .rate_limit import RateLimiter
from .registry import SessionRegistry

# Inbound event types.
JOIN = "join"
MESSAGE = "message"
SCAN = "scan"
DIRECT_MESSAGE = "directMessage"
PURGE = "purge"


@dataclass(frozen=True)
class Delivery:
    """One outbound event addressed to an explicit set of connection ids."""
    recipients: tuple
    event: str
    payload: dict

    def to_dict(self):
        return {"type": self.event, "payload": self.payload}


class RelayBroker:
    """
    Routes inbound events between connections.

    Args:
        registry (SessionRegistry | None): Session store. A new one is created when omitted.
        limiter (RateLimiter | None): Action limiter. Defaults to the configured window/limit/penalty.
        history (HistoryBuffer | None): Replay buffer. Defaults to the configured capacity.
        authority (CommandAuthority | None): Purge authorization. Defaults to the configured admin key.
        max_message_length (int): Chat content is truncated to this many characters.
        clock (callable): Returns the current time in milliseconds.
    """

    def __init__(self, registry=None, limiter=None, history=None, authority=None,
                 max_message_length=None, clock=m.now_ms):
        self.registry = registry if registry is not None else SessionRegistry()
        self.limiter = limiter if limiter is not None else RateLimiter(
            config.RATE_WINDOW_MS, config.RATE_LIMIT, config.PENALTY_MS)
        self.history = history if history is not None else HistoryBuffer(config.HISTORY_LIMIT)
        self.authority = authority if authority is not None else CommandAuthority(config.ADMIN_KEY)
        self.max_message_length = max_message_length or config.MAX_MESSAGE_LENGTH
        self._clock = clock
        self._lock = threading.RLock()
        # connection id -> real transport address, for every open connection (joined or not).
        self._attached = {}
        self._last_timestamp = 0
        self._handlers = {
            JOIN: self._dispatch_join,
            MESSAGE: self._dispatch_message,
            SCAN: self._dispatch_scan,
            DIRECT_MESSAGE: self._dispatch_direct_message,
            PURGE: self._dispatch_purge,
        }

    # --- Connection bookkeeping ---

    def attach(self, connection_id, address):
        """Registers an open transport connection. It receives broadcasts but cannot chat until it joins."""
        with self._lock:
            self._attached[connection_id] = address

    def connection_ids(self):
        with self._lock:
            return tuple(self._attached)

    def _everyone(self):
        return tuple(self._attached)

    def _everyone_but(self, connection_id):
        return tuple(cid for cid in self._attached if cid != connection_id)

    def _timestamp(self):
        # Server timestamps never go backwards, even if the wall clock does.
        self._last_timestamp = max(self._last_timestamp, self._clock())
        return self._last_timestamp

    def _system_message(self, content):
        return m.make_message(m.SYSTEM, m.SYSTEM_SENDER, content, self._timestamp())

    def _error_reply(self, connection_id, error):
        message = m.make_message(m.ERROR, m.SYSTEM_SENDER, str(error), self._timestamp())
        return Delivery((connection_id,), m.EVENT_MESSAGE, message.to_dict())

    def _active_session(self, connection_id):
        if connection_id not in self._attached:
            return None
        return self.registry.lookup(connection_id)

    # --- Dispatch ---

    def dispatch(self, connection_id, event, payload):
        """
        Routes one validated inbound event to its handler.

        Args:
            connection_id (str): The originating connection.
            event (str): Inbound event type (join, message, scan, directMessage, purge).
            payload (dict): Event fields, already validated by `protocol.parse_frame`.

        Returns:
            list[Delivery]: Outbound events to hand to the transport, in order.
        """
        handler = self._handlers.get(event)
        if handler is None:
            logging.warning(f"No handler for event type '{event}' from {connection_id}. Ignoring.")
            return []
        return handler(connection_id, payload)

    def _dispatch_join(self, connection_id, payload):
        return self.join(connection_id, payload.get("alias", ""))

    def _dispatch_message(self, connection_id, payload):
        return self.message(connection_id, payload.get("content", ""), payload.get("encrypted", False))

    def _dispatch_scan(self, connection_id, payload):
        return self.scan(connection_id)

    def _dispatch_direct_message(self, connection_id, payload):
        return self.direct_message(connection_id, payload.get("target", ""),
                                   payload.get("content", ""), payload.get("encrypted", False))

    def _dispatch_purge(self, connection_id, payload):
        return self.purge(connection_id, payload.get("key"))

    # --- Handlers ---

    def join(self, connection_id, raw_alias):
        with self._lock:
            if connection_id not in self._attached:
                logging.warning(f"Join from detached connection {connection_id}. Ignoring.")
                return []
            existing = self.registry.lookup(connection_id)
            if existing is not None:
                # The alias is fixed for the life of the connection.
                logging.warning(f"Connection {connection_id} already joined as '{existing.alias}'. Ignoring repeated join.")
                return []

            session = self.registry.register(connection_id, raw_alias, self._attached[connection_id], self._timestamp())
            logging.info(f"User joined: {session.alias} ({connection_id})")

            snapshot = self.history.snapshot()
            announcement = self._system_message(f"User {session.alias} has joined the secure channel.")
            self.history.append(announcement)

            return [
                Delivery((connection_id,), m.EVENT_HISTORY, {"messages": [msg.to_dict() for msg in snapshot]}),
                Delivery(self._everyone_but(connection_id), m.EVENT_MESSAGE, announcement.to_dict()),
                Delivery((connection_id,), m.EVENT_JOINED, {"session": session.to_dict()}),
            ]

    def message(self, connection_id, content, encrypted=False):
        with self._lock:
            session = self._active_session(connection_id)
            if session is None:
                return []

            decision = self.limiter.check(connection_id, self._clock())
            if not decision.allowed:
                logging.warning(f"Rate limit hit by '{session.alias}' ({connection_id}); {decision.remaining_seconds}s remaining.")
                return [self._error_reply(connection_id, RateLimitError(decision.remaining_seconds))]

            content = m.truncate(content, self.max_message_length)
            if not content:
                return []

            # Sender always comes from the registry, never from the payload.
            chat = m.make_message(m.PEER, session.alias, content, self._timestamp(), encrypted)
            self.history.append(chat)
            if config.DEBUG:
                logging.info(f"Broadcasting message {chat.id} from '{session.alias}'")
            return [Delivery(self._everyone_but(connection_id), m.EVENT_MESSAGE, chat.to_dict())]

    def scan(self, connection_id):
        with self._lock:
            session = self._active_session(connection_id)
            if session is None:
                return []
            # Roster queries are not worth an error reply when throttled.
            if not self.limiter.check(connection_id, self._clock()).allowed:
                return []
            users = [{"alias": s.alias, "maskedAddress": s.masked_address} for s in self.registry.list_all()]
            return [Delivery((connection_id,), m.EVENT_ROSTER, {"users": users})]

    def direct_message(self, connection_id, target, content, encrypted=False):
        with self._lock:
            session = self._active_session(connection_id)
            if session is None:
                return []
            if not self.limiter.check(connection_id, self._clock()).allowed:
                return []

            content = m.truncate(content, self.max_message_length)
            if not content:
                return []

            target_id = self.registry.lookup_by_alias(target)
            if target_id is None:
                logging.info(f"Direct message from '{session.alias}' to unknown alias '{target}'.")
                return [self._error_reply(connection_id, NotFoundError(target))]

            timestamp = self._timestamp()
            delivered = m.make_message(m.PEER, f"{session.alias} [PRIVATE]", content, timestamp, encrypted)
            echoed = m.make_message(m.PEER, f"To: {target}", content, timestamp, encrypted)
            return [
                Delivery((target_id,), m.EVENT_MESSAGE, delivered.to_dict()),
                Delivery((connection_id,), m.EVENT_MESSAGE, echoed.to_dict()),
            ]

    def purge(self, connection_id, supplied_key):
        with self._lock:
            session = self._active_session(connection_id)
            if session is None:
                return []
            if not self.authority.authorize_purge(supplied_key):
                logging.warning(f"Rejected purge attempt from '{session.alias}' ({connection_id}).")
                return [self._error_reply(connection_id, AuthorizationError())]

            self.history.clear()
            notice = self._system_message("Channel history purged. Channel sanitized.")
            self.history.append(notice)
            logging.info(f"History purged by '{session.alias}' ({connection_id}).")
            everyone = self._everyone()
            return [
                Delivery(everyone, m.EVENT_PURGE_SIGNAL, {}),
                Delivery(everyone, m.EVENT_MESSAGE, notice.to_dict()),
            ]

    def disconnect(self, connection_id):
        with self._lock:
            self._attached.pop(connection_id, None)
            self.limiter.discard(connection_id)
            session = self.registry.remove(connection_id)
            if session is None:
                return []
            logging.info(f"User left: {session.alias} ({connection_id})")
            notice = self._system_message(f"Connection lost: {session.alias}")
            self.history.append(notice)
            return [Delivery(self._everyone(), m.EVENT_MESSAGE, notice.to_dict())]
