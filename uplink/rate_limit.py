# uplink/rate_limit.py
# Abuse controls.
# - RateLimiter: per-connection fixed window counter with a penalty lockout, applied
#   to chat messages, roster scans and direct messages.
# - ConnectionThrottle: per-IP sliding window limiting how often new connections are accepted.
#
# Both are lazy: state is only updated when the connection (or IP) acts again,
# so there are no background timers and idle clients cost nothing.

import math
from dataclasses import dataclass


@dataclass
class RateState:
    connection_id: str
    window_start: int = 0
    count_in_window: int = 0
    penalty_until: int = 0  # 0 when no penalty has been applied.


@dataclass(frozen=True)
class Decision:
    allowed: bool
    remaining_seconds: int = 0


ALLOWED = Decision(allowed=True)


class RateLimiter:
    """
    Per-connection action limiter.

    A connection may perform `limit` actions per `window_ms`. The action that
    exceeds the limit starts a penalty of `penalty_ms`, during which every action
    is denied. Penalty expiry is discovered on the connection's next attempt.

    Args:
        window_ms (int): Length of the counting window in milliseconds.
        limit (int): Actions allowed per window.
        penalty_ms (int): Lockout duration after exceeding the limit.
    """

    def __init__(self, window_ms=1000, limit=5, penalty_ms=5000):
        self.window_ms = window_ms
        self.limit = limit
        self.penalty_ms = penalty_ms
        self._states = {}

    def check(self, connection_id, now):
        """
        Counts one action for `connection_id` at time `now` (milliseconds).

        Returns:
            Decision: allowed, or denied with the remaining cooldown in whole seconds (rounded up).
        """
        state = self._states.get(connection_id)
        if state is None:
            state = RateState(connection_id=connection_id, window_start=now)
            self._states[connection_id] = state

        if now < state.penalty_until:
            return Decision(False, math.ceil((state.penalty_until - now) / 1000))

        if now - state.window_start > self.window_ms:
            state.window_start = now
            state.count_in_window = 1
        else:
            state.count_in_window += 1

        if state.count_in_window > self.limit:
            state.penalty_until = now + self.penalty_ms
            return Decision(False, math.ceil(self.penalty_ms / 1000))

        return ALLOWED

    def state_for(self, connection_id):
        return self._states.get(connection_id)

    def discard(self, connection_id):
        """Drops the state for a departed connection. Unknown ids are ignored."""
        self._states.pop(connection_id, None)

    def __len__(self):
        return len(self._states)


class ConnectionThrottle:
    """
    Sliding-window limit on new connections per client IP.

    Args:
        max_connections (int): Connections accepted per IP within the window.
        window_seconds (float): Window length in seconds.
    """

    def __init__(self, max_connections=10, window_seconds=60):
        self.max_connections = max_connections
        self.window_seconds = window_seconds
        self._attempts = {}

    def admit(self, client_ip, now):
        """
        Records a connection attempt from `client_ip` at `now` (seconds).

        Returns:
            bool: True when the connection may proceed, False when the IP is over its limit.
        """
        # Drop attempts that have aged out of the window.
        recent = [t for t in self._attempts.get(client_ip, []) if now - t < self.window_seconds]
        if len(recent) >= self.max_connections:
            self._attempts[client_ip] = recent
            return False
        recent.append(now)
        self._attempts[client_ip] = recent
        return True
