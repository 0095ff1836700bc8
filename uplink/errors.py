# uplink/errors.py
# Exception types for per-request failures. None of them is fatal to the server:
# each one is turned into (at most) a single reply to the requester, or a logged warning.


class RelayError(Exception):
    """Base class for relay request failures."""


class ValidationError(RelayError):
    """An inbound frame or payload is structurally invalid."""


class RateLimitError(RelayError):
    """The connection exceeded its action rate and is in a penalty window."""

    def __init__(self, remaining_seconds):
        super().__init__(f"Rate limit exceeded. Try again in {remaining_seconds}s.")
        self.remaining_seconds = remaining_seconds


class AuthorizationError(RelayError):
    """A privileged command was attempted with the wrong key."""

    def __init__(self, message="Authorization failed. Purge rejected."):
        super().__init__(message)


class NotFoundError(RelayError):
    """A direct message named an alias with no active session."""

    def __init__(self, target):
        super().__init__(f"User '{target}' not found.")
        self.target = target
