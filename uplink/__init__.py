# uplink/__init__.py
# Uplink: a WebSocket text relay with rate limiting, a replay buffer and a purge command.

__version__ = "1.0.0"
