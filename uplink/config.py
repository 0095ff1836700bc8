# uplink/config.py
# This file centralizes configuration settings for the Uplink relay server.
# Every setting can be overridden through an environment variable (or a `.env` file
# in the working directory, loaded below) so deployments never need to edit this file.

import os  # Used to read environment variables and build certificate paths.

from dotenv import load_dotenv  # Loads KEY=VALUE pairs from a local .env file into os.environ.

load_dotenv()


def _env_int(name, default):
    """Reads an integer setting, falling back to `default` when unset or empty."""
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


def _env_bool(name, default):
    """Reads a boolean setting ("1", "true", "yes", "on" are truthy, case-insensitive)."""
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


# --- Network Configuration ---

# HOST: The IP address the WebSocket server listens on.
# - '0.0.0.0': all interfaces.
# - '127.0.0.1': local machine only.
HOST = os.environ.get("UPLINK_HOST", "0.0.0.0")

# PORT: The TCP port the WebSocket server listens on. Clients connect to ws(s)://<host>:<PORT>.
PORT = _env_int("PORT", 3001)

# ALLOWED_ORIGINS: Origins accepted for cross-origin browser connections.
# A comma-separated list, e.g. "https://chat.example.com,http://localhost:5173".
# "*" accepts any origin (the Origin header is not checked at all).
ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*")

# --- SSL Configuration ---

CERT_DIR = os.environ.get("CERT_DIR", os.path.join(os.path.dirname(__file__), "..", "certs"))
CERT_FILE = os.environ.get("CERT_FILE", os.path.join(CERT_DIR, "cert.pem"))
KEY_FILE = os.environ.get("KEY_FILE", os.path.join(CERT_DIR, "key.pem"))

# ENABLE_SSL: Serve WSS when True (CERT_FILE and KEY_FILE must exist), plain WS otherwise.
ENABLE_SSL = _env_bool("ENABLE_SSL", False)

# --- Command Authority ---

# ADMIN_KEY: Shared secret required by the purge command.
# The default is guessable on purpose so local setups work out of the box;
# the server logs a warning at startup while it is still in use. Set ADMIN_KEY in production.
DEFAULT_ADMIN_KEY = "admin"
ADMIN_KEY = os.environ.get("ADMIN_KEY", DEFAULT_ADMIN_KEY)

# --- History Configuration ---

# HISTORY_LIMIT: Number of recent broadcast messages replayed to a newly joined client.
HISTORY_LIMIT = _env_int("HISTORY_LIMIT", 50)

# --- Rate Limiting Configuration ---

# Per-connection action limiting (chat messages, roster scans, direct messages).
# RATE_LIMIT actions are allowed per RATE_WINDOW_MS; exceeding it locks the connection out for PENALTY_MS.
RATE_WINDOW_MS = _env_int("RATE_WINDOW_MS", 1000)
RATE_LIMIT = _env_int("RATE_LIMIT", 5)
PENALTY_MS = _env_int("PENALTY_MS", 5000)

# Connection admission limiting (per client IP address).
# MAX_CONNECTIONS_PER_IP new connections are accepted per CONNECTION_WINDOW_SECONDS.
MAX_CONNECTIONS_PER_IP = _env_int("MAX_CONNECTIONS_PER_IP", 10)
CONNECTION_WINDOW_SECONDS = _env_int("CONNECTION_WINDOW_SECONDS", 60)

# --- Payload Limits ---

# MAX_MESSAGE_LENGTH: Chat content is truncated to this many characters.
MAX_MESSAGE_LENGTH = _env_int("MAX_MESSAGE_LENGTH", 500)

# MAX_ALIAS_LENGTH: Requested aliases are truncated to this many characters.
MAX_ALIAS_LENGTH = _env_int("MAX_ALIAS_LENGTH", 32)

# MAX_FRAME_BYTES: Largest WebSocket frame accepted from a client. Larger frames close the connection.
MAX_FRAME_BYTES = _env_int("MAX_FRAME_BYTES", 64 * 1024)

# --- Debugging Configuration ---

# DEBUG: When True, raw inbound frames and outbound deliveries are logged.
# Connection, join, disconnect, purge and rate-limit events are logged regardless.
DEBUG = _env_bool("DEBUG", False)


def allowed_origins():
    """
    Returns the origin list for `websockets.serve(origins=...)`.

    Returns:
        list[str] | None: None when any origin is accepted, otherwise the configured origins.
    """
    origins = [origin.strip() for origin in ALLOWED_ORIGINS.split(",") if origin.strip()]
    if not origins or "*" in origins:
        return None
    return origins
