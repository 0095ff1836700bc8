# uplink/server.py
# This file contains the WebSocket transport for the Uplink relay.
# Responsibilities include:
# - Accepting client connections and throttling new connections per IP address.
# - Parsing and validating incoming frames before they reach the broker.
# - Handing each validated event to the RelayBroker and writing out the resulting deliveries.
# - Reporting disconnections to the broker so sessions and rate state are cleaned up.
# - Setting up the SSL context for Secure WebSockets (WSS) if configured.

import asyncio          # Event loop and the never-completing Future that keeps the server alive.
import logging          # For logging server events, warnings, and errors.
import ssl              # For creating SSL contexts for WSS.
import time             # For timestamping connection attempts.

import websockets       # The WebSocket library used for the server and for non-blocking fan-out.

from . import config
from .broker import RelayBroker
from .errors import ValidationError
from .protocol import encode, parse_frame
from .rate_limit import ConnectionThrottle


class RelayServer:
    """
    Binds a RelayBroker to live WebSocket connections.

    Args:
        broker (RelayBroker | None): The broker to drive. A default-configured one is created when omitted.
        throttle (ConnectionThrottle | None): Per-IP connection admission limiter.
    """

    def __init__(self, broker=None, throttle=None):
        self.broker = broker if broker is not None else RelayBroker()
        self.throttle = throttle if throttle is not None else ConnectionThrottle(
            config.MAX_CONNECTIONS_PER_IP, config.CONNECTION_WINDOW_SECONDS)
        # connection id -> websocket, for every attached connection.
        self.connections = {}

    def deliver(self, deliveries):
        """
        Writes broker deliveries to their recipients.

        `websockets.broadcast` queues the frame on each connection without awaiting the
        write, so a slow or closed peer never holds up the event loop or other clients.
        Connections that are already closed are skipped.
        """
        for delivery in deliveries:
            targets = [self.connections[cid] for cid in delivery.recipients if cid in self.connections]
            if not targets:
                continue
            frame = encode(delivery)
            if config.DEBUG:
                logging.info(f"Delivering '{delivery.event}' to {len(targets)} connection(s): {frame}")
            websockets.broadcast(targets, frame)

    async def connection_handler(self, websocket):
        """
        Handles one client connection for its whole lifetime.

        1. Applies the per-IP connection throttle.
        2. Attaches the connection to the broker.
        3. Parses each frame, dispatches it and delivers the results.
        4. On close (clean or not), reports the disconnect and delivers the notice.

        Args:
            websocket: The server-side WebSocket connection.
        """
        remote = websocket.remote_address
        client_ip = remote[0] if remote else "unknown"
        connection_id = str(websocket.id)
        logging.info(f"Client attempting connection from {remote}")

        # --- Connection Rate Limiting ---
        if not self.throttle.admit(client_ip, time.time()):
            logging.warning(f"Connection rate limit exceeded for IP {client_ip}. Closing connection.")
            await websocket.close(code=1008, reason="Connection rate limit exceeded")
            return

        self.connections[connection_id] = websocket
        self.broker.attach(connection_id, remote)
        logging.info(f"Connection accepted from {remote} as {connection_id}")

        try:
            async for frame in websocket:
                if config.DEBUG:
                    logging.info(f"Raw frame received from {connection_id}: {frame}")
                try:
                    event, payload = parse_frame(frame)
                except ValidationError as e:
                    logging.warning(f"Invalid frame from {connection_id}: {e}. Ignoring.")
                    continue
                self.deliver(self.broker.dispatch(connection_id, event, payload))

        except websockets.exceptions.ConnectionClosedOK:
            logging.info(f"Client {connection_id} disconnected gracefully.")
        except websockets.exceptions.ConnectionClosedError as e:
            logging.info(f"Client {connection_id} disconnected with error: {e}")
        except Exception:
            logging.exception(f"An unexpected error occurred handling client {connection_id}")
        finally:
            # --- Cleanup ---
            self.connections.pop(connection_id, None)
            self.deliver(self.broker.disconnect(connection_id))
            logging.info(f"Connection closed for {connection_id}")


def create_ssl_context():
    """
    Builds the server SSL context when WSS is enabled.

    Returns:
        ssl.SSLContext | None: The context, or None to serve plain WS (SSL disabled,
        or the certificate files could not be loaded).
    """
    if not config.ENABLE_SSL:
        return None
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). Disabling SSL, falling back to WS.")
    except ssl.SSLError:
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


# --- Server Startup Function ---
async def start_server(host, port, relay=None):
    """
    Starts the WebSocket server and runs it until the process is stopped.

    Args:
        host (str): The address to bind to.
        port (int): The port to bind to.
        relay (RelayServer | None): The relay to serve. A default-configured one is created when omitted.
    """
    relay = relay if relay is not None else RelayServer()
    ssl_context = create_ssl_context()
    protocol = "wss" if ssl_context else "ws"

    logging.info(f"Starting server on {protocol}://{host}:{port}")
    logging.info(f"Connection Rate Limit: {config.MAX_CONNECTIONS_PER_IP} per {config.CONNECTION_WINDOW_SECONDS}s per IP")
    logging.info(f"Message Rate Limit: {config.RATE_LIMIT} per {config.RATE_WINDOW_MS}ms, {config.PENALTY_MS}ms penalty")
    logging.info(f"History: last {config.HISTORY_LIMIT} messages, max message length {config.MAX_MESSAGE_LENGTH}")
    logging.info(f"Allowed origins: {config.ALLOWED_ORIGINS}")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")
    if config.ADMIN_KEY == config.DEFAULT_ADMIN_KEY:
        logging.warning("ADMIN_KEY is set to the built-in default. Anyone can purge history; set ADMIN_KEY before deploying.")

    async with websockets.serve(
        relay.connection_handler,
        host,
        port,
        ssl=ssl_context,
        origins=config.allowed_origins(),
        max_size=config.MAX_FRAME_BYTES,
    ):
        await asyncio.Future()  # Runs until cancelled.
