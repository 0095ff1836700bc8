# uplink/main.py
# Entry point for the Uplink relay server.
# Sets up logging, applies command-line overrides to the configuration and runs the server.

import argparse
import asyncio
import logging

from . import config
from . import server

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


def build_parser():
    parser = argparse.ArgumentParser(description="Uplink WebSocket relay server")
    parser.add_argument("--host", default=config.HOST, help=f"Address to listen on (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Port to listen on (default: {config.PORT})")
    parser.add_argument("--debug", action="store_true", default=config.DEBUG, help="Log raw frames and deliveries")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config.DEBUG = args.debug

    logging.info("Attempting to start Uplink relay...")
    logging.info(f"Using HOST={args.host}, PORT={args.port}")
    try:
        asyncio.run(server.start_server(args.host, args.port))
    except KeyboardInterrupt:
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except OSError:
        logging.exception(f"OSError starting server on {args.host}:{args.port} - Is the port already in use?")
        return 1
    except Exception:
        logging.exception("Server failed to start or crashed.")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
