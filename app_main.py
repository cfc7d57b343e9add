"""Entry point for the development progress-sync server."""

from __future__ import annotations

import argparse

from quiz_persistence.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_persistence.server.sync_api import ReceivedEventStore, start_sync_server
from quiz_persistence.utils.logging_config import configure_logging


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the progress event sync endpoint.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args()


def main() -> None:
    """Initialize logging and serve the sync endpoint until interrupted."""
    args = _parse_args()
    logger = configure_logging(args.log_level)
    logger.info("Starting progress sync server on http://%s:%d", args.host, args.port)

    store = ReceivedEventStore()
    thread = start_sync_server(store=store, host=args.host, port=args.port)
    try:
        thread.join()
    except KeyboardInterrupt:
        logger.info("Stopping progress sync server (%d events received)", len(store))


if __name__ == "__main__":
    main()
