"""Process entry point: load config, pick a free port, run uvicorn."""

import argparse
import errno
import logging
import os
import socket
from typing import List, Optional

import uvicorn

from ollama_proxy import app as app_module
from ollama_proxy.config import ServerConfig
from ollama_proxy.telemetry import setup_logging

logger = logging.getLogger("ollama_proxy")


class PortUnavailableError(Exception):
    """Raised when no port in the allowed range can be bound."""


def find_available_port(hostname: str, port: int, max_attempts: int) -> int:
    """Return the first bindable port in ``port .. port + max_attempts``.

    Raises:
        PortUnavailableError: If every port in the range is in use.
        OSError: For bind failures other than "address in use".
    """
    for attempt in range(max_attempts + 1):
        candidate = port + attempt
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((hostname, candidate))
            except OSError as exc:
                if exc.errno != errno.EADDRINUSE:
                    raise
                logger.info(
                    "Port %d is in use, trying port %d...", candidate, candidate + 1
                )
                continue
        return candidate

    raise PortUnavailableError(
        "Failed to start server after {} attempts".format(max_attempts)
    )


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ollama-compatible proxy for OpenAI-style providers."
    )
    parser.add_argument(
        "--config",
        default=app_module.CONFIG_PATH,
        help="path to the YAML config file (default: %(default)s)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=app_module.DEBUG,
        help="log full requests and responses",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    app_module.CONFIG_PATH = os.path.expanduser(args.config)
    app_module.DEBUG = args.debug

    server: ServerConfig = app_module.get_snapshot().server
    setup_logging(server.log_file, args.debug)

    port = find_available_port(server.hostname, server.port, server.max_port_attempts)
    logger.info("Server starting at http://%s:%d", server.hostname, port)
    uvicorn.run(
        app_module.app,
        host=server.hostname,
        port=port,
        log_level="debug" if args.debug else "warning",
    )


if __name__ == "__main__":
    main()
