"""Logging for the Ollama proxy gateway.

Emits structured per-request records to stdout and, optionally, to an
append-only log file. In debug mode full request and response details are
logged as well.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

logger = logging.getLogger("ollama_proxy")


def setup_logging(log_file: Optional[str] = None, debug: bool = False) -> None:
    """Configure the gateway logger with stdout and optional file handlers.

    Args:
        log_file: Path to the append-only log file, or None for stdout only.
        debug: Log at DEBUG level, including request/response dumps.
    """
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        # Stdout handler
        stdout_handler = logging.StreamHandler()
        stdout_fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
        stdout_handler.setFormatter(stdout_fmt)
        logger.addHandler(stdout_handler)

        if log_file:
            log_path = Path(log_file)
            os.makedirs(log_path.parent, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a")
            file_handler.setFormatter(stdout_fmt)
            logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(level)


def log_request(
    *,
    alias: Any,
    outcome: str,
    status: int,
    upstream_model: Optional[str] = None,
    base_url: Optional[str] = None,
    error: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """Log the outcome of a single chat request as a JSON line.

    Args:
        alias: The model alias requested.
        outcome: Short outcome label (e.g. "success", "not_found", "proxy_error").
        status: HTTP status returned to the client.
        upstream_model: The upstream model id, once resolved.
        base_url: The upstream base URL, once located.
        error: Error message if the request failed.
        request_id: Gateway-assigned request ID.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "alias": alias if isinstance(alias, str) else repr(alias),
        "upstream_model": upstream_model,
        "base_url": base_url,
        "outcome": outcome,
        "status": status,
    }

    if error:
        record["error"] = error

    if status >= 500:
        logger.error(json.dumps(record))
    else:
        logger.info(json.dumps(record))


def _redact(headers: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    return {
        key: ("Bearer ***" if key.lower() == "authorization" else value)
        for key, value in headers
    }


def log_debug_request(
    method: str, url: str, headers: Iterable[Tuple[str, str]], body: str
) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "Incoming Request:\nMethod: %s\nURL: %s\nHeaders: %s\nBody: %s",
        method,
        url,
        json.dumps(_redact(headers), indent=2),
        body,
    )


def log_debug_response(
    status: int, headers: Dict[str, str], body: bytes
) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "Response:\nStatus: %s\nHeaders: %s\nBody: %s",
        status,
        json.dumps(headers, indent=2),
        body.decode("utf-8", errors="replace"),
    )
