"""Forwarder for OpenAI-compatible chat completion APIs.

Sends the rewritten request upstream with the profile's credentials, reads
the whole response, and turns transport failures into gateway statuses.
Upstream HTTP errors are not interpreted; they are relayed as received.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from ollama_proxy.config import ProviderProfile
from ollama_proxy.router import chat_completions_url

# Set by the HTTP client for the rewritten body and the encodings it can decode.
_DROPPED_REQUEST_HEADERS = frozenset({"host", "content-length", "accept-encoding"})

# The body is relayed decoded and re-framed by the ASGI server.
_DROPPED_RESPONSE_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection"}
)

# Python's wording for the connection-refused and DNS failure classes.
_UNAVAILABLE_MARKERS = (
    "ECONNREFUSED",
    "ENOTFOUND",
    "Connection refused",
    "Name or service not known",
    "nodename nor servname provided",
    "Temporary failure in name resolution",
    "getaddrinfo failed",
    "No address associated with hostname",
)


@dataclass
class UpstreamResult:
    """Fully buffered upstream response."""

    status_code: int
    reason_phrase: str
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""


class UpstreamTransportError(Exception):
    """Raised when the upstream call fails or its response cannot be read."""

    def __init__(self, status_code: int, details: str) -> None:
        self.status_code = status_code
        self.details = details
        super().__init__(details)


def classify_error_message(message: str) -> int:
    """Map transport error text to a gateway status code.

    "timeout" anywhere in the text means 504, regardless of what else it
    contains. Refused connections and unresolvable hosts mean 503.
    Everything else is 502.
    """
    if "timeout" in message:
        return 504
    if any(marker in message for marker in _UNAVAILABLE_MARKERS):
        return 503
    return 502


def describe_transport_error(exc: Exception) -> str:
    message = str(exc)
    if not message:
        message = type(exc).__name__
    return message


def classify_transport_error(exc: Exception) -> int:
    if isinstance(exc, httpx.TimeoutException):
        return 504
    return classify_error_message(describe_transport_error(exc))


def build_upstream_headers(
    inbound_headers: Iterable[Tuple[str, str]], profile: ProviderProfile
) -> httpx.Headers:
    """Copy inbound headers and install the gateway's own credential.

    Any client-supplied Authorization or Content-Type is replaced.
    """
    headers = httpx.Headers(
        [
            (key, value)
            for key, value in inbound_headers
            if key.lower() not in _DROPPED_REQUEST_HEADERS
        ]
    )
    headers["Authorization"] = "Bearer {}".format(profile.api_key)
    headers["Content-Type"] = "application/json"
    return headers


def _join_response_headers(headers: httpx.Headers) -> Dict[str, str]:
    joined: Dict[str, List[str]] = {}
    for key, value in headers.multi_items():
        key = key.lower()
        if key in _DROPPED_RESPONSE_HEADERS:
            continue
        joined.setdefault(key, []).append(value)
    return {key: ", ".join(values) for key, values in joined.items()}


async def forward(
    base_url: str,
    body: Any,
    inbound_headers: Iterable[Tuple[str, str]],
    profile: ProviderProfile,
    method: str = "POST",
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> UpstreamResult:
    """Send the transformed request upstream and buffer the response.

    Args:
        base_url: Upstream base URL from the locator.
        body: The transformed JSON payload.
        inbound_headers: Header pairs from the client request.
        profile: The resolved profile (supplies the API key).
        method: HTTP method, mirrored from the inbound request.
        timeout: Optional transport timeout in seconds; None waits indefinitely.
        transport: Optional httpx transport, used by tests.

    Returns:
        An UpstreamResult with the upstream status, headers and body.

    Raises:
        UpstreamTransportError: If the request could not be completed.
    """
    url = chat_completions_url(base_url)
    headers = build_upstream_headers(inbound_headers, profile)
    content = json.dumps(body).encode("utf-8")

    try:
        async with httpx.AsyncClient(
            timeout=timeout, verify=False, trust_env=False, transport=transport
        ) as client:
            resp = await client.request(method, url, content=content, headers=headers)
    except (httpx.RequestError, OSError) as exc:
        raise UpstreamTransportError(
            classify_transport_error(exc), describe_transport_error(exc)
        ) from exc

    return UpstreamResult(
        status_code=resp.status_code,
        reason_phrase=resp.reason_phrase,
        headers=_join_response_headers(resp.headers),
        content=resp.content,
    )
