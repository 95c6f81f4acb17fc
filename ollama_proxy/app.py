"""FastAPI application for the Ollama proxy gateway.

Serves an Ollama-compatible surface. Chat requests under /v1/chat/ go
through the forwarding pipeline:

1. Parse the JSON body
2. Resolve the model alias against the current config snapshot
3. Locate the upstream base URL
4. Rewrite the body for the upstream model
5. Forward with the profile's credential and relay the response
"""

import json
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from ollama_proxy.config import ConfigSnapshot, ConfigStore
from ollama_proxy.handlers import health_payload, list_models, list_tags, show_model
from ollama_proxy.models import ErrorResponse, ProxyErrorResponse
from ollama_proxy.provider import UpstreamTransportError, forward
from ollama_proxy.router import (
    ModelNotFound,
    ProviderResolutionError,
    locate_base_url,
    resolve_profile,
)
from ollama_proxy.telemetry import (
    log_debug_request,
    log_debug_response,
    log_request,
    setup_logging,
)
from ollama_proxy.transform import transform_body
from ollama_proxy.watcher import ConfigWatcher

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.yaml")
DEBUG = os.getenv("DEBUG", "").lower() == "true"

_store: Optional[ConfigStore] = None
_watcher: Optional[ConfigWatcher] = None
# None means a real network transport; tests install an httpx.MockTransport.
_upstream_transport: Optional[httpx.AsyncBaseTransport] = None

_ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def get_store() -> ConfigStore:
    """Return the config store (lazy-init from CONFIG_PATH)."""
    global _store
    if _store is None:
        _store = ConfigStore.open(CONFIG_PATH)
    return _store


def get_snapshot() -> ConfigSnapshot:
    """Return the snapshot current at call time."""
    return get_store().snapshot()


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Load config, set up logging and watch the config file."""
    global _watcher
    store = get_store()
    setup_logging(store.snapshot().server.log_file, DEBUG)
    _watcher = ConfigWatcher(store)
    _watcher.start()
    yield
    await _watcher.stop()
    _watcher = None


app = FastAPI(title="Ollama Proxy", version="0.1.0", lifespan=lifespan)


def _parse_json(raw: bytes) -> Any:
    """Parse strict JSON; NaN and Infinity are rejected like any other bad token."""
    return json.loads(raw, parse_constant=_reject_constant)


def _reject_constant(name: str) -> Any:
    raise ValueError("Invalid JSON constant: {}".format(name))


def _error_response(status: int, message: str) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = ErrorResponse(error=message)
    return JSONResponse(status_code=status, content=body.model_dump())


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(
    request: Request, exc: StarletteHTTPException
) -> Response:
    """Unmatched paths, and matched paths with the wrong method, are 404."""
    if exc.status_code in (404, 405):
        return PlainTextResponse("Not Found", status_code=404)
    return await http_exception_handler(request, exc)


@app.get("/")
async def health() -> JSONResponse:
    return JSONResponse(content=health_payload().model_dump())


@app.get("/v1/models")
async def models() -> JSONResponse:
    return JSONResponse(content=list_models(get_snapshot()).model_dump())


@app.get("/api/tags")
async def tags() -> JSONResponse:
    return JSONResponse(content=list_tags(get_snapshot()).model_dump())


@app.post("/api/show")
async def show(request: Request) -> JSONResponse:
    snapshot = get_snapshot()
    try:
        payload = _parse_json(await request.body())
    except (ClientDisconnect, ValueError):
        return _error_response(400, "Invalid request body")
    if not isinstance(payload, dict):
        return _error_response(400, "Invalid request body")

    try:
        profile = resolve_profile(snapshot, payload.get("model"))
    except ModelNotFound as exc:
        return _error_response(404, str(exc))
    return JSONResponse(content=show_model(profile).model_dump())


@app.api_route("/v1/chat/{path:path}", methods=_ANY_METHOD, response_model=None)
async def chat(request: Request, path: str) -> Response:
    """Forward a chat request to the provider configured for its model."""
    request_id = "px-{}".format(uuid.uuid4().hex[:12])
    # Captured once: a reload during this request does not affect it.
    snapshot = get_snapshot()

    try:
        raw = await request.body()
    except ClientDisconnect:
        log_request(alias=None, outcome="invalid_body", status=400,
                    request_id=request_id)
        return _error_response(400, "Invalid request body")

    log_debug_request(
        request.method,
        str(request.url),
        request.headers.items(),
        raw.decode("utf-8", errors="replace"),
    )

    try:
        payload = _parse_json(raw)
    except ValueError:
        log_request(alias=None, outcome="invalid_json", status=400,
                    request_id=request_id)
        return _error_response(400, "Invalid JSON in request body")

    alias = payload.get("model") if isinstance(payload, dict) else None

    # --- Routing ---
    try:
        profile = resolve_profile(snapshot, alias)
    except ModelNotFound as exc:
        log_request(alias=alias, outcome="not_found", status=404,
                    error=str(exc), request_id=request_id)
        return _error_response(404, str(exc))

    try:
        base_url = locate_base_url(profile)
    except ProviderResolutionError as exc:
        log_request(
            alias=alias,
            outcome="config_error",
            status=500,
            upstream_model=profile.upstream_model,
            error="{} (provider={!r})".format(exc, exc.provider),
            request_id=request_id,
        )
        return _error_response(500, str(exc))

    # --- Upstream call ---
    upstream_body = transform_body(payload, profile)
    try:
        result = await forward(
            base_url,
            upstream_body,
            request.headers.items(),
            profile,
            method=request.method,
            timeout=snapshot.server.timeout,
            transport=_upstream_transport,
        )
    except UpstreamTransportError as exc:
        log_request(
            alias=alias,
            outcome="proxy_error",
            status=exc.status_code,
            upstream_model=profile.upstream_model,
            base_url=base_url,
            error=exc.details,
            request_id=request_id,
        )
        body = ProxyErrorResponse(details=exc.details, status=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    log_debug_response(result.status_code, result.headers, result.content)
    log_request(
        alias=alias,
        outcome="success" if result.status_code < 400 else "upstream_error",
        status=result.status_code,
        upstream_model=profile.upstream_model,
        base_url=base_url,
        error=None if result.status_code < 400 else result.reason_phrase,
        request_id=request_id,
    )
    return Response(
        content=result.content,
        status_code=result.status_code,
        headers=result.headers,
    )

