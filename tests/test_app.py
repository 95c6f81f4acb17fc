"""Tests for the HTTP surface and the chat forwarding pipeline.

The upstream provider is replaced by an httpx.MockTransport so the full
resolve, locate, transform and forward path runs without network access.
"""

import json
from pathlib import Path
from typing import Callable, List

import httpx
import pytest
import yaml
from httpx import ASGITransport, AsyncClient

from ollama_proxy import app as app_module
from ollama_proxy.app import app

from conftest import _make_config

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _reset_app_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the app at a fresh test config and clear cached state."""
    config_path = _make_config(tmp_path)
    monkeypatch.setattr(app_module, "CONFIG_PATH", config_path)
    monkeypatch.setattr(app_module, "_store", None)
    monkeypatch.setattr(app_module, "_upstream_transport", None)


def _install_upstream(monkeypatch: pytest.MonkeyPatch, handler: Handler) -> None:
    monkeypatch.setattr(
        app_module, "_upstream_transport", httpx.MockTransport(handler)
    )


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _chat_body(model: str = "gpt-x", content: str = "hi") -> dict:
    return {"model": model, "messages": [{"role": "user", "content": content}]}


@pytest.mark.asyncio
async def test_health() -> None:
    """The root path reports the proxy as running."""
    async with _client() as client:
        resp = await client.get("/")

    assert resp.status_code == 200
    assert resp.json() == {"status": "running", "message": "Ollama Proxy is active"}


@pytest.mark.asyncio
async def test_list_models_endpoint() -> None:
    """/v1/models lists the configured aliases."""
    async with _client() as client:
        resp = await client.get("/v1/models")

    assert resp.status_code == 200
    assert [m["id"] for m in resp.json()["data"]] == ["gpt-x", "custom", "broken"]


@pytest.mark.asyncio
async def test_tags_endpoint() -> None:
    """/api/tags lists the configured aliases in Ollama form."""
    async with _client() as client:
        resp = await client.get("/api/tags")

    assert resp.status_code == 200
    assert [m["name"] for m in resp.json()["models"]] == ["gpt-x", "custom", "broken"]


@pytest.mark.asyncio
async def test_show_endpoint() -> None:
    """/api/show describes a known alias."""
    async with _client() as client:
        resp = await client.post("/api/show", json={"model": "gpt-x"})

    assert resp.status_code == 200
    assert resp.json()["model_info"]["general.name"] == "gpt-x"


@pytest.mark.asyncio
async def test_show_unknown_model() -> None:
    """/api/show returns 404 for an unknown alias."""
    async with _client() as client:
        resp = await client.post("/api/show", json={"model": "nope"})

    assert resp.status_code == 404
    assert resp.json() == {"error": "model 'nope' not found"}


@pytest.mark.asyncio
async def test_show_invalid_body() -> None:
    """/api/show rejects a body that is not a JSON object."""
    async with _client() as client:
        resp = await client.post("/api/show", content=b"not json")

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body"}


@pytest.mark.asyncio
async def test_unknown_path_is_plain_404() -> None:
    """Unmatched paths return a plain-text Not Found."""
    async with _client() as client:
        resp = await client.get("/api/generate")

    assert resp.status_code == 404
    assert resp.text == "Not Found"


@pytest.mark.asyncio
async def test_wrong_method_is_plain_404() -> None:
    """A known path with an unsupported method is also Not Found."""
    async with _client() as client:
        resp = await client.get("/api/show")

    assert resp.status_code == 404
    assert resp.text == "Not Found"


@pytest.mark.asyncio
async def test_chat_happy_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """A chat request is rewritten, forwarded and relayed verbatim."""
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={"id": "chatcmpl-1", "choices": []},
            headers={"x-request-id": "up-1"},
        )

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post(
            "/v1/chat/completions",
            json=_chat_body(),
            headers={"Authorization": "Bearer client-key"},
        )

    assert resp.status_code == 200
    assert resp.json() == {"id": "chatcmpl-1", "choices": []}
    assert resp.headers["x-request-id"] == "up-1"

    sent = captured[0]
    assert str(sent.url) == "https://api.novita.ai/v3/openai/chat/completions"
    assert sent.headers["authorization"] == "Bearer sk-novita"
    assert json.loads(sent.content) == {
        "model": "gpt-4o-mini",
        "messages": [
            {"role": "system", "content": "be nice"},
            {"role": "user", "content": "hi"},
        ],
    }


@pytest.mark.asyncio
async def test_chat_base_url_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """A profile's baseUrl is used instead of its provider's table entry."""
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body("custom"))

    assert resp.status_code == 200
    assert str(captured[0].url) == "https://llm.example.com/v1/chat/completions"
    assert captured[0].headers["authorization"] == "Bearer sk-custom"


@pytest.mark.asyncio
async def test_chat_unknown_model() -> None:
    """An alias missing from the snapshot is a 404 naming the alias."""
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body("x"))

    assert resp.status_code == 404
    assert resp.json() == {"error": "model 'x' not found"}


@pytest.mark.asyncio
async def test_chat_invalid_provider_config() -> None:
    """A profile with no usable base URL is a server-side 500."""
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body("broken"))

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "Invalid provider configuration - please specify baseUrl "
        "or a valid provider name"
    }


@pytest.mark.asyncio
async def test_chat_invalid_json() -> None:
    """A malformed body is a 400."""
    async with _client() as client:
        resp = await client.post(
            "/v1/chat/completions",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid JSON in request body"}


@pytest.mark.asyncio
async def test_chat_upstream_error_relayed(monkeypatch: pytest.MonkeyPatch) -> None:
    """Upstream 4xx bodies are relayed byte-for-byte."""
    error_bytes = b'{"error":{"message":"Invalid API key","code":401}}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401, content=error_bytes, headers={"Content-Type": "application/json"}
        )

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body())

    assert resp.status_code == 401
    assert resp.content == error_bytes


@pytest.mark.asyncio
async def test_chat_dns_failure_is_503(monkeypatch: pytest.MonkeyPatch) -> None:
    """A DNS failure maps to 503 with the proxy error envelope."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body())

    assert resp.status_code == 503
    assert resp.json() == {
        "error": "Proxy error",
        "details": "[Errno -2] Name or service not known",
        "status": 503,
    }


@pytest.mark.asyncio
async def test_chat_timeout_is_504(monkeypatch: pytest.MonkeyPatch) -> None:
    """An upstream timeout maps to 504."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body())

    assert resp.status_code == 504
    assert resp.json()["status"] == 504


@pytest.mark.asyncio
async def test_chat_other_transport_error_is_502(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Unclassified transport failures map to 502."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("Server disconnected", request=request)

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body())

    assert resp.status_code == 502
    assert resp.json()["details"] == "Server disconnected"


@pytest.mark.asyncio
async def test_reload_between_requests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """After a reload, new requests see the new snapshot."""
    _install_upstream(monkeypatch, lambda request: httpx.Response(200, json={}))
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body("fresh"))
        assert resp.status_code == 404

        Path(app_module.CONFIG_PATH).write_text(
            yaml.safe_dump(
                {
                    "models": [
                        {
                            "name": "fresh",
                            "provider": "xAI",
                            "model": "grok-3",
                            "apiKey": "k",
                        }
                    ]
                }
            )
        )
        assert app_module.get_store().reload() is True

        resp = await client.post("/v1/chat/completions", json=_chat_body("fresh"))

    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_chat_reload_during_request_keeps_old_profile(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A reload while a request waits upstream does not affect that request."""
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if len(captured) == 1:
            Path(app_module.CONFIG_PATH).write_text(
                yaml.safe_dump(
                    {
                        "models": [
                            {
                                "name": "gpt-x",
                                "provider": "xAI",
                                "model": "grok-3",
                                "apiKey": "sk-xai",
                            }
                        ]
                    }
                )
            )
            assert app_module.get_store().reload() is True
        return httpx.Response(200, json={})

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        first = await client.post("/v1/chat/completions", json=_chat_body())
        second = await client.post("/v1/chat/completions", json=_chat_body())

    assert first.status_code == 200
    assert second.status_code == 200

    in_flight, after = captured
    assert str(in_flight.url) == "https://api.novita.ai/v3/openai/chat/completions"
    assert in_flight.headers["authorization"] == "Bearer sk-novita"
    assert json.loads(in_flight.content)["model"] == "gpt-4o-mini"

    assert str(after.url) == "https://api.x.ai/v1/chat/completions"
    assert after.headers["authorization"] == "Bearer sk-xai"
    assert json.loads(after.content)["model"] == "grok-3"


@pytest.mark.asyncio
async def test_chat_undecodable_response_is_502(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A response body that cannot be decoded maps to the 502 proxy error."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=b"not gzip", headers={"Content-Encoding": "gzip"}
        )

    _install_upstream(monkeypatch, handler)
    async with _client() as client:
        resp = await client.post("/v1/chat/completions", json=_chat_body())

    assert resp.status_code == 502
    data = resp.json()
    assert data["error"] == "Proxy error"
    assert data["status"] == 502
    assert data["details"]


@pytest.mark.asyncio
@pytest.mark.parametrize("constant", [b"NaN", b"Infinity", b"-Infinity"])
async def test_chat_non_standard_json_constant_rejected(
    constant: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    """NaN and Infinity are not JSON; the request is a 400 and never forwarded."""
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={})

    _install_upstream(monkeypatch, handler)
    body = b'{"model": "gpt-x", "messages": [], "temperature": ' + constant + b"}"
    async with _client() as client:
        resp = await client.post(
            "/v1/chat/completions",
            content=body,
            headers={"Content-Type": "application/json"},
        )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid JSON in request body"}
    assert captured == []
