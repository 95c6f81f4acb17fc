"""Rewrites an inbound chat payload for the upstream provider."""

from typing import Any

from ollama_proxy.config import ProviderProfile


def _has_system_message(messages: list) -> bool:
    return any(
        isinstance(m, dict) and m.get("role") == "system" for m in messages
    )


def transform_body(body: Any, profile: ProviderProfile) -> Any:
    """Return a copy of ``body`` addressed to the profile's upstream model.

    The alias in ``model`` is replaced by the real upstream model id. When
    the profile has a system message and the conversation has none, it is
    prepended. A caller-supplied system message always wins. Every other
    field is passed through untouched. Non-object payloads are returned as-is.
    """
    if not isinstance(body, dict):
        return body

    new_body = dict(body)
    new_body["model"] = profile.upstream_model

    messages = new_body.get("messages")
    if profile.system_message and isinstance(messages, list):
        if not _has_system_message(messages):
            new_body["messages"] = [
                {"role": "system", "content": profile.system_message}
            ] + messages

    return new_body
