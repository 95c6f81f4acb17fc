"""Static Ollama/OpenAI metadata built from the config snapshot.

Clients such as IDE plugins probe these endpoints before chatting. The
proxy has no real model files, so sizes, digests and architecture fields
are fixed placeholders.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from ollama_proxy.config import ConfigSnapshot, ProviderProfile
from ollama_proxy.models import (
    HealthStatus,
    ModelCard,
    ModelList,
    OllamaTag,
    ShowResponse,
    TagsResponse,
)

DEFAULT_PARAMETERS = "# No specific parameters defined in proxy config"
DEFAULT_TEMPLATE = (
    "{{ if .System }}System: {{ .System }}{{ end }}\n"
    "User: {{ .Prompt }}\n"
    "Assistant: {{ .Response }}"
)

_MODEL_INFO: Dict[str, Any] = {
    "general.architecture": "llama",
    "general.file_type": 2,
    "general.parameter_count": 0,
    "llama.context_length": 120000,
    "llama.block_count": 0,
    "llama.embedding_length": 0,
    "llama.attention.head_count": 0,
    "llama.attention.head_count_kv": 0,
    "llama.attention.layer_norm_rms_epsilon": 0.00001,
    "llama.feed_forward_length": 0,
    "llama.rope.dimension_count": 0,
    "llama.rope.freq_base": 500000,
    "llama.vocab_size": 0,
    "tokenizer.ggml.model": "gpt2",
    "tokenizer.ggml.bos_token_id": 0,
    "tokenizer.ggml.eos_token_id": 0,
}


def health_payload() -> HealthStatus:
    return HealthStatus()


def list_models(snapshot: ConfigSnapshot) -> ModelList:
    created = int(time.time())
    return ModelList(
        data=[ModelCard(id=p.alias, created=created) for p in snapshot.profiles]
    )


def list_tags(snapshot: ConfigSnapshot) -> TagsResponse:
    now = datetime.now(timezone.utc).isoformat()
    return TagsResponse(
        models=[
            OllamaTag(name=p.alias, model=p.alias, modified_at=now)
            for p in snapshot.profiles
        ]
    )


def show_model(profile: ProviderProfile) -> ShowResponse:
    """Describe a proxied model, filling in defaults for unset fields."""
    modelfile = profile.modelfile or "# Modelfile for {} (proxied)\nFROM scratch".format(
        profile.alias
    )
    model_info = dict(_MODEL_INFO)
    model_info["general.name"] = profile.alias

    return ShowResponse(
        modelfile=modelfile,
        parameters=profile.parameters or DEFAULT_PARAMETERS,
        template=profile.template or DEFAULT_TEMPLATE,
        model_info=model_info,
    )
