"""Response models for the Ollama proxy gateway."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    status: str = "running"
    message: str = "Ollama Proxy is active"


class ModelCard(BaseModel):
    """A single entry in the OpenAI-style model listing."""

    id: str
    object: str = "model"
    created: int
    owned_by: str = "ollama-proxy"


class ModelList(BaseModel):
    object: str = "list"
    data: List[ModelCard] = Field(default_factory=list)


class ModelDetails(BaseModel):
    """Placeholder model details; the proxy knows nothing about weights."""

    format: str = "proxy"
    family: str = "proxy"
    families: List[str] = Field(default_factory=list)
    parameter_size: str = "N/A"
    quantization_level: str = "N/A"


class ShowDetails(ModelDetails):
    parent_model: str = ""


class OllamaTag(BaseModel):
    """A single model in the Ollama /api/tags listing."""

    name: str
    model: str
    modified_at: str
    size: int = 0
    digest: str = ""
    details: ModelDetails = Field(default_factory=ModelDetails)


class TagsResponse(BaseModel):
    models: List[OllamaTag] = Field(default_factory=list)


class ShowResponse(BaseModel):
    """Ollama /api/show descriptor for a proxied model."""

    license: str = ""
    modelfile: str
    parameters: str
    template: str
    details: ShowDetails = Field(default_factory=ShowDetails)
    model_info: Dict[str, Any] = Field(default_factory=dict)
    capabilities: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error envelope for client and configuration errors."""

    error: str


class ProxyErrorResponse(BaseModel):
    """Error envelope for upstream transport failures."""

    error: str = "Proxy error"
    details: str
    status: int
