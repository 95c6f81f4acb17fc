"""Configuration loader for the Ollama proxy gateway.

Reads a YAML config file containing server settings and the list of model
profiles. Each load produces an immutable ConfigSnapshot; the ConfigStore
swaps the current snapshot reference on reload so in-flight requests keep
the snapshot they started with.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

logger = logging.getLogger("ollama_proxy")

DEFAULT_PORT = 11434
DEFAULT_HOSTNAME = "127.0.0.1"
DEFAULT_MAX_PORT_ATTEMPTS = 20


@dataclass(frozen=True)
class ProviderProfile:
    """Binds a client-facing model alias to an upstream provider."""

    alias: str
    upstream_model: str
    api_key: str
    provider: Optional[str] = None
    base_url: Optional[str] = None
    system_message: Optional[str] = None
    modelfile: Optional[str] = None
    parameters: Optional[str] = None
    template: Optional[str] = None


@dataclass(frozen=True)
class ServerConfig:
    """Listener settings."""

    port: int = DEFAULT_PORT
    hostname: str = DEFAULT_HOSTNAME
    max_port_attempts: int = DEFAULT_MAX_PORT_ATTEMPTS
    timeout: Optional[float] = None
    log_file: Optional[str] = None


@dataclass(frozen=True)
class ConfigSnapshot:
    """The full set of profiles valid until the next reload."""

    server: ServerConfig = field(default_factory=ServerConfig)
    profiles: Tuple[ProviderProfile, ...] = ()

    @property
    def aliases(self) -> Tuple[str, ...]:
        return tuple(p.alias for p in self.profiles)


DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {
        "port": DEFAULT_PORT,
        "hostname": DEFAULT_HOSTNAME,
        "maxPortAttempts": DEFAULT_MAX_PORT_ATTEMPTS,
    },
    "models": [
        {
            "name": "example-model",
            "baseUrl": "https://api.openai.com/v1",
            "model": "gpt-4o-mini",
            "apiKey": "your_api_key_here",
            "systemMessage": "You are a helpful assistant.",
        }
    ],
}


def _optional_str(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _required_str(raw: Dict[str, Any], key: str, index: int) -> str:
    value = raw.get(key)
    if value is None or value == "":
        raise ValueError(
            "Model entry #{} is missing required key '{}'".format(index, key)
        )
    return str(value)


def _parse_profile(raw: Any, index: int) -> ProviderProfile:
    if not isinstance(raw, dict):
        raise ValueError("Model entry #{} must be a mapping".format(index))

    return ProviderProfile(
        alias=_required_str(raw, "name", index),
        upstream_model=_required_str(raw, "model", index),
        api_key=_required_str(raw, "apiKey", index),
        provider=_optional_str(raw, "provider"),
        # apiBase is the older spelling of baseUrl
        base_url=_optional_str(raw, "baseUrl") or _optional_str(raw, "apiBase"),
        system_message=_optional_str(raw, "systemMessage"),
        modelfile=_optional_str(raw, "modelfile"),
        parameters=_optional_str(raw, "parameters"),
        template=_optional_str(raw, "template"),
    )


def _parse_server(raw: Any) -> ServerConfig:
    if raw is None:
        return ServerConfig()
    if not isinstance(raw, dict):
        raise ValueError("'server' must be a mapping")

    timeout = raw.get("timeout")
    try:
        return ServerConfig(
            port=int(raw.get("port", DEFAULT_PORT)),
            hostname=str(raw.get("hostname", DEFAULT_HOSTNAME)),
            max_port_attempts=int(
                raw.get("maxPortAttempts", DEFAULT_MAX_PORT_ATTEMPTS)
            ),
            timeout=float(timeout) if timeout is not None else None,
            log_file=_optional_str(raw, "logFile"),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid 'server' section: {}".format(exc)) from exc


def parse_config(raw: Any) -> ConfigSnapshot:
    """Build a ConfigSnapshot from an already-parsed YAML document.

    Raises:
        ValueError: If the document is malformed or an alias is duplicated.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level")

    models_raw = raw.get("models") or []
    if not isinstance(models_raw, list):
        raise ValueError("'models' must be a list")

    profiles = []
    seen = set()
    for index, entry in enumerate(models_raw):
        profile = _parse_profile(entry, index)
        if profile.alias in seen:
            raise ValueError("Duplicate model name '{}'".format(profile.alias))
        seen.add(profile.alias)
        profiles.append(profile)

    return ConfigSnapshot(server=_parse_server(raw.get("server")), profiles=tuple(profiles))


def load_config(path: Union[str, Path]) -> ConfigSnapshot:
    """Load a configuration snapshot from a YAML file.

    Args:
        path: Path to the YAML config file.

    Returns:
        A fully validated ConfigSnapshot.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError("Config file not found: {}".format(path))

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError("Invalid YAML in {}: {}".format(path, exc)) from exc

    return parse_config(raw)


def write_default_config(path: Union[str, Path]) -> None:
    """Write the example configuration to ``path``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False)


def load_or_create_config(path: Union[str, Path]) -> ConfigSnapshot:
    """Load the config, writing the example config first if none exists."""
    if not Path(path).exists():
        logger.info("Config file not found at %s, creating default config", path)
        write_default_config(path)
    return load_config(path)


class ConfigStore:
    """Holds the current ConfigSnapshot and replaces it on reload.

    Readers call snapshot() once per request and keep the returned
    reference. reload() publishes a new snapshot with a single attribute
    assignment, so readers never see a partially built one.
    """

    def __init__(self, path: Union[str, Path], snapshot: ConfigSnapshot) -> None:
        self.path = Path(path)
        self._snapshot = snapshot

    @classmethod
    def open(cls, path: Union[str, Path]) -> "ConfigStore":
        return cls(path, load_or_create_config(path))

    def snapshot(self) -> ConfigSnapshot:
        return self._snapshot

    def reload(self) -> bool:
        """Reload the config file; keep the current snapshot on failure.

        Returns:
            True if a new snapshot was published.
        """
        try:
            snapshot = load_config(self.path)
        except (OSError, ValueError) as exc:
            logger.error("Failed to reload config: %s", exc)
            return False

        self._snapshot = snapshot
        logger.info(
            "Config reloaded successfully (%d models)", len(snapshot.profiles)
        )
        return True
