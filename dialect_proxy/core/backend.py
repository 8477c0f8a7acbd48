"""Backend configuration and utilities."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .exceptions import ConfigurationError, ModelNotFoundError

logger = logging.getLogger("dialect-proxy")

DEFAULT_TIMEOUT = 60
DEFAULT_CONTEXT_WINDOW = 200000
SUPPORTED_API_TYPES = ("gemini", "openai")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_BASE_URL = "https://api.openai.com/v1"

# Checked in order; first substring match wins
_CONTEXT_WINDOWS = (
    ("gemini-2.5", 200000),
    ("gemini-2.0", 128000),
    ("gemini-1.5", 128000),
)


@dataclass
class Backend:
    """Represents an upstream LLM provider for one configured model name."""

    name: str
    base_url: str
    api_key: str
    timeout: Optional[float]
    target_model: str
    api_type: str = "gemini"

    @property
    def provider_label(self) -> str:
        return "Gemini" if self.api_type == "gemini" else "OpenAI"

    @property
    def context_window(self) -> int:
        for marker, window in _CONTEXT_WINDOWS:
            if marker in self.target_model:
                return window
        return DEFAULT_CONTEXT_WINDOW

    def build_stream_url(self) -> str:
        """Build the streaming endpoint URL for this backend."""
        base = self.base_url.rstrip("/")
        if self.api_type == "gemini":
            return f"{base}/models/{self.target_model}:streamGenerateContent?alt=sse"
        return f"{base}/chat/completions"

    def build_headers(self) -> dict[str, str]:
        """Build outbound headers; Gemini takes its key in x-goog-api-key."""
        headers = {
            "Content-Type": "application/json",
            # Explicitly request uncompressed responses
            "Accept-Encoding": "identity",
        }
        if not self.api_key:
            return headers
        if self.api_type == "gemini":
            headers["x-goog-api-key"] = self.api_key
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers


def extract_api_type(params: Mapping[str, Any]) -> str:
    """Extract the API type from an explicit ``api_type`` or the model prefix."""
    raw_api_type = params.get("api_type")
    if raw_api_type is not None and str(raw_api_type).strip():
        return str(raw_api_type).strip().lower()

    raw_model = str(params.get("model") or "").strip().lower()
    if "/" in raw_model:
        prefix = raw_model.split("/", 1)[0]
        if prefix in SUPPORTED_API_TYPES:
            return prefix
    return "gemini"


def extract_target_model(params: Mapping[str, Any], api_type: str) -> Optional[str]:
    """Extract the upstream model name, stripping a ``<api_type>/`` prefix."""
    override = params.get("target_model")
    if override and str(override).strip():
        return str(override).strip()

    raw_model = str(params.get("model") or "").strip()
    if not raw_model:
        return None

    expected_prefix = f"{api_type}/"
    if raw_model.lower().startswith(expected_prefix):
        remainder = raw_model[len(expected_prefix):]
        if remainder:
            return remainder
    return raw_model


def parse_backends(entries: Any) -> dict[str, Backend]:
    """Parse the ``model_list`` section of the config.

    Raises:
        ConfigurationError: If an entry names an unsupported API type.
    """
    backends: dict[str, Backend] = {}
    for entry in entries or []:
        if not isinstance(entry, Mapping):
            continue
        name = entry.get("model_name")
        params = entry.get("model_params") or {}
        if not name:
            logger.warning("Skipping model_list entry without model_name")
            continue

        api_type = extract_api_type(params)
        if api_type not in SUPPORTED_API_TYPES:
            raise ConfigurationError(
                f"Model '{name}' has unsupported api_type '{api_type}' "
                f"(expected one of: {', '.join(SUPPORTED_API_TYPES)})"
            )

        target_model = extract_target_model(params, api_type)
        if not target_model:
            logger.warning(f"Skipping model '{name}': no upstream model configured")
            continue

        default_base = GEMINI_BASE_URL if api_type == "gemini" else OPENAI_BASE_URL
        base = str(params.get("api_base") or default_base).strip()

        timeout = params.get("request_timeout")
        try:
            timeout_val = float(timeout) if timeout is not None else None
        except (TypeError, ValueError):
            timeout_val = None

        backends[str(name)] = Backend(
            name=str(name),
            base_url=base,
            api_key=str(params.get("api_key") or ""),
            timeout=timeout_val,
            target_model=target_model,
            api_type=api_type,
        )
    return backends


def select_backend(
    backends: Mapping[str, Backend],
    model_name: str,
    default_model: Optional[str] = None,
) -> Backend:
    """Pick the backend for a requested model, falling back to the default.

    Raises:
        ModelNotFoundError: If neither the model nor a default is configured.
    """
    backend = backends.get(model_name)
    if backend is not None:
        return backend
    if default_model and default_model in backends:
        logger.debug(f"Model '{model_name}' not configured, using default '{default_model}'")
        return backends[default_model]
    raise ModelNotFoundError(f"Model '{model_name}' is not defined in config")
