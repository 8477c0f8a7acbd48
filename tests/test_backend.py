"""Tests for backend parsing and selection."""

import pytest

from dialect_proxy.core import (
    Backend,
    ConfigurationError,
    ModelNotFoundError,
    parse_backends,
    select_backend,
)
from dialect_proxy.core.backend import GEMINI_BASE_URL, extract_api_type, extract_target_model


def _entry(model, **params):
    return {"model_name": "alias", "model_params": {"model": model, **params}}


class TestParseBackends:
    """Tests for reading model_list."""

    def test_gemini_backend(self):
        backends = parse_backends([_entry("gemini/gemini-2.5-flash", api_key="k", request_timeout=30)])
        backend = backends["alias"]
        assert backend.api_type == "gemini"
        assert backend.target_model == "gemini-2.5-flash"
        assert backend.base_url == GEMINI_BASE_URL
        assert backend.timeout == 30.0

    def test_openai_backend(self):
        backend = parse_backends([_entry("openai/gpt-4o-mini", api_base="http://x/v1")])["alias"]
        assert backend.api_type == "openai"
        assert backend.target_model == "gpt-4o-mini"
        assert backend.build_stream_url() == "http://x/v1/chat/completions"

    def test_unsupported_api_type_raises(self):
        with pytest.raises(ConfigurationError, match="unsupported api_type"):
            parse_backends([_entry("m", api_type="anthropic")])

    def test_entries_without_name_are_skipped(self):
        assert parse_backends([{"model_params": {"model": "gemini/x"}}]) == {}

    def test_invalid_timeout_is_ignored(self):
        backend = parse_backends([_entry("gemini/x", request_timeout="soon")])["alias"]
        assert backend.timeout is None


class TestBackend:
    """Tests for Backend helpers."""

    def _backend(self, **overrides):
        values = dict(
            name="alias",
            base_url="https://g.example/v1beta/",
            api_key="secret",
            timeout=None,
            target_model="gemini-2.5-flash",
        )
        values.update(overrides)
        return Backend(**values)

    def test_gemini_stream_url(self):
        assert self._backend().build_stream_url() == (
            "https://g.example/v1beta/models/gemini-2.5-flash:streamGenerateContent?alt=sse"
        )

    def test_gemini_key_header(self):
        headers = self._backend().build_headers()
        assert headers["x-goog-api-key"] == "secret"
        assert "Authorization" not in headers

    def test_openai_bearer_header(self):
        headers = self._backend(api_type="openai").build_headers()
        assert headers["Authorization"] == "Bearer secret"

    @pytest.mark.parametrize(
        "model, window",
        [
            ("gemini-2.5-pro", 200000),
            ("gemini-2.0-flash", 128000),
            ("gemini-1.5-flash", 128000),
            ("gpt-4o-mini", 200000),
        ],
    )
    def test_context_window(self, model, window):
        assert self._backend(target_model=model).context_window == window


class TestExtractors:
    """Tests for api_type and target model extraction."""

    def test_explicit_api_type_wins(self):
        assert extract_api_type({"api_type": "OpenAI", "model": "gemini/x"}) == "openai"

    def test_unprefixed_model_defaults_to_gemini(self):
        assert extract_api_type({"model": "gemini-2.5-flash"}) == "gemini"

    def test_target_model_override(self):
        assert extract_target_model({"model": "gemini/a", "target_model": "b"}, "gemini") == "b"


class TestSelectBackend:
    """Tests for model selection."""

    def test_exact_match(self):
        backends = parse_backends([_entry("gemini/x")])
        assert select_backend(backends, "alias").name == "alias"

    def test_falls_back_to_default(self):
        backends = parse_backends([_entry("gemini/x")])
        assert select_backend(backends, "other", "alias").name == "alias"

    def test_unknown_model_raises(self):
        with pytest.raises(ModelNotFoundError, match="not defined in config"):
            select_backend({}, "missing")
