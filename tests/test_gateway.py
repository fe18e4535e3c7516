from __future__ import annotations

import io
import json
from urllib.error import HTTPError, URLError

import pytest

import llm.gateway as gateway_module
from core.errors import ConfigurationError, UpstreamError
from llm.gateway import AIGatewayClient, GatewayConfig, load_gateway_config


class _FakeResponse:
    def __init__(self, payload: dict) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def _client() -> AIGatewayClient:
    return AIGatewayClient(GatewayConfig(base_url="https://ai.example/v1", api_key="sk-test", timeout_s=60))


def test_missing_credentials_fail_before_network(monkeypatch) -> None:
    def _no_network(*_args, **_kwargs):
        raise AssertionError("network must not be called")

    monkeypatch.setattr(gateway_module.urlrequest, "urlopen", _no_network)
    client = AIGatewayClient(GatewayConfig(base_url="https://ai.example/v1", api_key=""))
    with pytest.raises(ConfigurationError):
        client.complete("system", "user")
    client = AIGatewayClient(GatewayConfig(base_url="", api_key="sk-test"))
    with pytest.raises(ConfigurationError):
        client.complete("system", "user")


def test_complete_posts_chat_completion(monkeypatch) -> None:
    captured = {}

    def _fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["body"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return _FakeResponse({"choices": [{"message": {"content": '{"items": []}'}}]})

    monkeypatch.setattr(gateway_module.urlrequest, "urlopen", _fake_urlopen)

    text = _client().complete("system prompt", "user prompt", temperature=0.8)

    assert text == '{"items": []}'
    assert captured["url"] == "https://ai.example/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["timeout"] == 60
    assert captured["body"]["model"] == "google/gemini-3-flash-preview"
    assert captured["body"]["temperature"] == 0.8
    assert [m["role"] for m in captured["body"]["messages"]] == ["system", "user"]


def test_image_message_is_multimodal(monkeypatch) -> None:
    captured = {}

    def _fake_urlopen(req, timeout):
        captured["body"] = json.loads(req.data.decode("utf-8"))
        return _FakeResponse({"choices": [{"message": {"content": "ok"}}]})

    monkeypatch.setattr(gateway_module.urlrequest, "urlopen", _fake_urlopen)
    _client().complete_with_image("system", "extract", "https://cdn.example/menu.jpg")

    content = captured["body"]["messages"][1]["content"]
    assert content[0] == {"type": "text", "text": "extract"}
    assert content[1]["image_url"] == {"url": "https://cdn.example/menu.jpg"}
    assert "temperature" not in captured["body"]


def test_non_2xx_raises_upstream_error_with_status(monkeypatch) -> None:
    def _fake_urlopen(req, timeout):
        raise HTTPError(req.full_url, 429, "Too Many Requests", {}, io.BytesIO(b'{"error": "rate limited"}'))

    monkeypatch.setattr(gateway_module.urlrequest, "urlopen", _fake_urlopen)
    with pytest.raises(UpstreamError) as excinfo:
        _client().complete("system", "user")
    assert excinfo.value.status == 429
    assert "rate limited" in excinfo.value.body


def test_unreachable_endpoint(monkeypatch) -> None:
    def _fake_urlopen(req, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(gateway_module.urlrequest, "urlopen", _fake_urlopen)
    with pytest.raises(UpstreamError) as excinfo:
        _client().complete("system", "user")
    assert excinfo.value.status is None


def test_empty_content_is_an_error(monkeypatch) -> None:
    monkeypatch.setattr(
        gateway_module.urlrequest,
        "urlopen",
        lambda req, timeout: _FakeResponse({"choices": [{"message": {"content": "  "}}]}),
    )
    with pytest.raises(UpstreamError, match="No content generated from AI"):
        _client().complete("system", "user")


def test_load_gateway_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("AI_GATEWAY_BASE_URL", "https://ai.example/v1/")
    monkeypatch.setenv("AI_GATEWAY_API_KEY", " sk-env ")
    monkeypatch.delenv("AI_GATEWAY_MODEL", raising=False)
    monkeypatch.setenv("AI_GATEWAY_TIMEOUT_S", "15")

    config = load_gateway_config()

    assert config.base_url == "https://ai.example/v1"
    assert config.api_key == "sk-env"
    assert config.model == "google/gemini-3-flash-preview"
    assert config.timeout_s == 15
