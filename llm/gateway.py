from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from typing import Any
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError

from core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "google/gemini-3-flash-preview"


@dataclass(frozen=True)
class GatewayConfig:
    base_url: str
    api_key: str
    model: str = DEFAULT_MODEL
    timeout_s: int = 60


def load_gateway_config() -> GatewayConfig:
    return GatewayConfig(
        base_url=os.getenv("AI_GATEWAY_BASE_URL", "").strip().rstrip("/"),
        api_key=os.getenv("AI_GATEWAY_API_KEY", "").strip(),
        model=os.getenv("AI_GATEWAY_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL,
        timeout_s=int(os.getenv("AI_GATEWAY_TIMEOUT_S", "60")),
    )


class AIGatewayClient:
    """Single-shot chat completion against an OpenAI-compatible endpoint.

    No retries and no circuit breaker: a failed call surfaces immediately to
    the handler that issued it.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return self._complete(messages, model=model, temperature=temperature)

    def complete_with_image(
        self,
        system_prompt: str,
        text: str,
        image_url: str,
        *,
        model: str | None = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": text},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]
        return self._complete(messages, model=model, temperature=None)

    def _complete(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None,
        temperature: float | None,
    ) -> str:
        self._require_config()
        payload: dict[str, Any] = {
            "model": model or self.config.model,
            "messages": messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        response = self._post_chat_completion(payload)
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("No content generated from AI", status=200, body="")
        return content

    def _require_config(self) -> None:
        if not self.config.base_url or not self.config.api_key:
            raise ConfigurationError("AI gateway credentials not configured")

    def _post_chat_completion(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = json.dumps(payload).encode("utf-8")
        req = urlrequest.Request(
            url=f"{self.config.base_url}/chat/completions",
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
        )
        try:
            with urlrequest.urlopen(req, timeout=max(5, self.config.timeout_s)) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            detail = _sanitize_error_message(exc.read().decode("utf-8", errors="replace"))
            logger.error("AI gateway error: status=%s body=%s", exc.code, detail)
            raise UpstreamError(f"AI gateway: {detail}", status=exc.code, body=detail) from exc
        except URLError as exc:
            detail = _sanitize_error_message(str(exc))
            raise UpstreamError(f"AI gateway unreachable: {detail}", body=detail) from exc
        except json.JSONDecodeError as exc:
            raise UpstreamError("AI gateway returned a non-JSON body", status=200) from exc


def _sanitize_error_message(message: str) -> str:
    text = (message or "").replace("\n", " ")
    text = text.replace("Bearer ", "Bearer [redacted]")
    return text[:300]


def get_gateway() -> AIGatewayClient:
    return AIGatewayClient(load_gateway_config())
