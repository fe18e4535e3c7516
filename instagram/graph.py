from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from typing import Any
from urllib import parse as urlparse
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError

from core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

GRAPH_HOST = "https://graph.facebook.com"
MEDIA_FIELDS = "id,caption,media_type,media_url,permalink,timestamp,like_count,comments_count"
INSIGHT_METRICS = "reach,impressions,saved"


@dataclass(frozen=True)
class GraphConfig:
    app_id: str = ""
    app_secret: str = ""
    api_version: str = "v18.0"
    timeout_s: int = 30

    @property
    def base_url(self) -> str:
        return f"{GRAPH_HOST}/{self.api_version}"

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_secret)


def load_graph_config() -> GraphConfig:
    return GraphConfig(
        app_id=os.getenv("FACEBOOK_APP_ID", "").strip(),
        app_secret=os.getenv("FACEBOOK_APP_SECRET", "").strip(),
        api_version=os.getenv("GRAPH_API_VERSION", "v18.0").strip() or "v18.0",
        timeout_s=int(os.getenv("GRAPH_TIMEOUT_S", "30")),
    )


class GraphClient:
    """Thin urllib client for the Instagram Graph endpoints PostPilot uses."""

    def __init__(self, config: GraphConfig) -> None:
        self.config = config

    def create_media_container(
        self, ig_user_id: str, *, image_url: str, caption: str, access_token: str
    ) -> str:
        data = self._request(
            "POST",
            f"{ig_user_id}/media",
            {"image_url": image_url, "caption": caption, "access_token": access_token},
            fallback="Failed to create media container",
        )
        return _require_id(data, "Failed to create media container")

    def publish_container(self, ig_user_id: str, *, creation_id: str, access_token: str) -> str:
        data = self._request(
            "POST",
            f"{ig_user_id}/media_publish",
            {"creation_id": creation_id, "access_token": access_token},
            fallback="Failed to publish post",
        )
        return _require_id(data, "Failed to publish post")

    def exchange_code(self, code: str, redirect_uri: str) -> str:
        self._require_app()
        data = self._request(
            "GET",
            "oauth/access_token",
            {
                "client_id": self.config.app_id,
                "client_secret": self.config.app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
            fallback="Failed to exchange authorization code",
        )
        return _require_token(data, "Failed to exchange authorization code")

    def exchange_long_lived_token(self, short_lived_token: str) -> tuple[str, int | None]:
        self._require_app()
        data = self._request(
            "GET",
            "oauth/access_token",
            {
                "grant_type": "fb_exchange_token",
                "client_id": self.config.app_id,
                "client_secret": self.config.app_secret,
                "fb_exchange_token": short_lived_token,
            },
            fallback="Failed to exchange token for long-lived token",
        )
        token = _require_token(data, "Failed to exchange token for long-lived token")
        expires_in = data.get("expires_in")
        return token, int(expires_in) if expires_in else None

    def list_pages(self, access_token: str) -> list[dict[str, Any]]:
        data = self._request(
            "GET",
            "me/accounts",
            {"access_token": access_token},
            fallback="Failed to get Facebook pages",
        )
        return list(data.get("data") or [])

    def instagram_business_account(self, page_id: str, page_access_token: str) -> str | None:
        data = self._request(
            "GET",
            page_id,
            {"fields": "instagram_business_account", "access_token": page_access_token},
            fallback="Failed to get Instagram Business Account",
        )
        account = data.get("instagram_business_account") or {}
        return account.get("id")

    def recent_media(self, ig_user_id: str, access_token: str, *, limit: int = 25) -> list[dict[str, Any]]:
        data = self._request(
            "GET",
            f"{ig_user_id}/media",
            {"fields": MEDIA_FIELDS, "access_token": access_token, "limit": str(limit)},
            fallback="Failed to fetch Instagram posts",
        )
        return list(data.get("data") or [])

    def media(self, media_id: str, access_token: str) -> dict[str, Any]:
        return self._request(
            "GET",
            media_id,
            {"fields": MEDIA_FIELDS, "access_token": access_token},
            fallback="Failed to fetch Instagram post",
        )

    def media_insights(self, media_id: str, access_token: str) -> dict[str, int]:
        data = self._request(
            "GET",
            f"{media_id}/insights",
            {"metric": INSIGHT_METRICS, "access_token": access_token},
            fallback="Failed to fetch post insights",
        )
        out = {"reach": 0, "impressions": 0, "saved": 0}
        for insight in data.get("data") or []:
            name = insight.get("name")
            if name not in out:
                continue
            values = insight.get("values") or [{}]
            out[name] = int(values[0].get("value") or 0)
        return out

    def _require_app(self) -> None:
        if not self.config.configured:
            raise ConfigurationError("Facebook app credentials not configured")

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str],
        *,
        fallback: str,
    ) -> dict[str, Any]:
        url = f"{self.config.base_url}/{path}"
        body = None
        headers = {"Accept": "application/json"}
        if method == "GET":
            url = f"{url}?{urlparse.urlencode(params)}"
        else:
            body = json.dumps(params).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = urlrequest.Request(url, data=body, headers=headers, method=method)
        try:
            with urlrequest.urlopen(req, timeout=max(5, self.config.timeout_s)) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
            message = _graph_error_message(detail) or fallback
            logger.warning("Graph API %s %s failed with %s", method, path.split("?")[0], exc.code)
            raise UpstreamError(f"Instagram API error: {message}", status=exc.code, body=detail) from exc
        except URLError as exc:
            raise UpstreamError(f"Instagram API unreachable: {exc.reason}") from exc
        try:
            data = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise UpstreamError(f"Instagram API error: {fallback}", status=200, body=raw) from exc
        return data if isinstance(data, dict) else {}


def _graph_error_message(detail: str) -> str:
    try:
        payload = json.loads(detail)
    except (json.JSONDecodeError, TypeError):
        return ""
    if not isinstance(payload, dict):
        return ""
    error = payload.get("error") or {}
    return str(error.get("message") or "") if isinstance(error, dict) else ""


def _require_id(data: dict[str, Any], message: str) -> str:
    value = data.get("id")
    if not value:
        raise UpstreamError(f"Instagram API error: {message}", status=200, body=json.dumps(data))
    return str(value)


def _require_token(data: dict[str, Any], message: str) -> str:
    token = data.get("access_token")
    if not token:
        raise UpstreamError(message, status=200, body="")
    return str(token)


def get_graph_client() -> GraphClient:
    return GraphClient(load_graph_config())
