from __future__ import annotations

from datetime import UTC, datetime, timedelta
import logging
from uuid import UUID

from core.errors import ValidationError
from .graph import GraphClient
from .publisher import load_profile_for_user

logger = logging.getLogger(__name__)

# Facebook long-lived tokens last about 60 days when expires_in is omitted.
DEFAULT_TOKEN_TTL_S = 60 * 24 * 60 * 60
CONNECTED_MESSAGE = "Instagram account connected successfully!"


def connect_instagram(
    session,
    graph: GraphClient,
    *,
    user_id: UUID,
    access_token: str | None = None,
    code: str | None = None,
    redirect_uri: str | None = None,
    now: datetime | None = None,
) -> datetime:
    """Link the user's Instagram Business account and return the token expiry.

    Accepts either an OAuth ``code`` (exchanged first) or a short-lived user
    access token. The first Facebook page's token and its linked Instagram
    account id are stored on the business profile.
    """
    if code:
        if not redirect_uri:
            raise ValidationError("redirectUri is required with code")
        access_token = graph.exchange_code(code, redirect_uri)
    if not access_token:
        raise ValidationError("Access token is required")

    long_lived, expires_in = graph.exchange_long_lived_token(access_token)
    pages = graph.list_pages(long_lived)
    if not pages:
        raise ValidationError(
            "No Facebook pages found. Please connect your Instagram Business Account to a Facebook Page."
        )
    page = pages[0]
    page_id = str(page.get("id") or "")
    page_token = str(page.get("access_token") or "")
    if not page_id or not page_token:
        raise ValidationError("Failed to get Facebook pages")

    ig_user_id = graph.instagram_business_account(page_id, page_token)
    if not ig_user_id:
        raise ValidationError("No Instagram Business Account connected to this Facebook Page")

    expires_at = (now or datetime.now(UTC)) + timedelta(seconds=expires_in or DEFAULT_TOKEN_TTL_S)
    profile = load_profile_for_user(session, user_id)
    profile.instagram_access_token = page_token
    profile.instagram_user_id = str(ig_user_id)
    profile.instagram_token_expires_at = expires_at
    session.commit()
    logger.info("Connected Instagram account %s for user %s", ig_user_id, user_id)
    return expires_at
