from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy import select

from core.errors import NotFoundError, OwnershipError, ValidationError
from db.models import BusinessProfile, Calendar, CalendarItem
from .graph import GraphClient

logger = logging.getLogger(__name__)

POSTING_DISABLED = "Instagram posting is not enabled. Please enable it in Settings."
NOT_CONNECTED = "Instagram account not connected. Please connect in Settings."
TOKEN_EXPIRED = "Instagram access token expired. Please reconnect your account in Settings."
IMAGE_REQUIRED = "Image URL is required for Instagram posting"
PUBLISHED_MESSAGE = "Post published to Instagram successfully!"

OnPublished = Callable[[UUID, UUID, str], Any]


def assemble_caption(
    caption_long: str | None,
    hashtags: Sequence[str] | None,
    brand_hashtag: str | None = None,
    cta: str | None = None,
) -> str:
    """Long caption, blank line, hashtags, blank line, CTA.

    The brand hashtag is appended once and only when the list lacks it.
    Empty segments are dropped along with their separator.
    """
    tags = [tag for tag in (hashtags or []) if tag]
    if brand_hashtag and brand_hashtag not in tags:
        tags.append(brand_hashtag)
    segments = [caption_long or "", " ".join(tags), cta or ""]
    return "\n\n".join(segment for segment in segments if segment)


def check_publish_preconditions(
    profile: BusinessProfile,
    image_url: str | None,
    *,
    now: datetime | None = None,
) -> None:
    if not profile.instagram_posting_enabled:
        raise ValidationError(POSTING_DISABLED)
    if not profile.instagram_access_token or not profile.instagram_user_id:
        raise ValidationError(NOT_CONNECTED)
    expires_at = profile.instagram_token_expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at <= (now or datetime.now(UTC)):
            raise ValidationError(TOKEN_EXPIRED)
    if not image_url:
        raise ValidationError(IMAGE_REQUIRED)


def load_profile_for_user(session, user_id: UUID) -> BusinessProfile:
    profile = session.execute(
        select(BusinessProfile).where(BusinessProfile.user_id == user_id)
    ).scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Business profile not found")
    return profile


def publish_calendar_item(
    session,
    graph: GraphClient,
    *,
    user_id: UUID,
    calendar_item_id: UUID,
    image_url: str | None,
    on_published: OnPublished | None = None,
    now: datetime | None = None,
) -> str:
    """Publish one calendar item and return the Instagram media id.

    A failed publish after a successful container create leaves the container
    on Instagram's side; unused containers expire there.
    """
    profile = load_profile_for_user(session, user_id)
    check_publish_preconditions(profile, image_url, now=now)

    item = session.get(CalendarItem, calendar_item_id)
    if item is None:
        raise NotFoundError("Calendar item not found")
    calendar = session.get(Calendar, item.calendar_id)
    if calendar is None or calendar.user_id != user_id:
        raise OwnershipError()

    caption = assemble_caption(item.caption_long, item.hashtags, profile.brand_hashtag, item.cta)
    container_id = graph.create_media_container(
        profile.instagram_user_id,
        image_url=image_url,
        caption=caption,
        access_token=profile.instagram_access_token,
    )
    post_id = graph.publish_container(
        profile.instagram_user_id,
        creation_id=container_id,
        access_token=profile.instagram_access_token,
    )
    logger.info("Published calendar item %s as Instagram media %s", calendar_item_id, post_id)

    item.instagram_post_id = post_id
    item.posted_at = now or datetime.now(UTC)
    session.commit()

    if on_published is not None:
        try:
            on_published(user_id, calendar_item_id, post_id)
        except Exception:
            logger.exception("Failed to schedule insights sync for media %s", post_id)
    return post_id
