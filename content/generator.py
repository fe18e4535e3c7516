from __future__ import annotations

from datetime import UTC, datetime
import logging
import re
import time
from typing import Any, Iterable, Sequence
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from core.errors import (
    MalformedResponseError,
    NotFoundError,
    OwnershipError,
    UpstreamError,
    ValidationError,
)
from db.models import BusinessProfile, Calendar, CalendarItem, InstagramStory
from llm import AIGatewayClient
from .calendars import normalize_hashtags, normalize_post_type
from .matcher import attach_product_images
from .parser import extract_json_object, parse_calendar_response, parse_menu_items
from .prompting import (
    BRAND_HASHTAG_SYSTEM_PROMPT,
    HASHTAG_SYSTEM_PROMPT,
    INSTAGRAM_ANALYSIS_SYSTEM_PROMPT,
    MENU_IMAGE_INSTRUCTIONS,
    MENU_IMAGE_SYSTEM_PROMPT,
    STORY_SYSTEM_PROMPT,
    WEBSITE_SYSTEM_PROMPT,
    BusinessContext,
    build_brand_hashtag_prompt,
    build_calendar_prompt,
    build_calendar_user_prompt,
    build_hashtag_analysis_prompt,
    build_instagram_analysis_prompt,
    build_regenerate_prompt,
    build_story_prompt,
    build_website_prompt,
)

logger = logging.getLogger(__name__)

CALENDAR_TEMPERATURE = 0.8
REGENERATE_TEMPERATURE = 0.9
REGENERATE_USER_PROMPT = "Generate a new post idea."
WEBSITE_USER_AGENT = "Mozilla/5.0 (compatible; PostPilot/1.0)"
WEBSITE_MAX_BYTES = 512 * 1024
WEBSITE_FALLBACK_ANALYSIS = {
    "colors": [],
    "messaging": [],
    "services": [],
    "tone": "professional",
    "audience": "general public",
}

_BRAND_HASHTAG_STRIP_RE = re.compile(r"[^a-zA-Z0-9#_]")
FEED_ANALYSIS_MARKER = "=== INSTAGRAM FEED ANALYSIS ==="
_FEED_ANALYSIS_BLOCK_RE = re.compile(
    re.escape(FEED_ANALYSIS_MARKER) + r".*?(?=\n===|\Z)", re.DOTALL
)


def generate_calendar(
    gateway: AIGatewayClient,
    context: BusinessContext,
    *,
    category_focus: Sequence[str] | None = None,
    product_images: Iterable[Any] = (),
) -> list[dict[str, Any]]:
    system_prompt = build_calendar_prompt(context, category_focus=category_focus)
    text = gateway.complete(
        system_prompt,
        build_calendar_user_prompt(context),
        temperature=CALENDAR_TEMPERATURE,
    )
    data = parse_calendar_response(text)
    days = [day for day in data["items"] if isinstance(day, dict)]
    attach_product_images(days, context.menu_items, product_images)
    logger.info("Generated %d calendar days for %s", len(days), context.business_name)
    return days


def regenerate_day(
    session,
    gateway: AIGatewayClient,
    *,
    user_id: UUID,
    item_id: UUID,
    profile_id: UUID,
) -> CalendarItem:
    """Replace one day's content with a fresh AI-generated post.

    The row is written only after the model output parsed; any earlier
    failure leaves it as it was. Concurrent regenerations of the same item
    are last-write-wins.
    """
    item = session.get(CalendarItem, item_id)
    if item is None:
        raise NotFoundError("Calendar item not found")
    calendar = session.get(Calendar, item.calendar_id)
    if calendar is None or calendar.user_id != user_id:
        raise OwnershipError()
    profile = session.get(BusinessProfile, profile_id)
    if profile is None:
        raise NotFoundError("Business profile not found")
    if profile.user_id != user_id:
        raise OwnershipError()

    context = BusinessContext.from_profile(profile)
    text = gateway.complete(
        build_regenerate_prompt(context, previous_theme=item.theme),
        REGENERATE_USER_PROMPT,
        temperature=REGENERATE_TEMPERATURE,
    )
    data = extract_json_object(text)

    item.post_type = normalize_post_type(data.get("postType"))
    item.theme = str(data.get("theme") or "")
    item.caption_short = str(data.get("captionShort") or "")
    item.caption_long = str(data.get("captionLong") or "")
    item.hashtags = normalize_hashtags(data.get("hashtags"))
    item.cta = str(data.get("cta") or "")
    item.canva_prompt = str(data.get("canvaPrompt") or "")
    item.image_ideas = data.get("imageIdeas") or None
    item.updated_at = datetime.now(UTC)
    session.commit()
    logger.info("Regenerated calendar item %s", item_id)
    return item


def generate_story(
    session,
    gateway: AIGatewayClient,
    *,
    user_id: UUID,
    context: BusinessContext,
    story_type: str,
    topic: str,
) -> tuple[dict[str, Any], UUID | None]:
    text = gateway.complete(
        STORY_SYSTEM_PROMPT,
        build_story_prompt(context, story_type=story_type, topic=topic),
    )
    story = extract_json_object(text)
    stickers = story.get("suggestedStickers")
    record = InstagramStory(
        user_id=user_id,
        content=story,
        story_type=story_type,
        stickers=stickers if isinstance(stickers, list) else [],
    )
    try:
        session.add(record)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Error saving story for user %s", user_id)
        return story, None
    return story, record.id


def generate_brand_hashtag(
    gateway: AIGatewayClient,
    *,
    business_name: str,
    business_type: str,
    products_services: str | None = None,
) -> str:
    text = gateway.complete(
        BRAND_HASHTAG_SYSTEM_PROMPT,
        build_brand_hashtag_prompt(
            business_name=business_name,
            business_type=business_type,
            products_services=products_services,
        ),
    )
    return sanitize_brand_hashtag(text)


def sanitize_brand_hashtag(raw: str) -> str:
    tag = "".join((raw or "").split())
    tag = _BRAND_HASHTAG_STRIP_RE.sub("", tag)
    if not tag.startswith("#"):
        tag = "#" + tag
    return tag


def analyze_hashtags(
    gateway: AIGatewayClient,
    *,
    business_type: str,
    location: str,
    current_hashtags: Sequence[str],
) -> dict[str, Any]:
    text = gateway.complete(
        HASHTAG_SYSTEM_PROMPT,
        build_hashtag_analysis_prompt(
            business_type=business_type,
            location=location,
            current_hashtags=current_hashtags,
        ),
    )
    data = extract_json_object(text)
    return {
        "underperforming": _string_list(data.get("underperforming")),
        "suggested": _string_list(data.get("suggested")),
        "reasoning": str(data.get("reasoning") or ""),
    }


def analyze_instagram_feed(
    session,
    gateway: AIGatewayClient,
    *,
    profile: BusinessProfile,
    handle: str,
) -> dict[str, Any]:
    """Ask the model for feed recommendations and pin a summary of them
    into the profile's permanent context.
    """
    handle = (handle or "").strip().lstrip("@")
    if not handle:
        raise ValidationError("Instagram handle is required")
    location = ", ".join(part for part in (profile.city, profile.province) if part)
    text = gateway.complete(
        INSTAGRAM_ANALYSIS_SYSTEM_PROMPT,
        build_instagram_analysis_prompt(
            BusinessContext.from_profile(profile), handle=handle, location=location
        ),
    )
    recommendations = extract_json_object(text)
    profile.permanent_context = merge_feed_analysis(
        profile.permanent_context, feed_analysis_block(handle, recommendations)
    )
    profile.updated_at = datetime.now(UTC)
    session.commit()
    logger.info("Saved Instagram feed analysis for @%s", handle)
    return recommendations


def feed_analysis_block(handle: str, recommendations: dict[str, Any]) -> str:
    return (
        f"{FEED_ANALYSIS_MARKER}\n"
        f"Handle: @{handle}\n"
        f"Content Style: {recommendations.get('contentStyle') or ''}\n"
        f"Hashtag Strategy: {recommendations.get('hashtagStrategy') or ''}\n"
        f"Summary: {recommendations.get('summary') or ''}"
    )


def merge_feed_analysis(current: str | None, block: str) -> str:
    """Replace an earlier feed analysis block in place, else append one.

    An old block runs up to the next ``===`` section header or the end.
    """
    current = current or ""
    if _FEED_ANALYSIS_BLOCK_RE.search(current):
        return _FEED_ANALYSIS_BLOCK_RE.sub(lambda _match: block, current, count=1)
    return f"{current}\n\n{block}\n"


def analyze_menu_image(gateway: AIGatewayClient, image_url: str) -> list[dict[str, Any]]:
    text = gateway.complete_with_image(MENU_IMAGE_SYSTEM_PROMPT, MENU_IMAGE_INSTRUCTIONS, image_url)
    stamp = int(time.time() * 1000)
    items = []
    for index, item in enumerate(parse_menu_items(text)):
        items.append(
            {
                "id": f"{stamp}-{index}",
                "name": str(item.get("name") or ""),
                "description": str(item.get("description") or ""),
                "price": str(item.get("price") or ""),
                "category": str(item.get("category") or ""),
            }
        )
    return items


def analyze_website(
    gateway: AIGatewayClient,
    website_url: str,
    *,
    timeout_s: int = 15,
) -> dict[str, Any]:
    html = fetch_website_html(website_url, timeout_s=timeout_s)
    text = gateway.complete(WEBSITE_SYSTEM_PROMPT, build_website_prompt(html))
    try:
        return extract_json_object(text)
    except MalformedResponseError:
        logger.warning("Website analysis for %s was not valid JSON; using defaults", website_url)
        return dict(WEBSITE_FALLBACK_ANALYSIS)


def fetch_website_html(url: str, *, timeout_s: int = 15) -> str:
    """GET an http(s) page; at most WEBSITE_MAX_BYTES of the body are read."""
    url = (url or "").strip()
    parts = urlparse.urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise ValidationError("Invalid website URL")
    req = urlrequest.Request(url, headers={"User-Agent": WEBSITE_USER_AGENT}, method="GET")
    try:
        with urlrequest.urlopen(req, timeout=max(1, timeout_s)) as resp:
            raw = resp.read(WEBSITE_MAX_BYTES)
            charset = resp.headers.get_content_charset() or "utf-8"
    except urlerror.HTTPError as exc:
        raise UpstreamError(f"Failed to fetch website: {exc.code}", status=exc.code) from exc
    except urlerror.URLError as exc:
        raise UpstreamError(f"Failed to fetch website: {exc.reason}") from exc
    return raw.decode(charset, errors="replace")


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if str(v).strip()]
