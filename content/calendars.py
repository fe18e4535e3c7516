from __future__ import annotations

from datetime import UTC, date, datetime
import logging
from typing import Any, Sequence
from uuid import UUID

from core.errors import NotAuthenticatedError, NotFoundError, OwnershipError
from db.models import POST_TYPES, Calendar, CalendarItem

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def create_calendar(session, *, user_id: UUID | None, profile_id: UUID, label: str) -> Calendar:
    if not user_id:
        raise NotAuthenticatedError("Not authenticated")
    calendar = Calendar(
        user_id=user_id,
        business_profile_id=profile_id,
        month_year=label,
        created_at=_utc_now(),
    )
    session.add(calendar)
    session.flush()
    return calendar


def build_calendar_items(calendar_id: UUID, days: Sequence[dict[str, Any]]) -> list[CalendarItem]:
    """Map generated days to rows; ``day_number`` follows generation order from 1."""
    now = _utc_now()
    rows: list[CalendarItem] = []
    for index, day in enumerate(days):
        rows.append(
            CalendarItem(
                calendar_id=calendar_id,
                day_number=index + 1,
                post_date=parse_post_date(day.get("date")),
                post_type=normalize_post_type(day.get("postType")),
                theme=str(day.get("theme") or ""),
                caption_short=str(day.get("captionShort") or ""),
                caption_long=str(day.get("captionLong") or ""),
                hashtags=normalize_hashtags(day.get("hashtags")),
                cta=str(day.get("cta") or ""),
                canva_prompt=str(day.get("canvaPrompt") or ""),
                image_ideas=day.get("imageIdeas") or None,
                suggested_product=day.get("suggestedProduct") or None,
                product_image_url=day.get("productImageUrl") or None,
                product_image_id=_as_uuid(day.get("productImageId")),
                created_at=now,
                updated_at=now,
            )
        )
    return rows


def create_calendar_items(
    session, calendar_id: UUID, days: Sequence[dict[str, Any]]
) -> list[CalendarItem]:
    rows = build_calendar_items(calendar_id, days)
    # One add_all + flush: the ORM emits a single batched INSERT for the rows.
    session.add_all(rows)
    session.flush()
    return rows


def save_calendar(
    session,
    *,
    user_id: UUID | None,
    profile_id: UUID,
    label: str,
    days: Sequence[dict[str, Any]],
) -> tuple[Calendar, list[CalendarItem]]:
    try:
        calendar = create_calendar(session, user_id=user_id, profile_id=profile_id, label=label)
        items = create_calendar_items(session, calendar.id, days)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("Saved calendar %s with %d items", calendar.id, len(items))
    return calendar, items


def delete_calendar(session, *, user_id: UUID, calendar_id: UUID) -> None:
    calendar = session.get(Calendar, calendar_id)
    if calendar is None:
        raise NotFoundError("Calendar not found")
    if calendar.user_id != user_id:
        raise OwnershipError()
    session.delete(calendar)
    session.commit()


def calendar_item_row(item: CalendarItem) -> dict[str, Any]:
    return {
        "id": str(item.id) if item.id else None,
        "calendar_id": str(item.calendar_id) if item.calendar_id else None,
        "day_number": item.day_number,
        "post_date": item.post_date.isoformat() if item.post_date else None,
        "post_type": item.post_type,
        "theme": item.theme,
        "caption_short": item.caption_short,
        "caption_long": item.caption_long,
        "hashtags": list(item.hashtags or []),
        "cta": item.cta,
        "canva_prompt": item.canva_prompt,
        "image_ideas": item.image_ideas,
        "suggested_product": item.suggested_product,
        "product_image_url": item.product_image_url,
        "product_image_id": str(item.product_image_id) if item.product_image_id else None,
        "instagram_post_id": item.instagram_post_id,
        "posted_at": item.posted_at.isoformat() if item.posted_at else None,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


def parse_post_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def normalize_post_type(value: Any) -> str:
    post_type = str(value or "").strip().lower()
    return post_type if post_type in POST_TYPES else "photo"


def normalize_hashtags(value: Any) -> list[str]:
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list):
        return []
    return [str(tag).strip() for tag in value if str(tag).strip()]


def _as_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
