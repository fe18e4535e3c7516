from __future__ import annotations

from datetime import datetime
import logging
from uuid import UUID

import pytz

from core.errors import NotFoundError, OwnershipError, ValidationError
from db.models import Calendar, CalendarItem, ScheduledPost

logger = logging.getLogger(__name__)


def parse_scheduled_time(value: str, timezone: str) -> datetime:
    """Parse an ISO timestamp; naive values are read in ``timezone``."""
    try:
        tz = pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as exc:
        raise ValidationError(f"Unknown timezone: {timezone}") from exc
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("Invalid scheduledTime") from exc
    if parsed.tzinfo is None:
        parsed = tz.localize(parsed)
    return parsed


def schedule_post(
    session,
    *,
    user_id: UUID,
    calendar_item_id: UUID | None,
    scheduled_time: str | None,
    timezone: str | None,
    image_url: str | None = None,
) -> ScheduledPost:
    if not calendar_item_id or not scheduled_time or not timezone:
        raise ValidationError("Missing required fields")
    when = parse_scheduled_time(scheduled_time, timezone)

    item = session.get(CalendarItem, calendar_item_id)
    if item is None:
        raise NotFoundError("Calendar item not found")
    calendar = session.get(Calendar, item.calendar_id)
    if calendar is None or calendar.user_id != user_id:
        raise OwnershipError()

    post = ScheduledPost(
        user_id=user_id,
        calendar_item_id=calendar_item_id,
        scheduled_time=when,
        timezone=timezone,
        image_url=image_url,
        status="pending",
    )
    session.add(post)
    session.commit()
    logger.info("Scheduled calendar item %s for %s", calendar_item_id, when.isoformat())
    return post


def scheduled_message(post: ScheduledPost) -> str:
    local = post.scheduled_time.astimezone(pytz.timezone(post.timezone))
    return f"Post scheduled for {local.strftime('%m/%d/%Y, %I:%M:%S %p')}"


def scheduled_post_row(post: ScheduledPost) -> dict:
    return {
        "id": str(post.id) if post.id else None,
        "user_id": str(post.user_id),
        "calendar_item_id": str(post.calendar_item_id),
        "scheduled_time": post.scheduled_time.isoformat(),
        "timezone": post.timezone,
        "image_url": post.image_url,
        "status": post.status,
    }
