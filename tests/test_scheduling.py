from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from core.errors import OwnershipError, ValidationError
from db.models import Calendar, CalendarItem, ScheduledPost
from instagram.scheduling import parse_scheduled_time, schedule_post, scheduled_message


class _FakeSession:
    def __init__(self, *rows) -> None:
        self.rows = {(type(row), row.id): row for row in rows}
        self.added: list[object] = []
        self.commits = 0

    def get(self, model, key):
        return self.rows.get((model, key))

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        self.commits += 1


def _calendar_item(user_id):
    calendar = Calendar(id=uuid4(), user_id=user_id, business_profile_id=uuid4(), month_year="March 2026")
    item = CalendarItem(id=uuid4(), calendar_id=calendar.id, day_number=1)
    return calendar, item


def test_naive_time_is_read_in_given_timezone() -> None:
    parsed = parse_scheduled_time("2026-03-10T09:30:00", "America/Toronto")
    assert parsed.astimezone(timezone.utc) == datetime(2026, 3, 10, 13, 30, tzinfo=timezone.utc)


def test_parse_rejects_unknown_zone_and_garbage() -> None:
    with pytest.raises(ValidationError, match="Unknown timezone"):
        parse_scheduled_time("2026-03-10T09:30:00", "Mars/Olympus")
    with pytest.raises(ValidationError):
        parse_scheduled_time("next tuesday", "UTC")


@pytest.mark.parametrize(
    "fields",
    [
        {"calendar_item_id": None, "scheduled_time": "2026-03-10T09:30:00Z", "timezone": "UTC"},
        {"calendar_item_id": uuid4(), "scheduled_time": "", "timezone": "UTC"},
        {"calendar_item_id": uuid4(), "scheduled_time": "2026-03-10T09:30:00Z", "timezone": None},
    ],
)
def test_schedule_requires_all_fields(fields) -> None:
    with pytest.raises(ValidationError, match="Missing required fields"):
        schedule_post(_FakeSession(), user_id=uuid4(), **fields)


def test_schedule_creates_pending_post() -> None:
    user_id = uuid4()
    calendar, item = _calendar_item(user_id)
    session = _FakeSession(calendar, item)

    post = schedule_post(
        session,
        user_id=user_id,
        calendar_item_id=item.id,
        scheduled_time="2026-03-10T14:00:00Z",
        timezone="America/Toronto",
        image_url="https://cdn/p.jpg",
    )

    assert isinstance(post, ScheduledPost)
    assert session.added == [post]
    assert post.status == "pending"
    assert post.scheduled_time == datetime(2026, 3, 10, 14, tzinfo=timezone.utc)
    assert session.commits == 1
    assert scheduled_message(post) == "Post scheduled for 03/10/2026, 10:00:00 AM"


def test_schedule_rejects_other_users_item() -> None:
    calendar, item = _calendar_item(uuid4())
    with pytest.raises(OwnershipError):
        schedule_post(
            _FakeSession(calendar, item),
            user_id=uuid4(),
            calendar_item_id=item.id,
            scheduled_time="2026-03-10T14:00:00Z",
            timezone="UTC",
        )
