from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select

from core.errors import NotFoundError, OwnershipError, UpstreamError, ValidationError
from db.models import (
    BusinessProfile,
    Calendar,
    CalendarItem,
    HashtagAnalytics,
    InstagramPostAnalytics,
    MenuItemAnalytics,
)
from .graph import GraphClient
from .publisher import load_profile_for_user

logger = logging.getLogger(__name__)

NOT_CONNECTED = "Instagram not connected. Please connect your Instagram account in Settings."
METRIC_KEYS = ("likes", "comments", "saves", "reach", "impressions")


def engagement_rate(likes: int, comments: int, saves: int, reach: int) -> float:
    if reach <= 0:
        return 0.0
    return round((likes + comments + saves) / reach * 100, 2)


def performance_score(
    *, likes: int, comments: int, saves: int, avg_engagement_rate: float, total_posts: int
) -> float:
    if total_posts <= 0:
        return 0.0
    weighted = likes * 1 + comments * 3 + saves * 5 + avg_engagement_rate * 10
    return weighted / total_posts


def post_metrics(post: Mapping[str, Any], insights: Mapping[str, int]) -> dict[str, int]:
    return {
        "likes": int(post.get("like_count") or 0),
        "comments": int(post.get("comments_count") or 0),
        "saves": int(insights.get("saved") or 0),
        "reach": int(insights.get("reach") or 0),
        "impressions": int(insights.get("impressions") or 0),
    }


def post_analytics_row(
    user_id: UUID,
    post: Mapping[str, Any],
    metrics: Mapping[str, int],
    *,
    now: datetime,
) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "instagram_post_id": str(post.get("id")),
        "post_type": str(post.get("media_type") or "image").lower(),
        "caption": post.get("caption") or "",
        "posted_at": _parse_timestamp(post.get("timestamp")),
        "likes": metrics["likes"],
        "comments": metrics["comments"],
        "saves": metrics["saves"],
        "reach": metrics["reach"],
        "impressions": metrics["impressions"],
        "engagement_rate": engagement_rate(
            metrics["likes"], metrics["comments"], metrics["saves"], metrics["reach"]
        ),
        "media_url": post.get("media_url"),
        "permalink": post.get("permalink"),
        "last_synced_at": now,
    }


def upsert_post_analytics(session, row: Mapping[str, Any]) -> InstagramPostAnalytics:
    record = session.execute(
        select(InstagramPostAnalytics).where(
            InstagramPostAnalytics.instagram_post_id == row["instagram_post_id"]
        )
    ).scalar_one_or_none()
    if record is None:
        record = InstagramPostAnalytics(**row)
        session.add(record)
        return record
    for key, value in row.items():
        if key == "calendar_item_id" and value is None:
            continue
        setattr(record, key, value)
    return record


def fetch_account_analytics(
    session,
    graph: GraphClient,
    *,
    user_id: UUID,
    limit: int = 25,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Pull recent media with insights, store them, and summarize."""
    profile = load_profile_for_user(session, user_id)
    if not profile.instagram_access_token or not profile.instagram_user_id:
        raise ValidationError(NOT_CONNECTED)
    now = now or datetime.now(UTC)
    token = profile.instagram_access_token

    posts = graph.recent_media(profile.instagram_user_id, token, limit=limit)
    logger.info("Fetched %d Instagram posts for user %s", len(posts), user_id)

    rows: list[dict[str, Any]] = []
    for post in posts:
        try:
            insights = graph.media_insights(str(post.get("id")), token)
        except UpstreamError as exc:
            logger.warning("Insights unavailable for post %s: %s", post.get("id"), exc)
            insights = {}
        rows.append(post_analytics_row(user_id, post, post_metrics(post, insights), now=now))

    for row in rows:
        upsert_post_analytics(session, row)
    session.commit()

    count = len(rows)
    avg_rate = sum(row["engagement_rate"] for row in rows) / count if count else 0.0
    return {
        "success": True,
        "postsAnalyzed": count,
        "summary": {
            "totalLikes": sum(row["likes"] for row in rows),
            "totalComments": sum(row["comments"] for row in rows),
            "totalSaves": sum(row["saves"] for row in rows),
            "avgEngagementRate": round(avg_rate, 2),
        },
        "posts": rows,
    }


def accumulate_menu_item_analytics(
    session,
    *,
    user_id: UUID,
    menu_item_id: str,
    menu_item_name: str,
    metrics: Mapping[str, int],
    now: datetime,
) -> MenuItemAnalytics:
    record = session.execute(
        select(MenuItemAnalytics).where(
            MenuItemAnalytics.user_id == user_id,
            MenuItemAnalytics.menu_item_id == menu_item_id,
        )
    ).scalar_one_or_none()
    if record is None:
        record = MenuItemAnalytics(
            user_id=user_id,
            menu_item_id=menu_item_id,
            menu_item_name=menu_item_name,
            total_posts=0,
            total_likes=0,
            total_comments=0,
            total_saves=0,
            total_reach=0,
            total_impressions=0,
            times_featured=0,
        )
        session.add(record)

    record.menu_item_name = menu_item_name
    record.total_posts = (record.total_posts or 0) + 1
    record.total_likes = (record.total_likes or 0) + metrics.get("likes", 0)
    record.total_comments = (record.total_comments or 0) + metrics.get("comments", 0)
    record.total_saves = (record.total_saves or 0) + metrics.get("saves", 0)
    record.total_reach = (record.total_reach or 0) + metrics.get("reach", 0)
    record.total_impressions = (record.total_impressions or 0) + metrics.get("impressions", 0)
    record.times_featured = (record.times_featured or 0) + 1
    record.last_featured_date = now

    # Unrounded here; the score is derived from it.
    total_engagement = record.total_likes + record.total_comments + record.total_saves
    record.avg_engagement_rate = (
        total_engagement / record.total_reach * 100 if record.total_reach > 0 else 0.0
    )
    record.performance_score = performance_score(
        likes=record.total_likes,
        comments=record.total_comments,
        saves=record.total_saves,
        avg_engagement_rate=record.avg_engagement_rate,
        total_posts=record.total_posts,
    )
    record.updated_at = now
    return record


def accumulate_hashtag_analytics(
    session,
    *,
    user_id: UUID,
    hashtags: Iterable[str],
    metrics: Mapping[str, int],
    now: datetime,
) -> list[HashtagAnalytics]:
    engagement = metrics.get("likes", 0) + metrics.get("comments", 0) + metrics.get("saves", 0)
    reach = metrics.get("reach", 0)
    records = []
    for tag in dict.fromkeys(tag.strip().lower() for tag in hashtags if tag and tag.strip()):
        record = session.execute(
            select(HashtagAnalytics).where(
                HashtagAnalytics.user_id == user_id,
                HashtagAnalytics.hashtag == tag,
            )
        ).scalar_one_or_none()
        if record is None:
            record = HashtagAnalytics(
                user_id=user_id, hashtag=tag, times_used=0, total_reach=0, total_engagement=0
            )
            session.add(record)
        record.times_used = (record.times_used or 0) + 1
        record.total_reach = (record.total_reach or 0) + reach
        record.total_engagement = (record.total_engagement or 0) + engagement
        record.avg_engagement_rate = (
            round(record.total_engagement / record.total_reach * 100, 2)
            if record.total_reach > 0
            else 0.0
        )
        record.updated_at = now
        records.append(record)
    return records


def sync_item_metrics(
    session,
    *,
    user_id: UUID,
    calendar_item_id: UUID,
    metrics: Mapping[str, Any],
    now: datetime | None = None,
) -> None:
    """Fold one post's metrics into the product and hashtag aggregates."""
    now = now or datetime.now(UTC)
    item = session.get(CalendarItem, calendar_item_id)
    if item is None:
        raise NotFoundError("Calendar item not found")
    calendar = session.get(Calendar, item.calendar_id)
    if calendar is None or calendar.user_id != user_id:
        raise OwnershipError()

    clean = {key: int(metrics.get(key) or 0) for key in METRIC_KEYS}
    if item.suggested_product:
        profile = session.execute(
            select(BusinessProfile).where(BusinessProfile.user_id == user_id)
        ).scalar_one_or_none()
        menu_item_id = _menu_item_id_for(profile, item.suggested_product)
        accumulate_menu_item_analytics(
            session,
            user_id=user_id,
            menu_item_id=menu_item_id,
            menu_item_name=item.suggested_product,
            metrics=clean,
            now=now,
        )
        logger.info("Updated menu item analytics for %s", item.suggested_product)
    accumulate_hashtag_analytics(
        session, user_id=user_id, hashtags=item.hashtags or [], metrics=clean, now=now
    )
    session.commit()


def sync_post_insights(
    session,
    graph: GraphClient,
    *,
    user_id: UUID,
    calendar_item_id: UUID,
    instagram_post_id: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or datetime.now(UTC)
    profile = load_profile_for_user(session, user_id)
    if not profile.instagram_access_token:
        raise ValidationError(NOT_CONNECTED)
    token = profile.instagram_access_token

    post = graph.media(instagram_post_id, token)
    post.setdefault("id", instagram_post_id)
    insights = graph.media_insights(instagram_post_id, token)
    metrics = post_metrics(post, insights)

    row = post_analytics_row(user_id, post, metrics, now=now)
    row["calendar_item_id"] = calendar_item_id
    upsert_post_analytics(session, row)
    sync_item_metrics(
        session, user_id=user_id, calendar_item_id=calendar_item_id, metrics=metrics, now=now
    )
    return row


def _menu_item_id_for(profile: BusinessProfile | None, product_name: str) -> str:
    wanted = product_name.strip().casefold()
    for item in (profile.menu_items if profile is not None else None) or []:
        name = str(item.get("name") or "").strip().casefold()
        if name == wanted and item.get("id") is not None:
            return str(item["id"])
    return product_name


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    text = value.replace("Z", "+00:00")
    # Graph returns offsets without a colon, e.g. +0000.
    if len(text) > 5 and text[-5] in "+-" and text[-3] != ":":
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
