from __future__ import annotations

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import text

from .base import Base


POST_TYPES = ("photo", "reel", "carousel", "story")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid_pk() -> Mapped[UUID]:
    return mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("gen_random_uuid()"),
    )


class BusinessProfile(Base):
    __tablename__ = "business_profiles"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), unique=True)
    business_name: Mapped[str] = mapped_column(Text)
    business_type: Mapped[str] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text, nullable=True)
    neighborhood: Mapped[str | None] = mapped_column(Text, nullable=True)
    province: Mapped[str | None] = mapped_column(Text, nullable=True)
    instagram_handle: Mapped[str | None] = mapped_column(Text, nullable=True)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    brand_vibe: Mapped[list] = mapped_column(JSONB, default=list)
    posting_frequency: Mapped[str] = mapped_column(Text, default="daily")
    primary_goal: Mapped[list] = mapped_column(JSONB, default=list)
    primary_offer: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    products_services: Mapped[str | None] = mapped_column(Text, nullable=True)
    permanent_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    menu_items: Mapped[list] = mapped_column(JSONB, default=list)
    instagram_posting_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    instagram_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    instagram_user_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    instagram_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    brand_hashtag: Mapped[str | None] = mapped_column(Text, nullable=True)
    subscription_status: Mapped[str] = mapped_column(Text, default="inactive")
    stripe_customer_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Calendar(Base):
    __tablename__ = "calendars"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), index=True)
    business_profile_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("business_profiles.id", ondelete="CASCADE"),
    )
    month_year: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    items: Mapped[list["CalendarItem"]] = relationship(
        back_populates="calendar",
        order_by="CalendarItem.day_number",
        passive_deletes=True,
    )


class CalendarItem(Base):
    __tablename__ = "calendar_items"

    id: Mapped[UUID] = _uuid_pk()
    calendar_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("calendars.id", ondelete="CASCADE"),
        index=True,
    )
    day_number: Mapped[int] = mapped_column(Integer)
    post_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    post_type: Mapped[str] = mapped_column(Text, default="photo")
    theme: Mapped[str] = mapped_column(Text, default="")
    caption_short: Mapped[str] = mapped_column(Text, default="")
    caption_long: Mapped[str] = mapped_column(Text, default="")
    hashtags: Mapped[list] = mapped_column(JSONB, default=list)
    cta: Mapped[str] = mapped_column(Text, default="")
    canva_prompt: Mapped[str] = mapped_column(Text, default="")
    image_ideas: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_product: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_image_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    instagram_post_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    calendar: Mapped[Calendar] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint(
            "post_type in ('photo', 'reel', 'carousel', 'story')",
            name="ck_calendar_items_post_type",
        ),
    )


class ProductImage(Base):
    __tablename__ = "product_images"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), index=True)
    menu_item_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    image_url: Mapped[str] = mapped_column(Text)
    image_path: Mapped[str] = mapped_column(Text)
    product_name: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ScheduledPost(Base):
    __tablename__ = "scheduled_posts"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), index=True)
    calendar_item_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("calendar_items.id", ondelete="CASCADE"),
    )
    scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    timezone: Mapped[str] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, default="pending")
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending', 'published', 'failed')",
            name="ck_scheduled_posts_status",
        ),
    )


class InstagramPostAnalytics(Base):
    __tablename__ = "instagram_post_analytics"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), index=True)
    instagram_post_id: Mapped[str] = mapped_column(Text, unique=True)
    calendar_item_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("calendar_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    post_type: Mapped[str] = mapped_column(Text, default="image")
    caption: Mapped[str] = mapped_column(Text, default="")
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    likes: Mapped[int] = mapped_column(BigInteger, default=0)
    comments: Mapped[int] = mapped_column(BigInteger, default=0)
    saves: Mapped[int] = mapped_column(BigInteger, default=0)
    reach: Mapped[int] = mapped_column(BigInteger, default=0)
    impressions: Mapped[int] = mapped_column(BigInteger, default=0)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    media_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    permalink: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class MenuItemAnalytics(Base):
    __tablename__ = "menu_item_analytics"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True))
    menu_item_id: Mapped[str] = mapped_column(Text)
    menu_item_name: Mapped[str] = mapped_column(Text)
    total_posts: Mapped[int] = mapped_column(Integer, default=0)
    total_likes: Mapped[int] = mapped_column(BigInteger, default=0)
    total_comments: Mapped[int] = mapped_column(BigInteger, default=0)
    total_saves: Mapped[int] = mapped_column(BigInteger, default=0)
    total_reach: Mapped[int] = mapped_column(BigInteger, default=0)
    total_impressions: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    performance_score: Mapped[float] = mapped_column(Float, default=0.0)
    times_featured: Mapped[int] = mapped_column(Integer, default=0)
    last_featured_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "menu_item_id", name="uq_menu_item_analytics_user_item"),
    )


class HashtagAnalytics(Base):
    __tablename__ = "hashtag_analytics"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True))
    hashtag: Mapped[str] = mapped_column(Text)
    times_used: Mapped[int] = mapped_column(Integer, default=0)
    total_reach: Mapped[int] = mapped_column(BigInteger, default=0)
    total_engagement: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "hashtag", name="uq_hashtag_analytics_user_hashtag"),
    )


class InstagramStory(Base):
    __tablename__ = "instagram_stories"

    id: Mapped[UUID] = _uuid_pk()
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), index=True)
    content: Mapped[dict] = mapped_column(JSONB)
    story_type: Mapped[str] = mapped_column(Text)
    stickers: Mapped[list] = mapped_column(JSONB, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
