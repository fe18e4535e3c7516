"""create postpilot schema

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2026-10-18 10:00:00

Purpose:
- business profiles, generated calendars and their day items
- product images, scheduled posts, generated stories
- instagram post / menu item / hashtag analytics aggregates

Operational notes:
- every table is scoped to one user; rls policies compare user_id to auth.uid()
- child rows cascade on delete through their foreign keys
- pgcrypto provides gen_random_uuid()
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "a1c4e7b2d9f0"
down_revision = None
branch_labels = None
depends_on = None


OWNER_EXPR = "user_id = auth.uid()"
USER_TABLES = (
    "business_profiles",
    "calendars",
    "product_images",
    "scheduled_posts",
    "instagram_post_analytics",
    "menu_item_analytics",
    "hashtag_analytics",
    "instagram_stories",
)


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("now()"),
    )


def _enable_owner_rls(table_name: str) -> None:
    op.execute(f"alter table public.{table_name} enable row level security;")
    op.execute(
        f"""
create policy rls_{table_name}_owner on public.{table_name}
  for all
  to authenticated
  using ({OWNER_EXPR})
  with check ({OWNER_EXPR});
"""
    )


def upgrade() -> None:
    op.execute("create extension if not exists pgcrypto;")

    op.create_table(
        "business_profiles",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("business_name", sa.Text(), nullable=False),
        sa.Column("business_type", sa.Text(), nullable=False),
        sa.Column("city", sa.Text()),
        sa.Column("neighborhood", sa.Text()),
        sa.Column("province", sa.Text()),
        sa.Column("instagram_handle", sa.Text()),
        sa.Column("website_url", sa.Text()),
        sa.Column("brand_vibe", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("posting_frequency", sa.Text(), nullable=False, server_default="daily"),
        sa.Column("primary_goal", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("primary_offer", sa.Text()),
        sa.Column("business_description", sa.Text()),
        sa.Column("products_services", sa.Text()),
        sa.Column("permanent_context", sa.Text()),
        sa.Column("menu_items", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("instagram_posting_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("instagram_access_token", sa.Text()),
        sa.Column("instagram_user_id", sa.Text()),
        _ts("instagram_token_expires_at", nullable=True),
        sa.Column("brand_hashtag", sa.Text()),
        sa.Column("subscription_status", sa.Text(), nullable=False, server_default="inactive"),
        sa.Column("stripe_customer_id", sa.Text()),
        sa.Column("stripe_subscription_id", sa.Text()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index(
        "ix_business_profiles_stripe_subscription_id",
        "business_profiles",
        ["stripe_subscription_id"],
    )

    op.create_table(
        "calendars",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "business_profile_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("business_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("month_year", sa.Text(), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_calendars_user_id", "calendars", ["user_id"])

    op.create_table(
        "calendar_items",
        _uuid_pk(),
        sa.Column(
            "calendar_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("calendars.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("post_date", sa.Date()),
        sa.Column("post_type", sa.Text(), nullable=False, server_default="photo"),
        sa.Column("theme", sa.Text(), nullable=False, server_default=""),
        sa.Column("caption_short", sa.Text(), nullable=False, server_default=""),
        sa.Column("caption_long", sa.Text(), nullable=False, server_default=""),
        sa.Column("hashtags", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("cta", sa.Text(), nullable=False, server_default=""),
        sa.Column("canva_prompt", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_ideas", sa.Text()),
        sa.Column("suggested_product", sa.Text()),
        sa.Column("product_image_url", sa.Text()),
        sa.Column("product_image_id", postgresql.UUID(as_uuid=True)),
        sa.Column("instagram_post_id", sa.Text()),
        _ts("posted_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "post_type in ('photo', 'reel', 'carousel', 'story')",
            name="ck_calendar_items_post_type",
        ),
    )
    op.create_index("ix_calendar_items_calendar_id", "calendar_items", ["calendar_id"])

    op.create_table(
        "product_images",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("menu_item_id", sa.Text()),
        sa.Column("image_url", sa.Text(), nullable=False),
        sa.Column("image_path", sa.Text(), nullable=False),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_index("ix_product_images_user_id", "product_images", ["user_id"])
    op.create_index("ix_product_images_menu_item_id", "product_images", ["menu_item_id"])

    op.create_table(
        "scheduled_posts",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "calendar_item_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("calendar_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.Text(), nullable=False),
        sa.Column("image_url", sa.Text()),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        _ts("published_at", nullable=True),
        sa.Column("error_message", sa.Text()),
        _ts("created_at"),
        sa.CheckConstraint(
            "status in ('pending', 'published', 'failed')",
            name="ck_scheduled_posts_status",
        ),
    )
    op.create_index("ix_scheduled_posts_user_id", "scheduled_posts", ["user_id"])

    op.create_table(
        "instagram_post_analytics",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("instagram_post_id", sa.Text(), nullable=False, unique=True),
        sa.Column(
            "calendar_item_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("calendar_items.id", ondelete="SET NULL"),
        ),
        sa.Column("post_type", sa.Text(), nullable=False, server_default="image"),
        sa.Column("caption", sa.Text(), nullable=False, server_default=""),
        _ts("posted_at", nullable=True),
        sa.Column("likes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("comments", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("saves", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("reach", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("impressions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("engagement_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("media_url", sa.Text()),
        sa.Column("permalink", sa.Text()),
        _ts("last_synced_at"),
    )
    op.create_index("ix_instagram_post_analytics_user_id", "instagram_post_analytics", ["user_id"])

    op.create_table(
        "menu_item_analytics",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("menu_item_id", sa.Text(), nullable=False),
        sa.Column("menu_item_name", sa.Text(), nullable=False),
        sa.Column("total_posts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_likes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_comments", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_saves", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_reach", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_impressions", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("avg_engagement_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("performance_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("times_featured", sa.Integer(), nullable=False, server_default="0"),
        _ts("last_featured_date", nullable=True),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "menu_item_id", name="uq_menu_item_analytics_user_item"),
    )

    op.create_table(
        "hashtag_analytics",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("hashtag", sa.Text(), nullable=False),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_reach", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_engagement", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("avg_engagement_rate", sa.Float(), nullable=False, server_default="0"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "hashtag", name="uq_hashtag_analytics_user_hashtag"),
    )

    op.create_table(
        "instagram_stories",
        _uuid_pk(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", postgresql.JSONB(), nullable=False),
        sa.Column("story_type", sa.Text(), nullable=False),
        sa.Column("stickers", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        _ts("created_at"),
    )
    op.create_index("ix_instagram_stories_user_id", "instagram_stories", ["user_id"])

    for table_name in USER_TABLES:
        _enable_owner_rls(table_name)

    # calendar_items has no user_id; ownership goes through the parent calendar.
    op.execute("alter table public.calendar_items enable row level security;")
    op.execute(
        """
create policy rls_calendar_items_owner on public.calendar_items
  for all
  to authenticated
  using (exists (select 1 from public.calendars c where c.id = calendar_id and c.user_id = auth.uid()))
  with check (exists (select 1 from public.calendars c where c.id = calendar_id and c.user_id = auth.uid()));
"""
    )


def downgrade() -> None:
    op.drop_table("instagram_stories")
    op.drop_table("hashtag_analytics")
    op.drop_table("menu_item_analytics")
    op.drop_table("instagram_post_analytics")
    op.drop_table("scheduled_posts")
    op.drop_table("product_images")
    op.drop_table("calendar_items")
    op.drop_table("calendars")
    op.drop_table("business_profiles")
