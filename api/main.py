from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from os import getenv
from typing import Any, List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from starlette.concurrency import run_in_threadpool

from api.auth import AuthenticatedUser, authenticate, load_auth_config
from billing.stripe_service import (
    construct_webhook_event,
    create_checkout_session as stripe_checkout_session,
    handle_webhook_event,
    load_billing_config,
)
from content.calendars import (
    calendar_item_row,
    delete_calendar as remove_calendar,
    save_calendar as persist_calendar,
)
from content.generator import (
    analyze_hashtags,
    analyze_instagram_feed,
    analyze_menu_image as extract_menu_items,
    analyze_website as run_website_analysis,
    generate_brand_hashtag as create_brand_hashtag,
    generate_calendar as build_calendar_days,
    generate_story,
    regenerate_day as regenerate_calendar_item,
)
from content.images import (
    delete_product_image as remove_product_image,
    get_image_storage,
    reorder_product_images as reorder_images,
    set_featured_image as feature_image,
)
from content.prompting import BusinessContext
from core.errors import OwnershipError, PostPilotError
from core.logging_config import setup_logging
from db.models import BusinessProfile, ProductImage
from db.session import SessionLocal
from instagram.analytics import fetch_account_analytics, sync_item_metrics, sync_post_insights
from instagram.graph import get_graph_client, load_graph_config
from instagram.oauth import CONNECTED_MESSAGE, connect_instagram as link_instagram
from instagram.publisher import PUBLISHED_MESSAGE, load_profile_for_user, publish_calendar_item
from instagram.scheduling import (
    schedule_post as create_scheduled_post,
    scheduled_message,
    scheduled_post_row,
)
from llm import get_gateway
from pipeline.queue import enqueue_insights_sync

logger = logging.getLogger(__name__)

WEBSITE_MESSAGE = "Website analysis complete. Brand insights will be used to personalize your content."
INSTAGRAM_ANALYSIS_MESSAGE = (
    "Instagram feed analyzed! Recommendations will be used in all future content generation."
)
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "stripe-signature"]


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="PostPilot API", version="0.1.0", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.exception_handler(HTTPException)
async def _error_envelope(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def _validation_envelope(_request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    detail = "Missing required fields" if not fields else f"Invalid or missing fields: {', '.join(fields)}"
    return JSONResponse(status_code=400, content={"error": detail})


def _bad_request(exc: Exception, operation: str) -> HTTPException:
    if isinstance(exc, PostPilotError):
        logger.warning("%s failed: %s", operation, exc)
    else:
        logger.exception("%s failed", operation)
    return HTTPException(status_code=400, detail=str(exc))


def _current_user(authorization: str | None = Header(default=None)) -> AuthenticatedUser:
    try:
        return authenticate(authorization, load_auth_config())
    except PostPilotError as exc:
        raise _bad_request(exc, "authenticate") from exc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MenuItemIn(CamelModel):
    model_config = ConfigDict(extra="allow")

    id: Any = None
    name: str = ""
    price: Any = None
    description: Optional[str] = None
    category: Optional[str] = None
    order: Optional[int] = None


class GenerateCalendarRequest(CamelModel):
    business_name: str
    business_type: str
    city: Optional[str] = None
    neighborhood: Optional[str] = None
    primary_offer: Optional[str] = None
    brand_vibe: List[str] = Field(default_factory=list)
    posting_frequency: str = "daily"
    primary_goal: List[str] | str = Field(default_factory=list)
    month_year: str
    business_description: Optional[str] = None
    products_services: Optional[str] = None
    permanent_context: Optional[str] = None
    menu_items: List[MenuItemIn] = Field(default_factory=list)
    category_focus: Optional[List[str]] = None
    user_id: Optional[UUID] = None


class RegenerateDayRequest(CamelModel):
    item_id: UUID
    business_profile_id: UUID


class PostToInstagramRequest(CamelModel):
    calendar_item_id: UUID
    image_url: Optional[str] = None


class SchedulePostRequest(CamelModel):
    calendar_item_id: Optional[UUID] = None
    scheduled_time: Optional[str] = None
    timezone: Optional[str] = None
    image_url: Optional[str] = None


class ConnectInstagramRequest(CamelModel):
    check_config: bool = False
    access_token: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None


class SyncAnalyticsRequest(CamelModel):
    calendar_item_id: UUID
    instagram_post_id: Optional[str] = None
    metrics: dict[str, int] = Field(default_factory=dict)


class MenuImageRequest(CamelModel):
    image_url: str


class WebsiteRequest(CamelModel):
    website_url: str


class InstagramAnalysisRequest(CamelModel):
    instagram_handle: str


class HashtagPerformanceRequest(CamelModel):
    business_type: str
    current_hashtags: List[str] = Field(default_factory=list)


class StoryRequest(CamelModel):
    story_type: str
    topic: str


class BrandHashtagRequest(CamelModel):
    business_name: str
    business_type: str
    products_services: Optional[str] = None


class CheckoutRequest(CamelModel):
    price_id: str
    success_url: str
    cancel_url: str


class SaveCalendarRequest(CamelModel):
    business_profile_id: UUID
    month_year: str
    items: List[dict[str, Any]] = Field(default_factory=list)


class DeleteCalendarRequest(CamelModel):
    calendar_id: UUID


class ImageRequest(CamelModel):
    image_id: UUID


class ReorderImagesRequest(CamelModel):
    menu_item_id: str
    image_ids: List[UUID]


def _context_from_request(req: GenerateCalendarRequest) -> BusinessContext:
    goals = req.primary_goal if isinstance(req.primary_goal, list) else [req.primary_goal]
    return BusinessContext(
        business_name=req.business_name,
        business_type=req.business_type,
        brand_vibe=tuple(req.brand_vibe),
        primary_goal=tuple(g for g in goals if g),
        posting_frequency=req.posting_frequency,
        month_year=req.month_year,
        city=req.city,
        neighborhood=req.neighborhood,
        primary_offer=req.primary_offer,
        business_description=req.business_description,
        products_services=req.products_services,
        permanent_context=req.permanent_context,
        menu_items=tuple(item.model_dump(exclude_none=True) for item in req.menu_items),
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.options("/functions/{name}")
def preflight(name: str) -> PlainTextResponse:
    return PlainTextResponse("ok")


@app.post("/functions/generate-calendar")
def generate_calendar(
    req: GenerateCalendarRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        if req.user_id is not None and req.user_id != user.id:
            raise OwnershipError()
        context = _context_from_request(req)
        images: list[ProductImage] = []
        if context.menu_items:
            images = list(
                session.execute(
                    select(ProductImage).where(ProductImage.user_id == user.id)
                ).scalars().all()
            )
        days = build_calendar_days(
            get_gateway(),
            context,
            category_focus=req.category_focus,
            product_images=images,
        )
        return {"items": days}
    except HTTPException:
        raise
    except Exception as exc:
        raise _bad_request(exc, "generate-calendar")
    finally:
        session.close()


@app.post("/functions/regenerate-day")
def regenerate_day(
    req: RegenerateDayRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        item = regenerate_calendar_item(
            session,
            get_gateway(),
            user_id=user.id,
            item_id=req.item_id,
            profile_id=req.business_profile_id,
        )
        return calendar_item_row(item)
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "regenerate-day")
    finally:
        session.close()


@app.post("/functions/save-calendar")
def save_calendar(
    req: SaveCalendarRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        profile = load_profile_for_user(session, user.id)
        if profile.id != req.business_profile_id:
            raise OwnershipError()
        calendar, items = persist_calendar(
            session,
            user_id=user.id,
            profile_id=req.business_profile_id,
            label=req.month_year,
            days=req.items,
        )
        return {"calendarId": str(calendar.id), "itemCount": len(items)}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "save-calendar")
    finally:
        session.close()


@app.post("/functions/delete-calendar")
def delete_calendar(
    req: DeleteCalendarRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        remove_calendar(session, user_id=user.id, calendar_id=req.calendar_id)
        return {"success": True}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "delete-calendar")
    finally:
        session.close()


@app.post("/functions/post-to-instagram")
def post_to_instagram(
    req: PostToInstagramRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        post_id = publish_calendar_item(
            session,
            get_graph_client(),
            user_id=user.id,
            calendar_item_id=req.calendar_item_id,
            image_url=req.image_url,
            on_published=enqueue_insights_sync,
        )
        return {"success": True, "postId": post_id, "message": PUBLISHED_MESSAGE}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "post-to-instagram")
    finally:
        session.close()


@app.post("/functions/schedule-post")
def schedule_post(
    req: SchedulePostRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        post = create_scheduled_post(
            session,
            user_id=user.id,
            calendar_item_id=req.calendar_item_id,
            scheduled_time=req.scheduled_time,
            timezone=req.timezone,
            image_url=req.image_url,
        )
        return {
            "success": True,
            "scheduledPost": scheduled_post_row(post),
            "message": scheduled_message(post),
        }
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "schedule-post")
    finally:
        session.close()


@app.post("/functions/connect-instagram")
def connect_instagram(
    req: ConnectInstagramRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    if req.check_config:
        config = load_graph_config()
        payload: dict[str, Any] = {"configured": config.configured}
        if config.configured:
            payload["appId"] = config.app_id
        return payload
    session = SessionLocal()
    try:
        expires_at = link_instagram(
            session,
            get_graph_client(),
            user_id=user.id,
            access_token=req.access_token,
            code=req.code,
            redirect_uri=req.redirect_uri,
        )
        return {"success": True, "message": CONNECTED_MESSAGE, "expiresAt": expires_at.isoformat()}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "connect-instagram")
    finally:
        session.close()


@app.post("/functions/fetch-instagram-analytics")
def fetch_instagram_analytics(user: AuthenticatedUser = Depends(_current_user)) -> dict:
    session = SessionLocal()
    try:
        return jsonable_encoder(fetch_account_analytics(session, get_graph_client(), user_id=user.id))
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "fetch-instagram-analytics")
    finally:
        session.close()


@app.post("/functions/sync-instagram-analytics")
def sync_instagram_analytics(
    req: SyncAnalyticsRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        if req.instagram_post_id and not req.metrics:
            sync_post_insights(
                session,
                get_graph_client(),
                user_id=user.id,
                calendar_item_id=req.calendar_item_id,
                instagram_post_id=req.instagram_post_id,
            )
        else:
            sync_item_metrics(
                session,
                user_id=user.id,
                calendar_item_id=req.calendar_item_id,
                metrics=req.metrics,
            )
        return {"success": True, "message": "Analytics synced successfully"}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "sync-instagram-analytics")
    finally:
        session.close()


@app.post("/functions/analyze-menu-image")
def analyze_menu_image(
    req: MenuImageRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    try:
        return {"items": extract_menu_items(get_gateway(), req.image_url)}
    except Exception as exc:
        raise _bad_request(exc, "analyze-menu-image")


@app.post("/functions/analyze-website")
def analyze_website(
    req: WebsiteRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    try:
        analysis = run_website_analysis(get_gateway(), req.website_url)
        return {"url": req.website_url, "analysis": analysis, "message": WEBSITE_MESSAGE}
    except Exception as exc:
        raise _bad_request(exc, "analyze-website")


@app.post("/functions/analyze-instagram")
def analyze_instagram(
    req: InstagramAnalysisRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        profile = load_profile_for_user(session, user.id)
        recommendations = analyze_instagram_feed(
            session, get_gateway(), profile=profile, handle=req.instagram_handle
        )
        return {
            "handle": req.instagram_handle,
            "recommendations": recommendations,
            "message": INSTAGRAM_ANALYSIS_MESSAGE,
        }
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "analyze-instagram")
    finally:
        session.close()


@app.post("/functions/analyze-hashtag-performance")
def analyze_hashtag_performance(
    req: HashtagPerformanceRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        profile = session.execute(
            select(BusinessProfile).where(BusinessProfile.user_id == user.id)
        ).scalar_one_or_none()
        location = (
            ", ".join(part for part in (profile.city, profile.province) if part) if profile else ""
        )
        return analyze_hashtags(
            get_gateway(),
            business_type=req.business_type,
            location=location,
            current_hashtags=req.current_hashtags,
        )
    except HTTPException:
        raise
    except Exception as exc:
        raise _bad_request(exc, "analyze-hashtag-performance")
    finally:
        session.close()


@app.post("/functions/generate-story-content")
def generate_story_content(
    req: StoryRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        profile = load_profile_for_user(session, user.id)
        story, story_id = generate_story(
            session,
            get_gateway(),
            user_id=user.id,
            context=BusinessContext.from_profile(profile),
            story_type=req.story_type,
            topic=req.topic,
        )
        return {"story": story, "storyId": str(story_id) if story_id else None}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "generate-story-content")
    finally:
        session.close()


@app.post("/functions/generate-brand-hashtag")
def generate_brand_hashtag(
    req: BrandHashtagRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        profile = load_profile_for_user(session, user.id)
        tag = create_brand_hashtag(
            get_gateway(),
            business_name=req.business_name,
            business_type=req.business_type,
            products_services=req.products_services,
        )
        profile.brand_hashtag = tag
        session.commit()
        return {"brandHashtag": tag}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "generate-brand-hashtag")
    finally:
        session.close()


@app.post("/functions/set-featured-image")
def set_featured_image(
    req: ImageRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        image = feature_image(session, user_id=user.id, image_id=req.image_id)
        return {"success": True, "imageId": str(image.id), "menuItemId": image.menu_item_id}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "set-featured-image")
    finally:
        session.close()


@app.post("/functions/reorder-product-images")
def reorder_product_images(
    req: ReorderImagesRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        images = reorder_images(
            session, user_id=user.id, menu_item_id=req.menu_item_id, image_ids=req.image_ids
        )
        return {"success": True, "imageIds": [str(image.id) for image in images]}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "reorder-product-images")
    finally:
        session.close()


@app.post("/functions/delete-product-image")
def delete_product_image(
    req: ImageRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    session = SessionLocal()
    try:
        remove_product_image(session, get_image_storage(), user_id=user.id, image_id=req.image_id)
        return {"success": True}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "delete-product-image")
    finally:
        session.close()


@app.post("/functions/create-checkout-session")
def create_checkout_session(
    req: CheckoutRequest,
    user: AuthenticatedUser = Depends(_current_user),
) -> dict:
    try:
        return stripe_checkout_session(
            load_billing_config(),
            user_id=user.id,
            email=user.email,
            price_id=req.price_id,
            success_url=req.success_url,
            cancel_url=req.cancel_url,
        )
    except Exception as exc:
        raise _bad_request(exc, "create-checkout-session")


def _process_stripe_webhook(payload: bytes, signature: str | None) -> dict:
    session = SessionLocal()
    try:
        event = construct_webhook_event(load_billing_config(), payload, signature)
        handle_webhook_event(session, event)
        return {"received": True}
    except HTTPException:
        raise
    except Exception as exc:
        session.rollback()
        raise _bad_request(exc, "stripe-webhook")
    finally:
        session.close()


@app.post("/functions/stripe-webhook")
async def stripe_webhook(request: Request) -> dict:
    payload = await request.body()
    return await run_in_threadpool(
        _process_stripe_webhook, payload, request.headers.get("stripe-signature")
    )
