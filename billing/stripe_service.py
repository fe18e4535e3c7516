"""Stripe subscription checkout and webhook handling."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import os
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
import stripe

from core.errors import ConfigurationError, UpstreamError, ValidationError
from db.models import BusinessProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingConfig:
    secret_key: str = ""
    webhook_secret: str = ""


def load_billing_config() -> BillingConfig:
    return BillingConfig(
        secret_key=os.getenv("STRIPE_SECRET_KEY", "").strip(),
        webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", "").strip(),
    )


def create_checkout_session(
    config: BillingConfig,
    *,
    user_id: UUID,
    email: str | None,
    price_id: str,
    success_url: str,
    cancel_url: str,
) -> dict[str, str]:
    if not config.secret_key:
        raise ConfigurationError("STRIPE_SECRET_KEY not configured")
    if not price_id:
        raise ValidationError("Price ID is required")
    params: dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": str(user_id),
    }
    if email:
        params["customer_email"] = email
    try:
        session = stripe.checkout.Session.create(api_key=config.secret_key, **params)
    except stripe.StripeError as exc:
        logger.error("Stripe error creating checkout session: %s", exc)
        raise UpstreamError(f"Failed to create checkout session: {exc.user_message or exc}") from exc
    logger.info("Created checkout session %s for user %s", session["id"], user_id)
    return {"sessionId": session["id"], "url": session["url"]}


def construct_webhook_event(config: BillingConfig, payload: bytes, signature: str | None) -> Any:
    if not signature:
        raise ValidationError("Missing stripe-signature header")
    if not config.webhook_secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature, config.webhook_secret)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise ValidationError("Invalid webhook signature") from exc


def handle_webhook_event(session, event: Mapping[str, Any]) -> str:
    """Apply a verified Stripe event to the matching business profile.

    Returns the event type. Unknown types are acknowledged and ignored.
    """
    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info("Webhook event type: %s", event_type)

    if event_type == "checkout.session.completed":
        user_id = _as_uuid(obj.get("client_reference_id"))
        if user_id is None:
            return event_type
        profile = _profile_where(session, BusinessProfile.user_id == user_id)
        if profile is not None:
            profile.subscription_status = "active"
            profile.stripe_customer_id = obj.get("customer")
            profile.stripe_subscription_id = obj.get("subscription")
            profile.updated_at = datetime.now(UTC)
            logger.info("Subscription activated for user %s", user_id)
    elif event_type == "customer.subscription.updated":
        profile = _profile_where(session, BusinessProfile.stripe_subscription_id == obj.get("id"))
        if profile is not None:
            profile.subscription_status = obj.get("status") or profile.subscription_status
            profile.updated_at = datetime.now(UTC)
    elif event_type == "customer.subscription.deleted":
        profile = _profile_where(session, BusinessProfile.stripe_subscription_id == obj.get("id"))
        if profile is not None:
            profile.subscription_status = "canceled"
            profile.updated_at = datetime.now(UTC)
    else:
        logger.info("Unhandled event type: %s", event_type)
        return event_type
    session.commit()
    return event_type


def _profile_where(session, condition) -> BusinessProfile | None:
    return session.execute(select(BusinessProfile).where(condition)).scalar_one_or_none()


def _as_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
