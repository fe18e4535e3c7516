from __future__ import annotations

import logging
from uuid import UUID

from rq.job import Job as RQJob

from db.session import SessionLocal
from instagram.analytics import sync_post_insights
from instagram.graph import get_graph_client

logger = logging.getLogger(__name__)


def rq_on_failure(job: RQJob, exc_type, exc_value, traceback) -> None:  # type: ignore[no-untyped-def]
    logger.error("Job %s (%s) failed: %s", job.id, job.func_name, exc_value)


def sync_post_insights_job(user_id: str, calendar_item_id: str, instagram_post_id: str) -> dict:
    """Fetch a freshly published post's insights and fold them into the aggregates."""
    session = SessionLocal()
    try:
        row = sync_post_insights(
            session,
            get_graph_client(),
            user_id=UUID(str(user_id)),
            calendar_item_id=UUID(str(calendar_item_id)),
            instagram_post_id=instagram_post_id,
        )
        logger.info("Synced insights for media %s", instagram_post_id)
        return {
            "instagram_post_id": instagram_post_id,
            "reach": row["reach"],
            "engagement_rate": row["engagement_rate"],
        }
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
