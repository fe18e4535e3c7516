from __future__ import annotations

import os
from uuid import UUID

from redis import Redis
from rq import Queue

from pipeline.jobs import rq_on_failure, sync_post_insights_job


def _redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


def insights_queue_name() -> str:
    return os.getenv("INSIGHTS_QUEUE", "insights").strip() or "insights"


def _timeout_seconds() -> int:
    return int(os.getenv("RQ_JOB_TIMEOUT", "120"))


def get_redis() -> Redis:
    return Redis.from_url(_redis_url())


def get_queue(name: str = "default") -> Queue:
    return Queue(name, connection=get_redis())


def enqueue_insights_sync(user_id: UUID, calendar_item_id: UUID, instagram_post_id: str) -> str:
    job = get_queue(insights_queue_name()).enqueue(
        sync_post_insights_job,
        str(user_id),
        str(calendar_item_id),
        instagram_post_id,
        job_timeout=_timeout_seconds(),
        on_failure=rq_on_failure,
    )
    return job.id
