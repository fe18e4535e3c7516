#!/usr/bin/env python3
from __future__ import annotations

from argparse import ArgumentParser
import logging
import os

from rq import SimpleWorker, Worker

from core.logging_config import setup_logging
from db.session import engine
from pipeline.queue import get_queue, get_redis, insights_queue_name

logger = logging.getLogger("worker")


def main() -> None:
    parser = ArgumentParser(description="Run the RQ worker that syncs Instagram post insights")
    parser.add_argument(
        "--queue",
        default=insights_queue_name(),
        help="Queue to serve (default: INSIGHTS_QUEUE or 'insights')",
    )
    parser.add_argument("--burst", action="store_true", help="Drain the insights queue and exit")
    args = parser.parse_args()

    setup_logging()
    # Forked job processes must not reuse the parent's pooled connections.
    if hasattr(os, "register_at_fork"):
        os.register_at_fork(after_in_child=lambda: engine.dispose())

    insights = get_queue(args.queue)
    worker_cls = SimpleWorker if os.getenv("RQ_SIMPLE_WORKER", "1") == "1" else Worker
    worker = worker_cls([insights], connection=get_redis())
    logger.info("Serving insights queue '%s' (burst=%s)", args.queue, args.burst)
    worker.work(with_scheduler=False, burst=args.burst)


if __name__ == "__main__":
    main()
