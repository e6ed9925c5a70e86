"""Command line entry point for the background worker."""

from __future__ import annotations

import argparse
import logging

from ..broker import build_broker_store
from ..classification import ClassificationAdapter, build_vision_client
from ..config.settings import Settings, get_settings
from ..queue import TaskQueue, attach_logging_listeners
from ..static import load_static_resources
from .loop import Worker

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the food validation worker.")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Jobs processed in parallel (default: FOOD_VALIDATOR_QUEUE_CONCURRENCY).",
    )
    parser.add_argument(
        "--burst",
        action="store_true",
        help="Process until the queue is empty, then exit.",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser


def build_worker(settings: Settings, *, concurrency: int | None = None) -> Worker:
    client = build_vision_client(settings)
    if client is None:
        raise RuntimeError(
            "Worker requires a classification API key. "
            "Set FOOD_VALIDATOR_OPENAI_API_KEY or OPENAI_API_KEY."
        )
    resources = load_static_resources(settings)
    adapter = ClassificationAdapter(
        client,
        system_prompt=resources.system_prompt,
        timeout_s=settings.llm_timeout_s,
    )
    queue = TaskQueue.from_settings(build_broker_store(settings), settings)
    attach_logging_listeners(queue)
    return Worker(
        queue,
        adapter,
        concurrency=concurrency or settings.queue_concurrency,
        poll_interval_s=settings.worker_poll_interval_s,
        maintenance_interval_s=settings.maintenance_interval_s,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = get_settings()
    worker = build_worker(settings, concurrency=args.concurrency)
    worker.queue.store.ping()

    try:
        if args.burst:
            processed = worker.work_until_idle()
            logger.info("worker event=burst_done processed=%s", processed)
            worker.drain()
        else:
            worker.install_signal_handlers()
            worker.run()
    finally:
        worker.queue.close()
    return 0
