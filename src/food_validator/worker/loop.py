"""Worker loop: claim jobs at bounded concurrency and settle their outcome.

Beginner terms used in this file:
- In-flight job: claimed from the queue and currently being classified.
- Drain: stop claiming new jobs but let in-flight ones finish.
- Burst mode: process until the queue is empty, then return.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from types import FrameType
from typing import Any, Protocol

from ..errors import BrokerUnavailable
from ..queue.models import JobRecord
from ..queue.task_queue import TaskQueue

logger = logging.getLogger(__name__)


class JobProcessor(Protocol):
    def process(self, job: JobRecord) -> dict[str, Any]: ...


class Worker:
    """Pull jobs from one TaskQueue and run them through a processor."""

    def __init__(
        self,
        queue: TaskQueue,
        processor: JobProcessor,
        *,
        concurrency: int = 5,
        poll_interval_s: float = 0.5,
        maintenance_interval_s: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.poll_interval_s = poll_interval_s
        self.maintenance_interval_s = maintenance_interval_s
        self._stop = threading.Event()
        self._pool = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="food-validator-worker"
        )
        self._in_flight: dict[Future[None], JobRecord] = {}
        self._last_maintenance = 0.0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Drain on SIGTERM/SIGINT. Must be called from the main thread."""

        def _handle(signum: int, _frame: FrameType | None) -> None:
            logger.info(
                "worker event=signal signal=%s in_flight=%s action=drain",
                signal.Signals(signum).name,
                self.in_flight,
            )
            self.stop()

        signal.signal(signal.SIGTERM, _handle)
        signal.signal(signal.SIGINT, _handle)

    def process_job(self, job: JobRecord) -> None:
        """Run one claimed job and report success or failure to the queue."""
        try:
            result = self.processor.process(job)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "worker event=job_error job_id=%s attempt=%s/%s error_type=%s error=%s",
                job.job_id,
                job.attempts_made,
                job.max_attempts,
                type(exc).__name__,
                exc,
            )
            # The queue decides between retry and permanent failure.
            self.queue.fail(job, exc)
            return
        self.queue.complete(job, result)

    def run(self) -> None:
        """Loop until stop() is called, then drain in-flight jobs."""
        logger.info(
            "worker event=start queue=%s concurrency=%s poll_interval_s=%s",
            self.queue.name,
            self.concurrency,
            self.poll_interval_s,
        )
        try:
            while not self._stop.is_set():
                self._maybe_run_maintenance()
                try:
                    self._fill()
                except BrokerUnavailable as exc:
                    logger.warning("worker event=broker_unavailable reason=%s", exc)
                    self._stop.wait(self.poll_interval_s)
                    continue
                self._wait_for_progress()
        finally:
            self.drain()
        logger.info("worker event=stopped queue=%s", self.queue.name)

    def work_until_idle(self) -> int:
        """Burst mode: claim and process jobs inline until none are ready."""
        processed = 0
        while not self._stop.is_set():
            job = self.queue.claim()
            if job is None:
                break
            self.process_job(job)
            processed += 1
        return processed

    def drain(self) -> None:
        if self._in_flight:
            logger.info("worker event=draining in_flight=%s", len(self._in_flight))
            wait(list(self._in_flight))
        self._reap()
        self._pool.shutdown(wait=True)

    def _fill(self) -> int:
        claimed = 0
        while len(self._in_flight) < self.concurrency and not self._stop.is_set():
            job = self.queue.claim()
            if job is None:
                break
            future = self._pool.submit(self.process_job, job)
            self._in_flight[future] = job
            claimed += 1
        return claimed

    def _wait_for_progress(self) -> None:
        if self._in_flight:
            wait(list(self._in_flight), timeout=self.poll_interval_s, return_when=FIRST_COMPLETED)
        else:
            self._stop.wait(self.poll_interval_s)
        self._reap()

    def _reap(self) -> None:
        for future in [item for item in self._in_flight if item.done()]:
            job = self._in_flight.pop(future)
            exc = future.exception()
            if exc is not None:
                # Settling failed (usually the broker); recover_stalled retries it later.
                logger.error(
                    "worker event=settle_failed job_id=%s error_type=%s error=%s",
                    job.job_id,
                    type(exc).__name__,
                    exc,
                )

    def _maybe_run_maintenance(self) -> None:
        now = time.monotonic()
        if self._last_maintenance and now - self._last_maintenance < self.maintenance_interval_s:
            return
        self._last_maintenance = now
        try:
            recovered = self.queue.recover_stalled()
            removed = self.queue.clean()
        except BrokerUnavailable as exc:
            logger.warning("worker event=maintenance_skipped reason=%s", exc)
            return
        if recovered or removed:
            logger.info("worker event=maintenance recovered=%s removed=%s", recovered, removed)
