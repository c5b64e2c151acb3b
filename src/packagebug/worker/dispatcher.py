"""
Dispatch loop.

The dispatcher pulls one queue message at a time, gates it on the GitHub rate budget and
starts a `FetchWorker` thread for it, keeping at most `max_concurrency` threads in flight.

States:
- POLLING: long-poll the queue for one message
- RATE_CHECK: read the rate budget fresh for the current item
- DISPATCHING: start a worker thread if there is a free slot
- DRAINING: no free slot; wait for every in-flight thread, then retry the same item
- BACKOFF: budget exhausted; sleep until the reset time, then retry the same item

There is no terminal state. `stop()` ends the loop between iterations (or cuts a backoff
short); `run()` then waits for in-flight threads before returning.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from enum import Enum
from typing import Protocol

from packagebug.core.rate_limit import RateState
from packagebug.core.stats import DispatchStats
from packagebug.domain.models import WorkItem, parse_work_item
from packagebug.errors import MalformedMessageError, PackageBugError, QueueError, RateCheckError
from packagebug.queue.sqs import QueueMessage
from packagebug.worker.fetch_worker import FetchOutcome

logger = logging.getLogger(__name__)

# Pause after a failed receive; boto already retried transient errors.
QUEUE_ERROR_PAUSE_SECONDS = 1.0


class DispatchState(str, Enum):
    POLLING = "polling"
    RATE_CHECK = "rate_check"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    BACKOFF = "backoff"


class _QueueLike(Protocol):
    def receive_one(self, wait_seconds: int) -> QueueMessage | None: ...

    def delete(self, message: QueueMessage) -> None: ...


class _RateBudgetLike(Protocol):
    def check(self) -> RateState: ...


class _WorkerLike(Protocol):
    def run(self, item: WorkItem) -> FetchOutcome: ...


class Dispatcher:
    def __init__(
        self,
        queue: _QueueLike,
        rate_budget: _RateBudgetLike,
        worker: _WorkerLike,
        *,
        max_concurrency: int = 10,
        wait_seconds: int = 10,
        stats: DispatchStats | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._queue = queue
        self._rate_budget = rate_budget
        self._worker = worker
        self._max_concurrency = int(max_concurrency)
        self._wait_seconds = int(wait_seconds)
        self._in_flight: list[threading.Thread] = []
        self._stop = threading.Event()
        self.stats = stats or DispatchStats()
        self.state = DispatchState.POLLING

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request a graceful stop (safe to call from signal handlers and other threads)."""
        self._stop.set()

    def run(self) -> None:
        """Loop until `stop()` is called, then wait for in-flight workers."""
        logger.info(
            "dispatcher started (max_concurrency=%s, wait_seconds=%s)",
            self._max_concurrency,
            self._wait_seconds,
        )
        try:
            while not self._stop.is_set():
                self.step()
        finally:
            self.drain()
            logger.info("dispatcher stopped: %s", self.stats.as_dict())

    def step(self) -> None:
        """Run one POLLING iteration (and the dispatch of the received item, if any)."""
        self.state = DispatchState.POLLING
        self.stats.incr("polls")
        try:
            message = self._queue.receive_one(self._wait_seconds)
        except QueueError as exc:
            self.stats.incr("queue_errors")
            logger.warning("receive message: %s", exc)
            self._pause(QUEUE_ERROR_PAUSE_SECONDS)
            return

        if message is None:
            self.stats.incr("empty_polls")
            logger.info("empty message received; polling again")
            return

        try:
            item = parse_work_item(message.body)
        except MalformedMessageError as exc:
            self.stats.incr("malformed")
            logger.warning("discard invalid message body %r: %s", message.body, exc)
            self._ack(message)
            return

        self.dispatch(item, message)

    def dispatch(self, item: WorkItem, message: QueueMessage | None = None) -> bool:
        """Gate `item` on the rate budget and start its worker.

        Returns True once a worker thread was started. Returns False when the rate check
        failed or a stop was requested; the message is then left on the queue.
        """
        while not self._stop.is_set():
            self.state = DispatchState.RATE_CHECK
            try:
                rate = self._rate_budget.check()
            except RateCheckError as exc:
                self.stats.incr("rate_errors")
                logger.warning("check rate limit: %s", exc)
                return False
            if rate.is_unknown:
                self.stats.incr("rate_errors")
                logger.warning("check rate limit: budget unknown (remaining=%s)", rate.remaining)
                return False

            if rate.exhausted:
                self._backoff(rate)
                continue

            self.state = DispatchState.DISPATCHING
            self._prune()
            if len(self._in_flight) >= self._max_concurrency:
                self.drain()
                continue

            self._start(item)
            if message is not None:
                self._ack(message)
            return True
        return False

    def drain(self) -> None:
        """Block until every in-flight worker finishes, then reset the in-flight set."""
        if not self._in_flight:
            return
        self.state = DispatchState.DRAINING
        self.stats.incr("drains")
        logger.info("wait %d worker(s) to finish", len(self._in_flight))
        for thread in self._in_flight:
            thread.join()
        self._in_flight.clear()

    def _pause(self, seconds: float) -> None:
        self._stop.wait(seconds)

    def _backoff(self, rate: RateState) -> None:
        self.state = DispatchState.BACKOFF
        self.stats.incr("backoffs")
        wait = rate.seconds_until_reset(time.time())
        logger.warning("rate limit exceeded. wait %ds to reset.", math.ceil(wait))
        if wait > 0:
            self._pause(wait)
        if not self._stop.is_set():
            logger.info("rate limit reset")

    def _prune(self) -> None:
        self._in_flight = [t for t in self._in_flight if t.is_alive()]

    def _start(self, item: WorkItem) -> None:
        thread = threading.Thread(target=self._run_task, args=(item,), name=f"fetch-{item.id}")
        self._in_flight.append(thread)
        self.stats.incr("dispatched")
        self.stats.observe_in_flight(len(self._in_flight))
        thread.start()

    def _run_task(self, item: WorkItem) -> None:
        try:
            outcome = self._worker.run(item)
        except PackageBugError as exc:
            logger.warning("fetch %s failed: %s", item.path, exc)
            outcome = FetchOutcome.FAILED
        except Exception:
            logger.exception("fetch %s crashed", item.path)
            outcome = FetchOutcome.FAILED
        self.stats.record_outcome(outcome.value)

    def _ack(self, message: QueueMessage) -> None:
        try:
            self._queue.delete(message)
        except QueueError as exc:
            # The message becomes visible again after its visibility timeout.
            logger.warning("delete message: %s", exc)
