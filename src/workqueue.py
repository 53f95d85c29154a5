"""Per-kind work queues and the worker pool draining them.

kopf event handlers only enqueue notifications; reconciliation runs on worker
threads. A queue holds each object at most once and never hands the same
object to two workers at the same time: a notification arriving while its
object is being reconciled is parked and re-queued when the worker is done.
"""

import logging
import threading
from collections import deque
from collections.abc import Callable

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from metrics import WORKQUEUE_DEPTH, WORKQUEUE_RETRIES
from models import ConflictError, Kind, Notification, TransientError

logger = logging.getLogger(__name__)

Ref = tuple[Kind, str | None, str]


class WorkQueue:
    """Bounded, de-duplicating queue of notifications for one kind."""

    def __init__(
        self,
        kind: Kind,
        max_size: int = 1024,
        base_delay: float = 0.5,
        max_delay: float = 60.0,
    ) -> None:
        self.kind = kind
        self._max_size = max_size
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._cond = threading.Condition()
        self._order: deque[Ref] = deque()
        self._pending: dict[Ref, Notification] = {}
        self._processing: set[Ref] = set()
        self._failures: dict[Ref, int] = {}
        self._timers: set[threading.Timer] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def _update_depth(self) -> None:
        WORKQUEUE_DEPTH.labels(kind=self.kind.value).set(len(self._pending))

    def add(
        self,
        notification: Notification,
        timeout: float | None = None,
        bounded: bool = True,
    ) -> bool:
        """Queue a notification.

        A notification for an object that is already waiting replaces the
        waiting one, so the latest deletion hint wins. Blocks while the queue
        is full, unless `bounded` is False. Returns False after shutdown or
        when `timeout` expires.

        Follow-up work from workers and retry timers is added unbounded: only
        workers drain the queues, so they must never wait for room.
        """
        ref = notification.ref
        with self._cond:
            if self._shutting_down:
                return False
            if ref in self._pending:
                self._pending[ref] = notification
                return True

            while (
                bounded
                and len(self._pending) >= self._max_size
                and not self._shutting_down
            ):
                if not self._cond.wait(timeout):
                    logger.warning(
                        "%s work queue full, dropping %s", self.kind.value, notification
                    )
                    return False
            if self._shutting_down:
                return False

            self._pending[ref] = notification
            if ref not in self._processing:
                self._order.append(ref)
            self._update_depth()
            self._cond.notify_all()
            return True

    def get(self, timeout: float | None = None) -> Notification | None:
        """Take the next notification, or None on timeout or shutdown."""
        with self._cond:
            while not self._order and not self._shutting_down:
                if not self._cond.wait(timeout):
                    return None
            if self._shutting_down:
                return None

            ref = self._order.popleft()
            notification = self._pending.pop(ref)
            self._processing.add(ref)
            self._update_depth()
            self._cond.notify_all()
            return notification

    def done(self, notification: Notification) -> None:
        """Mark a notification returned by get() as finished."""
        ref = notification.ref
        with self._cond:
            self._processing.discard(ref)
            if ref in self._pending:
                # Parked while in flight
                self._order.append(ref)
                self._cond.notify_all()

    # -------------------------------------------------------------------------
    # Retries
    # -------------------------------------------------------------------------

    def add_rate_limited(self, notification: Notification) -> float:
        """Queue a notification again after an exponential backoff.

        Returns the delay used.
        """
        ref = notification.ref
        with self._cond:
            if self._shutting_down:
                return 0.0
            failures = self._failures.get(ref, 0)
            self._failures[ref] = failures + 1
            delay = min(self._base_delay * (2**failures), self._max_delay)

            timer = threading.Timer(delay, self._fire, args=(notification,))
            timer.daemon = True
            self._timers.add(timer)
        timer.start()
        return delay

    def _fire(self, notification: Notification) -> None:
        with self._cond:
            self._timers = {t for t in self._timers if t.is_alive()}
        self.add(notification, bounded=False)

    def forget(self, notification: Notification) -> None:
        """Reset the backoff of an object after a successful reconciliation."""
        with self._cond:
            self._failures.pop(notification.ref, None)

    def num_requeues(self, notification: Notification) -> int:
        with self._cond:
            return self._failures.get(notification.ref, 0)

    def shutdown(self) -> None:
        """Stop handing out work and wake every waiting thread."""
        with self._cond:
            self._shutting_down = True
            timers, self._timers = self._timers, set()
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()


class Dispatcher:
    """Worker pool reconciling notifications from one queue per kind."""

    def __init__(
        self,
        handler: Callable[[Notification], None],
        workers_per_kind: int = 2,
        max_size: int = 1024,
        base_delay: float = 0.5,
        max_delay: float = 60.0,
    ) -> None:
        self._handler = handler
        self._workers_per_kind = workers_per_kind
        self._queues = {
            kind: WorkQueue(kind, max_size, base_delay, max_delay) for kind in Kind
        }
        self._threads: list[threading.Thread] = []

    def queue(self, kind: Kind) -> WorkQueue:
        return self._queues[kind]

    def enqueue(self, notification: Notification) -> bool:
        return self._queues[notification.kind].add(notification)

    def requeue(self, notification: Notification) -> bool:
        """Queue follow-up work from a reconciler without waiting for room."""
        return self._queues[notification.kind].add(notification, bounded=False)

    def start(self) -> None:
        for kind, work_queue in self._queues.items():
            for i in range(self._workers_per_kind):
                thread = threading.Thread(
                    target=self._worker,
                    args=(work_queue,),
                    name=f"{kind.value}-worker-{i}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
        logger.info(
            f"Started {len(self._threads)} reconciliation workers "
            f"({self._workers_per_kind} per kind)"
        )

    def stop(self, timeout: float = 10.0) -> None:
        for work_queue in self._queues.values():
            work_queue.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Reconciliation workers stopped")

    def _worker(self, work_queue: WorkQueue) -> None:
        while True:
            notification = work_queue.get()
            if notification is None:
                return
            try:
                self.process(work_queue, notification)
            finally:
                work_queue.done(notification)

    def process(self, work_queue: WorkQueue, notification: Notification) -> None:
        """Reconcile one notification and decide whether to retry it."""
        kind = notification.kind.value
        try:
            self._handler(notification)
        except ConflictError as e:
            WORKQUEUE_RETRIES.labels(kind=kind, reason="conflict").inc()
            delay = work_queue.add_rate_limited(notification)
            logger.debug(f"Conflict reconciling {notification}, retrying in {delay:.1f}s: {e}")
            return
        except (TransientError, ApiException, Urllib3HTTPError) as e:
            WORKQUEUE_RETRIES.labels(kind=kind, reason="transient_error").inc()
            delay = work_queue.add_rate_limited(notification)
            logger.warning(f"Failed to reconcile {notification}, retrying in {delay:.1f}s: {e}")
            return
        except Exception:
            logger.exception(f"Unexpected error reconciling {notification}, dropping it")
            work_queue.forget(notification)
            return

        work_queue.forget(notification)
