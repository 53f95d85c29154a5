"""Snapshot store: the per-GatewayClass `Resources` handed to the translator.

The store is a thread-safe mapping from GatewayClass name to `Resources`.
It does no merging; reconcilers read, recompute and write whole values, and
use `update()` to retry when another reconciler wrote the same entry in the
meantime. Every accepted write is delivered to all subscribers, in one global
order, while the store lock is held.
"""

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from metrics import SNAPSHOT_ENTRIES, SNAPSHOT_WRITES
from models import ConflictError, Resources

logger = logging.getLogger(__name__)

# Returned by an update() mutator to delete the entry
DELETE = object()

_CLOSED = object()


@dataclass(frozen=True)
class StoreEvent:
    """A delivered store mutation."""

    key: str
    value: Resources | None
    deleted: bool = False


class Subscription:
    """Ordered stream of store events for one subscriber.

    Usage:
        for event in store.subscribe():
            translate(event.key, event.value)
    """

    def __init__(self, store: "ResourceStore") -> None:
        self._store = store
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    def _deliver(self, event: StoreEvent) -> None:
        if not self._closed.is_set():
            self._queue.put_nowait(event)

    def _end(self) -> None:
        self._closed.set()
        self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def get(self, timeout: float | None = None) -> StoreEvent | None:
        """Next event, or None on timeout or once the subscription is closed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Keep the marker for any later get()
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[StoreEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        self._store._unsubscribe(self)
        self._end()


class ResourceStore:
    """Concurrency-safe map of GatewayClass name to `Resources`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Resources] = {}
        self._revisions: dict[str, int] = {}
        self._sequence = 0
        self._subscribers: list[Subscription] = []
        self._closed = False

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def load(self, key: str) -> tuple[Resources | None, bool]:
        with self._lock:
            value = self._entries.get(key)
            return value, value is not None

    def load_revision(self, key: str) -> tuple[Resources | None, int]:
        """Current value and its revision (0 when absent)."""
        with self._lock:
            return self._entries.get(key), self._revisions.get(key, 0)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def items(self) -> list[tuple[str, Resources]]:
        with self._lock:
            return list(self._entries.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def store(self, key: str, value: Resources) -> bool:
        """Replace the entry for `key`.

        Returns False without notifying anyone when `value` equals the
        current entry.
        """
        with self._lock:
            return self._store_locked(key, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._delete_locked(key)

    def compare_and_store(self, key: str, revision: int, value: Resources) -> bool:
        """Store `value` only if the entry is still at `revision`.

        Raises ConflictError when the entry changed since it was read.
        """
        with self._lock:
            self._check_revision(key, revision)
            return self._store_locked(key, value)

    def compare_and_delete(self, key: str, revision: int) -> bool:
        with self._lock:
            self._check_revision(key, revision)
            return self._delete_locked(key)

    def update(
        self,
        key: str,
        mutate: Callable[[Resources | None], object],
        max_attempts: int = 16,
    ) -> bool:
        """Read-modify-write `key`, retrying on concurrent writes.

        `mutate` gets the current value (None when absent) and returns the new
        value, None to leave the entry alone, or DELETE. It may run more than
        once and must not have side effects on the store.

        Returns True when the entry was written or deleted.
        """
        for attempt in range(1, max_attempts + 1):
            current, revision = self.load_revision(key)
            result = mutate(current)
            if result is None:
                return False
            try:
                if result is DELETE:
                    return self.compare_and_delete(key, revision)
                return self.compare_and_store(key, revision, result)  # type: ignore[arg-type]
            except ConflictError:
                SNAPSHOT_WRITES.labels(operation="conflict").inc()
                logger.debug(
                    "Snapshot entry %s changed during update (attempt %d/%d)",
                    key,
                    attempt,
                    max_attempts,
                )

        raise ConflictError(
            f"Snapshot entry {key} changed concurrently {max_attempts} times"
        )

    def _check_revision(self, key: str, revision: int) -> None:
        current = self._revisions.get(key, 0)
        if current != revision:
            raise ConflictError(
                f"Snapshot entry {key} is at revision {current}, expected {revision}"
            )

    def _store_locked(self, key: str, value: Resources) -> bool:
        current = self._entries.get(key)
        if current is not None and current == value:
            SNAPSHOT_WRITES.labels(operation="suppressed").inc()
            return False

        self._sequence += 1
        self._entries[key] = value
        self._revisions[key] = self._sequence
        SNAPSHOT_WRITES.labels(operation="store").inc()
        SNAPSHOT_ENTRIES.set(len(self._entries))
        self._publish(StoreEvent(key, value))
        return True

    def _delete_locked(self, key: str) -> bool:
        if key not in self._entries:
            return False

        del self._entries[key]
        del self._revisions[key]
        SNAPSHOT_WRITES.labels(operation="delete").inc()
        SNAPSHOT_ENTRIES.set(len(self._entries))
        self._publish(StoreEvent(key, None, deleted=True))
        return True

    def _publish(self, event: StoreEvent) -> None:
        for subscriber in self._subscribers:
            subscriber._deliver(event)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, replay: bool = True) -> Subscription:
        """Subscribe to store events.

        With `replay`, the current entries are delivered first so the
        subscriber starts from a complete view.
        """
        subscription = Subscription(self)
        with self._lock:
            if self._closed:
                subscription._end()
                return subscription
            if replay:
                for key, value in self._entries.items():
                    subscription._deliver(StoreEvent(key, value))
            self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def close(self) -> None:
        """End every subscription."""
        with self._lock:
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []
        for subscriber in subscribers:
            subscriber._end()
