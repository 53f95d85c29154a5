"""Dependencies shared by the per-kind reconcilers."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cluster import ClusterClient
from constants import DEFAULT_CONTROLLER_NAME
from models import (
    InvariantError,
    Kind,
    NamespacedName,
    NamespaceRecord,
    Notification,
    Resources,
    ServiceRecord,
)
from resources.status import StatusSynchronizer
from store import ResourceStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileContext:
    """Everything a reconciler needs, injected at startup."""

    store: ResourceStore
    cluster: ClusterClient
    status: StatusSynchronizer
    enqueue: Callable[[Notification], Any]
    controller_name: str = DEFAULT_CONTROLLER_NAME
    watch_namespace: str = ""
    name_length_limit: int = 63

    def lookups(self) -> "Lookups":
        return Lookups(self.cluster)

    def load_entry(self, class_name: str) -> Resources | None:
        """Snapshot entry of a GatewayClass, checked for consistency."""
        entry, _ = self.store.load(class_name)
        if entry is not None and entry.name != class_name:
            raise InvariantError(
                f"Snapshot entry {class_name} holds GatewayClass {entry.name}"
            )
        return entry

    def list_namespaced(self, kind: Kind, namespace: str | None = None) -> list[dict]:
        """List a namespaced kind within the watched scope."""
        return self.cluster.list_objects(kind, namespace or self.watch_namespace or None)

    def enqueue_object(self, kind: Kind, namespace: str | None, name: str) -> None:
        self.enqueue(Notification(kind, namespace, name))


class Lookups:
    """Cluster reads memoized for the duration of one reconciliation.

    Store mutators may run several times; memoizing keeps the retries from
    issuing the same reads again. Not-found results are memoized as well.
    """

    def __init__(self, cluster: ClusterClient) -> None:
        self._cluster = cluster
        self._services: dict[NamespacedName, ServiceRecord | None] = {}
        self._namespaces: dict[str, NamespaceRecord | None] = {}

    def service(self, key: NamespacedName) -> ServiceRecord | None:
        if key not in self._services:
            body = self._cluster.get(Kind.SERVICE, key.namespace, key.name)
            if body is None:
                logger.debug(f"Service {key} not found")
            self._services[key] = ServiceRecord.from_object(body) if body else None
        return self._services[key]

    def namespace(self, name: str) -> NamespaceRecord | None:
        if name not in self._namespaces:
            body = self._cluster.get(Kind.NAMESPACE, None, name)
            self._namespaces[name] = NamespaceRecord.from_object(body) if body else None
        return self._namespaces[name]

    def namespace_labels(self, name: str) -> dict[str, str]:
        record = self.namespace(name)
        return record.label_map if record else {}
