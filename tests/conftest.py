"""Shared test fixtures: an in-memory cluster and a synchronous operator loop."""

import copy
from collections import OrderedDict
from typing import Any

import pytest
from kubernetes.client import ApiException

from cluster import API_RESOURCES
from constants import GATEWAY_API_GROUP, GATEWAY_CLASS_FINALIZER
from models import ConflictError, Kind, Notification
from provider import Provider
from resources.context import ReconcileContext
from resources.status import StatusSynchronizer
from store import ResourceStore
from utils import parse_label_selector

CONTROLLER_NAME = "example.com/gateway-controller"


class FakeCluster:
    """In-memory stand-in for ClusterClient.

    Every mutation bumps resourceVersion and records a watch notification in
    `events`, like the API server would. Writes carrying a stale
    resourceVersion raise ConflictError.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[Kind, str | None, str], dict[str, Any]] = {}
        self.events: list[Notification] = []
        self.writes: list[tuple[str, Kind, str | None, str]] = []
        self._version = 0

    # -------------------------------------------------------------------------
    # Test-side mutations
    # -------------------------------------------------------------------------

    def _key(self, kind: Kind, namespace: str | None, name: str) -> tuple:
        return (kind, namespace if API_RESOURCES[kind].namespaced else None, name)

    def _bump(self, obj: dict[str, Any]) -> None:
        self._version += 1
        obj["metadata"]["resourceVersion"] = str(self._version)

    def _emit(self, kind: Kind, obj: dict[str, Any], deleted: bool = False) -> None:
        meta = obj["metadata"]
        self.events.append(
            Notification(kind, meta.get("namespace"), meta["name"], deleted=deleted)
        )

    def apply(self, kind: Kind, body: dict[str, Any]) -> dict[str, Any]:
        """Create or replace an object's metadata and spec, keeping its status."""
        meta = body["metadata"]
        key = self._key(kind, meta.get("namespace"), meta["name"])
        current = self.objects.get(key)
        obj = copy.deepcopy(body)
        obj_meta = obj["metadata"]
        if current is None:
            obj_meta["generation"] = 1
        else:
            obj_meta["generation"] = current["metadata"]["generation"]
            if current.get("spec") != obj.get("spec"):
                obj_meta["generation"] += 1
            obj_meta.setdefault("finalizers", current["metadata"].get("finalizers"))
            if "status" not in body:
                obj["status"] = copy.deepcopy(current.get("status"))
        self._bump(obj)
        self.objects[key] = obj
        self._emit(kind, obj)
        return copy.deepcopy(obj)

    def set_status(
        self, kind: Kind, namespace: str | None, name: str, status: dict[str, Any]
    ) -> None:
        """Replace the status of an object as its owner would."""
        obj = self.objects[self._key(kind, namespace, name)]
        obj["status"] = copy.deepcopy(status)
        self._bump(obj)
        self._emit(kind, obj)

    def delete(self, kind: Kind, namespace: str | None, name: str) -> None:
        key = self._key(kind, namespace, name)
        obj = self.objects[key]
        if obj["metadata"].get("finalizers"):
            obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
            self._bump(obj)
            self._emit(kind, obj)
            return
        del self.objects[key]
        self._emit(kind, obj, deleted=True)

    def exists(self, kind: Kind, namespace: str | None, name: str) -> bool:
        return self._key(kind, namespace, name) in self.objects

    def status_writes(self, kind: Kind | None = None) -> int:
        return sum(1 for w in self.writes if w[0] == "status" and kind in (None, w[1]))

    # -------------------------------------------------------------------------
    # ClusterClient interface
    # -------------------------------------------------------------------------

    def get(self, kind: Kind, namespace: str | None, name: str) -> dict[str, Any] | None:
        obj = self.objects.get(self._key(kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def list_objects(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        wanted = parse_label_selector(label_selector)
        result = []
        for (obj_kind, obj_namespace, _), obj in sorted(
            self.objects.items(), key=lambda item: (item[0][1] or "", item[0][2])
        ):
            if obj_kind != kind:
                continue
            if namespace and obj_namespace != namespace:
                continue
            labels = obj["metadata"].get("labels") or {}
            if any(labels.get(k) != v for k, v in wanted.items()):
                continue
            result.append(copy.deepcopy(obj))
        return result

    def _checked(
        self, kind: Kind, namespace: str | None, name: str, resource_version: str | None
    ) -> dict[str, Any]:
        obj = self.objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        if resource_version and obj["metadata"]["resourceVersion"] != resource_version:
            raise ConflictError(f"{kind.value} {namespace}/{name} was modified concurrently")
        return obj

    def patch_status(
        self,
        kind: Kind,
        namespace: str | None,
        name: str,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> dict[str, Any]:
        obj = self._checked(kind, namespace, name, resource_version)
        merged = dict(obj.get("status") or {})
        merged.update(copy.deepcopy(status))
        obj["status"] = merged
        self._bump(obj)
        self.writes.append(("status", kind, namespace, name))
        self._emit(kind, obj)
        return copy.deepcopy(obj)

    def patch_finalizers(
        self,
        kind: Kind,
        namespace: str | None,
        name: str,
        finalizers: list[str],
        resource_version: str | None = None,
    ) -> dict[str, Any]:
        obj = self._checked(kind, namespace, name, resource_version)
        obj["metadata"]["finalizers"] = list(finalizers)
        self.writes.append(("finalizers", kind, namespace, name))
        if obj["metadata"].get("deletionTimestamp") and not finalizers:
            del self.objects[self._key(kind, namespace, name)]
            self._emit(kind, obj, deleted=True)
            return copy.deepcopy(obj)
        self._bump(obj)
        self._emit(kind, obj)
        return copy.deepcopy(obj)


class OperatorHarness:
    """Runs the reconcilers synchronously against a FakeCluster."""

    def __init__(
        self,
        controller_name: str = CONTROLLER_NAME,
        name_length_limit: int = 63,
        cluster: FakeCluster | None = None,
    ):
        self.cluster = cluster or FakeCluster()
        self.store = ResourceStore()
        self.pending: OrderedDict[tuple, Notification] = OrderedDict()
        self.reconciled: list[Notification] = []
        self.ctx = ReconcileContext(
            store=self.store,
            cluster=self.cluster,
            status=StatusSynchronizer(self.cluster, controller_name),
            enqueue=self.enqueue,
            controller_name=controller_name,
            name_length_limit=name_length_limit,
        )
        self.provider = Provider(self.ctx)

    def enqueue(self, notification: Notification) -> bool:
        self.pending[notification.ref] = notification
        return True

    def _collect_events(self) -> None:
        events, self.cluster.events = self.cluster.events, []
        for notification in events:
            self.enqueue(notification)

    def run_until_idle(self, max_iterations: int = 1000) -> int:
        """Reconcile until no work is left; fails if the loop does not settle."""
        iterations = 0
        self._collect_events()
        while self.pending:
            _, notification = self.pending.popitem(last=False)
            try:
                self.provider.reconcile(notification)
            except ConflictError:
                self.enqueue(notification)
            self.reconciled.append(notification)
            self._collect_events()
            iterations += 1
            assert iterations <= max_iterations, "reconciliation did not settle"
        return iterations

    def entry(self, class_name: str):
        value, _ = self.store.load(class_name)
        return value


# =============================================================================
# Object builders
# =============================================================================


def gateway_class(name: str, controller_name: str = CONTROLLER_NAME) -> dict[str, Any]:
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/v1",
        "kind": "GatewayClass",
        "metadata": {"name": name},
        "spec": {"controllerName": controller_name},
    }


def gateway(
    namespace: str,
    name: str,
    class_name: str,
    listeners: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/v1",
        "kind": "Gateway",
        "metadata": {"namespace": namespace, "name": name},
        "spec": {
            "gatewayClassName": class_name,
            "listeners": listeners
            if listeners is not None
            else [{"name": "http", "port": 8080, "protocol": "HTTP"}],
        },
    }


def http_route(
    namespace: str,
    name: str,
    parents: list[dict[str, Any]],
    backends: list[dict[str, Any]] | None = None,
    filters: list[dict[str, Any]] | None = None,
    hostnames: list[str] | None = None,
) -> dict[str, Any]:
    rule: dict[str, Any] = {
        "matches": [{"path": {"type": "PathPrefix", "value": "/"}}],
        "backendRefs": backends or [],
    }
    if filters:
        rule["filters"] = filters
    spec: dict[str, Any] = {"parentRefs": parents, "rules": [rule]}
    if hostnames:
        spec["hostnames"] = hostnames
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/v1",
        "kind": "HTTPRoute",
        "metadata": {"namespace": namespace, "name": name},
        "spec": spec,
    }


def tls_route(
    namespace: str,
    name: str,
    parents: list[dict[str, Any]],
    backends: list[dict[str, Any]],
) -> dict[str, Any]:
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/v1alpha2",
        "kind": "TLSRoute",
        "metadata": {"namespace": namespace, "name": name},
        "spec": {"parentRefs": parents, "rules": [{"backendRefs": backends}]},
    }


def service(
    namespace: str,
    name: str,
    port: int = 8080,
    labels: dict[str, str] | None = None,
    ingress_ip: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"namespace": namespace, "name": name, "labels": labels or {}},
        "spec": {"ports": [{"name": "http", "port": port, "protocol": "TCP"}]},
    }
    if ingress_ip:
        body["status"] = {"loadBalancer": {"ingress": [{"ip": ingress_ip}]}}
    return body


def deployment(
    namespace: str,
    name: str,
    labels: dict[str, str] | None = None,
    available: int = 1,
) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"namespace": namespace, "name": name, "labels": labels or {}},
        "spec": {"replicas": 1},
        "status": {"availableReplicas": available},
    }


def namespace(name: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name, "labels": labels or {}},
    }


def reference_grant(
    namespace: str,
    name: str,
    from_namespace: str,
    from_kind: str = "HTTPRoute",
    to_name: str | None = None,
) -> dict[str, Any]:
    to: dict[str, Any] = {"group": "", "kind": "Service"}
    if to_name:
        to["name"] = to_name
    return {
        "apiVersion": f"{GATEWAY_API_GROUP}/v1beta1",
        "kind": "ReferenceGrant",
        "metadata": {"namespace": namespace, "name": name},
        "spec": {
            "from": [
                {"group": GATEWAY_API_GROUP, "kind": from_kind, "namespace": from_namespace}
            ],
            "to": [to],
        },
    }


def parent(name: str, section_name: str | None = None) -> dict[str, Any]:
    ref: dict[str, Any] = {"name": name}
    if section_name:
        ref["sectionName"] = section_name
    return ref


def backend(name: str, port: int = 8080, namespace: str | None = None) -> dict[str, Any]:
    ref: dict[str, Any] = {"name": name, "port": port}
    if namespace:
        ref["namespace"] = namespace
    return ref


def condition(obj: dict[str, Any] | None, condition_type: str) -> dict[str, Any] | None:
    for item in ((obj or {}).get("status") or {}).get("conditions") or []:
        if item["type"] == condition_type:
            return item
    return None


def has_finalizer(obj: dict[str, Any] | None) -> bool:
    return GATEWAY_CLASS_FINALIZER in (((obj or {}).get("metadata") or {}).get("finalizers") or [])


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def harness() -> OperatorHarness:
    return OperatorHarness()
