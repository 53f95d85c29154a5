"""Reconciliation of the core objects snapshots depend on.

Services and Namespaces are projected into the entries that reference them.
Deployments and ReferenceGrants never enter a snapshot; their changes only
trigger reconciliation of the Gateways and Routes they affect.
"""

import logging
from collections.abc import Mapping
from typing import Any

from constants import (
    DEPLOYMENT_SUFFIX,
    GATEWAY_API_GROUP,
    OWNING_GATEWAY_NAME_LABEL,
    OWNING_GATEWAY_NAMESPACE_LABEL,
    SERVICE_SUFFIX,
)
from models import (
    ROUTE_KINDS,
    Kind,
    NamespacedName,
    NamespaceRecord,
    Notification,
    Resources,
    ServiceRecord,
)
from resources.context import ReconcileContext
from resources.snapshot import (
    drop_services,
    normalize_namespaces,
    put_namespace,
    put_service,
    routes_in_namespace,
)
from utils import resolve_name

logger = logging.getLogger(__name__)

Body = Mapping[str, Any]


def _read(ctx: ReconcileContext, notification: Notification) -> Body | None:
    if notification.deleted:
        return None
    return ctx.cluster.get(notification.kind, notification.namespace, notification.name)


def _owning_gateway(
    ctx: ReconcileContext,
    body: Body | None,
    namespace: str,
    name: str,
    suffix: str,
) -> NamespacedName | None:
    """Gateway a generated object belongs to.

    Uses the owning labels when the object carries them, otherwise looks for
    a known Gateway whose resolved child name is `name`.
    """
    if body is not None:
        labels = (body.get("metadata") or {}).get("labels") or {}
        owner = labels.get(OWNING_GATEWAY_NAME_LABEL)
        if owner:
            return NamespacedName(labels.get(OWNING_GATEWAY_NAMESPACE_LABEL, namespace), owner)

    for _, entry in ctx.store.items():
        for gateway in entry.gateways:
            if gateway.namespace != namespace:
                continue
            if resolve_name(gateway.name, namespace, suffix, ctx.name_length_limit) == name:
                return gateway.key
    return None


def _enqueue_routes_in(ctx: ReconcileContext, namespace: str) -> None:
    for kind in ROUTE_KINDS:
        for body in ctx.list_namespaced(kind, namespace):
            meta = body.get("metadata") or {}
            ctx.enqueue_object(kind, meta.get("namespace"), meta.get("name", ""))


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


def reconcile_service(ctx: ReconcileContext, notification: Notification) -> None:
    """Refresh a Service in every entry referencing it."""
    namespace = notification.namespace or ""
    key = NamespacedName(namespace, notification.name)
    body = _read(ctx, notification)
    record = ServiceRecord.from_object(body) if body is not None else None
    lookups = ctx.lookups()

    def mutate(current: Resources | None) -> Resources | None:
        if current is None or key not in current.references:
            return None
        if record is None:
            if current.service(key) is None:
                return None
            updated = drop_services(current, [key])
        elif current.service(key) == record:
            return None
        else:
            updated = put_service(current, record)
        return normalize_namespaces(updated, lookups.namespace)

    for class_name in ctx.store.keys():
        if ctx.store.update(class_name, mutate):
            action = "Removed" if record is None else "Updated"
            logger.info(f"{action} Service {key} in {class_name}")
            entry = ctx.load_entry(class_name)
            if entry is not None:
                for route_key in entry.references.routes_for(key):
                    ctx.enqueue_object(route_key.kind, route_key.namespace, route_key.name)

    owner = _owning_gateway(ctx, body, namespace, notification.name, SERVICE_SUFFIX)
    if owner is not None:
        ctx.enqueue_object(Kind.GATEWAY, owner.namespace, owner.name)


# -----------------------------------------------------------------------------
# Namespace
# -----------------------------------------------------------------------------


def reconcile_namespace(ctx: ReconcileContext, notification: Notification) -> None:
    """Refresh Namespace labels and re-check Selector-based attachment."""
    name = notification.name
    body = _read(ctx, notification)
    record = NamespaceRecord.from_object(body) if body is not None else NamespaceRecord(name)

    def mutate(current: Resources | None) -> Resources | None:
        if current is None:
            return None
        existing = current.namespace(name)
        if existing is None or existing == record:
            return None
        return put_namespace(current, record)

    for class_name in ctx.store.keys():
        if ctx.store.update(class_name, mutate):
            logger.info(f"Updated Namespace {name} in {class_name}")

    if body is not None:
        _enqueue_routes_in(ctx, name)
    else:
        for _, entry in ctx.store.items():
            for route in routes_in_namespace(entry, name):
                ctx.enqueue_object(route.kind, route.namespace, route.name)


# -----------------------------------------------------------------------------
# Deployment
# -----------------------------------------------------------------------------


def reconcile_deployment(ctx: ReconcileContext, notification: Notification) -> None:
    """Re-check the readiness of the Gateway owning a Deployment."""
    body = _read(ctx, notification)
    owner = _owning_gateway(
        ctx, body, notification.namespace or "", notification.name, DEPLOYMENT_SUFFIX
    )
    if owner is not None:
        ctx.enqueue_object(Kind.GATEWAY, owner.namespace, owner.name)


# -----------------------------------------------------------------------------
# ReferenceGrant
# -----------------------------------------------------------------------------


def reconcile_reference_grant(ctx: ReconcileContext, notification: Notification) -> None:
    """Re-check routes whose cross-namespace references the grant may cover."""
    namespace = notification.namespace or ""
    body = _read(ctx, notification)

    if body is not None:
        route_kinds = {kind.value: kind for kind in ROUTE_KINDS}
        for item in (body.get("spec") or {}).get("from") or []:
            kind = route_kinds.get(item.get("kind", ""))
            if item.get("group") != GATEWAY_API_GROUP or kind is None:
                continue
            for route in ctx.list_namespaced(kind, item.get("namespace")):
                meta = route.get("metadata") or {}
                ctx.enqueue_object(kind, meta.get("namespace"), meta.get("name", ""))

    # Routes that relied on the grant
    for _, entry in ctx.store.items():
        for route in entry.routes():
            if any(
                key.namespace == namespace and route.namespace != namespace
                for key in route.backend_keys()
            ):
                ctx.enqueue_object(route.kind, route.namespace, route.name)
