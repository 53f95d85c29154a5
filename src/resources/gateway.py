"""Gateway reconciliation.

A Gateway lives in the snapshot entry of its GatewayClass. Its status reports
whether it was accepted, whether its generated workload is ready and which
addresses it is reachable on. The workload is a Deployment and a Service named
after the Gateway (see `utils.resolve_name`), or labelled with the owning
Gateway when the name cannot be resolved.
"""

import logging
from collections.abc import Mapping
from dataclasses import replace
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
    Condition,
    ConditionStatus,
    GatewayAddress,
    GatewayRecord,
    Kind,
    Listener,
    NamespacedName,
    Notification,
    Resources,
    RouteRecord,
)
from resources.context import Lookups, ReconcileContext
from resources.references import prune_orphaned_routes
from resources.route import attached_listeners
from resources.snapshot import drop_gateway, normalize_namespaces, put_gateway
from utils import format_label_selector, resolve_name

logger = logging.getLogger(__name__)

Body = Mapping[str, Any]


# =============================================================================
# Workload discovery
# =============================================================================


def owning_labels(key: NamespacedName) -> dict[str, str]:
    return {
        OWNING_GATEWAY_NAME_LABEL: key.name,
        OWNING_GATEWAY_NAMESPACE_LABEL: key.namespace,
    }


def find_workload_object(
    ctx: ReconcileContext, kind: Kind, key: NamespacedName, suffix: str
) -> Body | None:
    """Generated Deployment or Service of a Gateway, by name then by labels."""
    name = resolve_name(key.name, key.namespace, suffix, ctx.name_length_limit)
    body = ctx.cluster.get(kind, key.namespace, name)
    if body is not None:
        return body

    labelled = ctx.cluster.list_objects(
        kind, key.namespace, format_label_selector(owning_labels(key))
    )
    return labelled[0] if labelled else None


def available_replicas(deployment: Body | None) -> int:
    if deployment is None:
        return 0
    return int((deployment.get("status") or {}).get("availableReplicas") or 0)


def service_addresses(service: Body | None) -> list[GatewayAddress]:
    """Addresses of a generated Service in arrival order, without duplicates.

    Load balancer ingress comes first, then external IPs. The cluster IP is
    only used when nothing else is known.
    """
    if service is None:
        return []

    addresses: list[GatewayAddress] = []

    def add(address_type: str, value: str | None) -> None:
        address = GatewayAddress(address_type, value or "")
        if address.value and address not in addresses:
            addresses.append(address)

    status = service.get("status") or {}
    for ingress in (status.get("loadBalancer") or {}).get("ingress") or []:
        add("IPAddress", ingress.get("ip"))
        add("Hostname", ingress.get("hostname"))

    spec = service.get("spec") or {}
    for ip in spec.get("externalIPs") or []:
        add("IPAddress", ip)

    if not addresses and spec.get("clusterIP") not in (None, "", "None"):
        add("IPAddress", spec["clusterIP"])
    return addresses


# =============================================================================
# Status
# =============================================================================


def gateway_conditions(
    gateway: GatewayRecord, replicas: int, addresses: list[GatewayAddress]
) -> list[Condition]:
    if any(listener.valid for listener in gateway.listeners):
        accepted = Condition("Accepted", ConditionStatus.TRUE, "Accepted", "Gateway is accepted")
    else:
        accepted = Condition(
            "Accepted",
            ConditionStatus.FALSE,
            "ListenersNotValid",
            "Gateway has no valid listener",
        )

    if replicas < 1:
        programmed = Condition(
            "Programmed",
            ConditionStatus.FALSE,
            "NoResources",
            "Deployment replicas unavailable",
        )
    elif not addresses:
        programmed = Condition(
            "Programmed",
            ConditionStatus.FALSE,
            "AddressNotAssigned",
            "No addresses have been assigned to the Gateway",
        )
    else:
        programmed = Condition(
            "Programmed", ConditionStatus.TRUE, "Programmed", "Address assigned to the Gateway"
        )
    return [accepted, programmed]


def count_attached_routes(
    gateway: GatewayRecord, listener: Listener, entry: Resources | None
) -> int:
    if entry is None:
        return 0
    count = 0
    for route in entry.routes():
        namespace = entry.namespace(route.namespace)
        labels = namespace.label_map if namespace else {}
        for ref in route.parent_refs:
            if ref.gateway_key(route.namespace) != gateway.key:
                continue
            listeners, _ = attached_listeners(route, ref, gateway, labels)
            if listener in listeners:
                count += 1
                break
    return count


def listener_statuses(
    gateway: GatewayRecord, entry: Resources | None, programmed: bool
) -> list[dict[str, Any]]:
    statuses = []
    for listener in gateway.listeners:
        kinds = listener.supported_kinds()
        unsupported_kinds = [k for k in listener.allowed_kinds if k not in kinds]

        if listener.valid:
            accepted = Condition("Accepted", ConditionStatus.TRUE, "Accepted", "Listener is accepted")
        else:
            accepted = Condition(
                "Accepted",
                ConditionStatus.FALSE,
                "UnsupportedProtocol",
                f"Protocol {listener.protocol} is not supported",
            )
        if unsupported_kinds:
            resolved = Condition(
                "ResolvedRefs",
                ConditionStatus.FALSE,
                "InvalidRouteKinds",
                f"Route kinds not supported: {', '.join(unsupported_kinds)}",
            )
        else:
            resolved = Condition(
                "ResolvedRefs", ConditionStatus.TRUE, "ResolvedRefs", "Listener references resolved"
            )
        if not listener.valid:
            ready = Condition("Programmed", ConditionStatus.FALSE, "Invalid", "Listener is invalid")
        elif programmed:
            ready = Condition("Programmed", ConditionStatus.TRUE, "Programmed", "Listener is programmed")
        else:
            ready = Condition("Programmed", ConditionStatus.FALSE, "Pending", "Gateway is not programmed yet")

        statuses.append(
            {
                "name": listener.name,
                "supportedKinds": [{"group": GATEWAY_API_GROUP, "kind": k} for k in kinds],
                "attachedRoutes": count_attached_routes(gateway, listener, entry),
                "conditions": [accepted, resolved, ready],
            }
        )
    return statuses


# =============================================================================
# Reconciliation
# =============================================================================


def remove_gateway(
    ctx: ReconcileContext,
    key: NamespacedName,
    keep: str | None = None,
    lookups: Lookups | None = None,
) -> list[str]:
    """Remove a Gateway from every entry except `keep`.

    Routes left without a parent in an entry are pruned with it. Returns the
    entries written.
    """
    lookups = lookups or ctx.lookups()
    written = []
    for class_name in ctx.store.keys():
        if class_name == keep:
            continue

        affected: list[RouteRecord] = []

        def mutate(current: Resources | None) -> Resources | None:
            affected.clear()
            if current is None or current.gateway(key) is None:
                return None
            affected.extend(r for r in current.routes() if key in r.parent_keys())
            updated, _ = prune_orphaned_routes(drop_gateway(current, key), lookups.service)
            return normalize_namespaces(updated, lookups.namespace)

        if ctx.store.update(class_name, mutate):
            logger.info(f"Removed Gateway {key} from {class_name}")
            written.append(class_name)
            # Let a terminating class finish and routes refresh their status
            ctx.enqueue_object(Kind.GATEWAY_CLASS, None, class_name)
            for route in affected:
                ctx.enqueue_object(route.kind, route.namespace, route.name)
    return written


def _enqueue_referencing_routes(ctx: ReconcileContext, key: NamespacedName) -> None:
    for kind in ROUTE_KINDS:
        for body in ctx.list_namespaced(kind):
            route = RouteRecord.from_object(kind, body)
            if key in route.parent_keys():
                ctx.enqueue_object(kind, route.namespace, route.name)


def reconcile_gateway(ctx: ReconcileContext, notification: Notification) -> None:
    """Reconcile one Gateway."""
    key = NamespacedName(notification.namespace or "", notification.name)
    lookups = ctx.lookups()

    body = None
    if not notification.deleted:
        body = ctx.cluster.get(Kind.GATEWAY, key.namespace, key.name)
    if body is None or (body.get("metadata") or {}).get("deletionTimestamp"):
        remove_gateway(ctx, key, lookups=lookups)
        return

    record = GatewayRecord.from_object(body)
    class_name = record.gateway_class_name
    remove_gateway(ctx, key, keep=class_name, lookups=lookups)

    if ctx.load_entry(class_name) is None:
        logger.debug(f"Gateway {key} uses GatewayClass {class_name} which is not ours")
        return

    deployment = find_workload_object(ctx, Kind.DEPLOYMENT, key, DEPLOYMENT_SUFFIX)
    service = find_workload_object(ctx, Kind.SERVICE, key, SERVICE_SUFFIX)
    replicas = available_replicas(deployment)
    addresses = service_addresses(service)
    programmed = replicas >= 1 and bool(addresses)
    record = replace(record, addresses=tuple(addresses), programmed=programmed)

    def mutate(current: Resources | None) -> Resources | None:
        if current is None or current.gateway(key) == record:
            return None
        return normalize_namespaces(put_gateway(current, record), lookups.namespace)

    if ctx.store.update(class_name, mutate):
        logger.info(f"Updated Gateway {key} in {class_name}")
        _enqueue_referencing_routes(ctx, key)

    entry = ctx.load_entry(class_name)
    ctx.status.sync_gateway(
        body,
        gateway_conditions(record, replicas, addresses),
        addresses,
        listener_statuses(record, entry, programmed),
    )
