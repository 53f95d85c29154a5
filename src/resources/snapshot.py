"""Pure helpers producing updated `Resources` values.

Every helper returns a new value and keeps each collection sorted by
identity, so the same content always yields an equal snapshot.
"""

from collections.abc import Callable, Iterable
from dataclasses import replace

from models import (
    GatewayClassRecord,
    GatewayRecord,
    Kind,
    NamespacedName,
    NamespaceRecord,
    Resources,
    RouteKey,
    RouteRecord,
    ServiceRecord,
)

NamespaceLookup = Callable[[str], NamespaceRecord | None]


def empty_resources(gateway_class: GatewayClassRecord) -> Resources:
    return Resources(gateway_class=gateway_class)


def _sorted_gateways(gateways: Iterable[GatewayRecord]) -> tuple[GatewayRecord, ...]:
    return tuple(sorted(gateways, key=lambda g: (g.namespace, g.name)))


def _sorted_routes(routes: Iterable[RouteRecord]) -> tuple[RouteRecord, ...]:
    return tuple(sorted(routes, key=lambda r: (r.namespace, r.name)))


def _sorted_services(services: Iterable[ServiceRecord]) -> tuple[ServiceRecord, ...]:
    return tuple(sorted(services, key=lambda s: (s.namespace, s.name)))


# -----------------------------------------------------------------------------
# Gateways
# -----------------------------------------------------------------------------


def put_gateway(resources: Resources, gateway: GatewayRecord) -> Resources:
    others = [g for g in resources.gateways if g.key != gateway.key]
    return replace(resources, gateways=_sorted_gateways([*others, gateway]))


def drop_gateway(resources: Resources, key: NamespacedName) -> Resources:
    return replace(
        resources, gateways=tuple(g for g in resources.gateways if g.key != key)
    )


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


def put_route(resources: Resources, route: RouteRecord) -> Resources:
    others = [r for r in resources.routes_of(route.kind) if r.key != route.key]
    return resources.with_routes(route.kind, _sorted_routes([*others, route]))


def drop_route(resources: Resources, key: RouteKey) -> Resources:
    return resources.with_routes(
        key.kind, [r for r in resources.routes_of(key.kind) if r.key != key]
    )


def orphaned_routes(resources: Resources) -> list[RouteRecord]:
    """Routes none of whose parents is a Gateway of this entry."""
    gateways = {g.key for g in resources.gateways}
    return [r for r in resources.routes() if not r.parent_keys() & gateways]


def routes_in_namespace(resources: Resources, namespace: str) -> list[RouteRecord]:
    return [r for r in resources.routes() if r.namespace == namespace]


# -----------------------------------------------------------------------------
# Services
# -----------------------------------------------------------------------------


def put_service(resources: Resources, service: ServiceRecord) -> Resources:
    others = [s for s in resources.services if s.key != service.key]
    return replace(resources, services=_sorted_services([*others, service]))


def drop_services(resources: Resources, keys: Iterable[NamespacedName]) -> Resources:
    removed = set(keys)
    return replace(
        resources, services=tuple(s for s in resources.services if s.key not in removed)
    )


# -----------------------------------------------------------------------------
# Namespaces
# -----------------------------------------------------------------------------


def member_namespaces(resources: Resources) -> set[str]:
    """Namespaces of every Gateway, Route and Service in the entry."""
    names = {g.namespace for g in resources.gateways}
    names.update(r.namespace for r in resources.routes())
    names.update(s.namespace for s in resources.services)
    return names


def normalize_namespaces(resources: Resources, lookup: NamespaceLookup) -> Resources:
    """Make the namespace list match the entry's member objects.

    Records already present are kept; missing ones come from `lookup`, or
    carry no labels when the Namespace cannot be read.
    """
    records = []
    for name in sorted(member_namespaces(resources)):
        record = resources.namespace(name) or lookup(name) or NamespaceRecord(name)
        records.append(record)
    return replace(resources, namespaces=tuple(records))


def put_namespace(resources: Resources, namespace: NamespaceRecord) -> Resources:
    """Refresh a namespace record the entry already contains."""
    if resources.namespace(namespace.name) is None:
        return resources
    return replace(
        resources,
        namespaces=tuple(
            namespace if n.name == namespace.name else n for n in resources.namespaces
        ),
    )


# Kinds reported by counts()
COUNTED_KINDS = (
    Kind.GATEWAY,
    Kind.HTTP_ROUTE,
    Kind.TLS_ROUTE,
    Kind.SERVICE,
    Kind.NAMESPACE,
)


def counts(resources: Resources) -> dict[str, int]:
    """Number of objects per kind, for reporting."""
    return {
        Kind.GATEWAY.value: len(resources.gateways),
        Kind.HTTP_ROUTE.value: len(resources.http_routes),
        Kind.TLS_ROUTE.value: len(resources.tls_routes),
        Kind.SERVICE.value: len(resources.services),
        Kind.NAMESPACE.value: len(resources.namespaces),
    }
