"""Reference-counted cleanup of backend Services.

Each snapshot entry carries a `BackendReferences` map from Service identity to
the routes referencing it. The map and the Service list only ever change
together, inside the store's read-modify-write loop, so a Service is removed
exactly by the write that sees its last referencing route go away, whichever
order concurrent route deletions happen in.
"""

import logging
from collections.abc import Callable
from dataclasses import replace

from models import (
    BackendReferences,
    InvariantError,
    NamespacedName,
    Resources,
    RouteKey,
    RouteRecord,
    ServiceRecord,
)
from resources.context import Lookups, ReconcileContext
from resources.snapshot import (
    drop_route,
    drop_services,
    normalize_namespaces,
    orphaned_routes,
    put_route,
    put_service,
)

logger = logging.getLogger(__name__)

ServiceLookup = Callable[[NamespacedName], ServiceRecord | None]


def rebalance(
    resources: Resources,
    route_key: RouteKey,
    route: RouteRecord | None,
    lookup_service: ServiceLookup,
) -> Resources:
    """Replace (or with `route=None` remove) a route and its Services.

    Old backends come from the entry's own reference map, never from a
    cached copy. Services whose referencing set became empty are dropped and
    newly referenced ones are looked up; a missing Service is left out.
    """
    new_backends = route.backend_keys() if route is not None else frozenset()
    references, added, removed = resources.references.on_route_changed(
        route_key, resources.references.services_for(route_key), new_backends
    )

    updated = drop_services(resources, removed)
    for service_key in sorted(added):
        service = lookup_service(service_key)
        if service is not None:
            updated = put_service(updated, service)

    updated = drop_route(updated, route_key) if route is None else put_route(updated, route)
    if removed:
        logger.debug(f"Route {route_key} released Services {sorted(map(str, removed))}")
    return replace(updated, references=references)


def prune_orphaned_routes(
    resources: Resources, lookup_service: ServiceLookup
) -> tuple[Resources, list[RouteKey]]:
    """Remove routes that lost every parent Gateway of the entry."""
    pruned = []
    for route in orphaned_routes(resources):
        resources = rebalance(resources, route.key, None, lookup_service)
        pruned.append(route.key)
    return resources, pruned


def verify_references(resources: Resources) -> None:
    """Check that the reference map matches the routes and Services."""
    expected = BackendReferences.from_routes(resources.routes())
    if resources.references != expected:
        raise InvariantError(
            f"Reference map of {resources.name} is {resources.references!r}, "
            f"routes imply {expected!r}"
        )
    stray = {s.key for s in resources.services} - expected.services()
    if stray:
        raise InvariantError(
            f"Unreferenced Services in {resources.name}: {sorted(map(str, stray))}"
        )


def apply_route_change(
    ctx: ReconcileContext,
    class_name: str,
    route_key: RouteKey,
    route: RouteRecord | None,
    lookups: Lookups | None = None,
    belongs: Callable[[Resources], bool] | None = None,
) -> bool:
    """Put or remove a route in one entry, rebalancing its Services.

    With `belongs`, the route is put only if the predicate holds for the
    entry as read in the same attempt, and removed otherwise.

    Returns True when the entry was written.
    """
    lookups = lookups or ctx.lookups()

    def mutate(current: Resources | None) -> Resources | None:
        if current is None:
            return None
        target = route
        if target is not None and belongs is not None and not belongs(current):
            target = None
        if target is None and current.route(route_key) is None:
            return None
        updated = rebalance(current, route_key, target, lookups.service)
        verify_references(updated)
        return normalize_namespaces(updated, lookups.namespace)

    return ctx.store.update(class_name, mutate)
