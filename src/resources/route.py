"""Route reconciliation (HTTPRoute and TLSRoute).

A route belongs to a snapshot entry while it attaches to at least one listener
of a Gateway in that entry. Invalid routes (malformed filters, backend
references not permitted by a ReferenceGrant) are kept out of every entry and
only reported through status.
"""

import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from constants import GATEWAY_API_GROUP
from models import (
    Condition,
    ConditionStatus,
    GatewayRecord,
    HTTPRouteRule,
    Kind,
    Listener,
    NamespacedName,
    Notification,
    ParentRef,
    Resources,
    RouteKey,
    RouteParentStatus,
    RouteRecord,
)
from resources.context import Lookups, ReconcileContext
from resources.references import apply_route_change

logger = logging.getLogger(__name__)

# Filter type -> RouteFilter attribute carrying its payload
FILTER_PAYLOADS = {
    "RequestHeaderModifier": "request_header_modifier",
    "ResponseHeaderModifier": "response_header_modifier",
    "RequestRedirect": "request_redirect",
    "URLRewrite": "url_rewrite",
    "RequestMirror": "request_mirror",
    "ExtensionRef": "extension_ref",
}

# Filters allowed at most once per rule
SINGLETON_FILTERS = (
    "RequestHeaderModifier",
    "ResponseHeaderModifier",
    "RequestRedirect",
    "URLRewrite",
)


# =============================================================================
# Listener attachment
# =============================================================================


def _hostname_matches(pattern: str, hostname: str) -> bool:
    if pattern.startswith("*."):
        return hostname.endswith(pattern[1:])
    return pattern == hostname


def hostnames_intersect(listener: Listener, hostnames: tuple[str, ...]) -> bool:
    if not listener.hostname or not hostnames:
        return True
    return any(
        _hostname_matches(listener.hostname, h) or _hostname_matches(h, listener.hostname)
        for h in hostnames
    )


def namespace_allowed(
    listener: Listener,
    gateway: GatewayRecord,
    namespace: str,
    namespace_labels: Mapping[str, str],
) -> bool:
    if listener.allowed_namespaces == "All":
        return True
    if listener.allowed_namespaces == "Selector":
        return listener.namespace_selector is not None and listener.namespace_selector.matches(
            namespace_labels
        )
    return namespace == gateway.namespace


def attached_listeners(
    route: RouteRecord,
    ref: ParentRef,
    gateway: GatewayRecord,
    namespace_labels: Mapping[str, str],
) -> tuple[list[Listener], str]:
    """Listeners of `gateway` the route attaches to through `ref`.

    Returns the listeners and, when there are none, the reason.
    """
    candidates = [
        listener
        for listener in gateway.listeners
        if (ref.section_name is None or listener.name == ref.section_name)
        and (ref.port is None or listener.port == ref.port)
    ]
    if not candidates:
        return [], "NoMatchingParent"

    allowed = [
        listener
        for listener in candidates
        if listener.valid
        and route.kind.value in listener.supported_kinds()
        and namespace_allowed(listener, gateway, route.namespace, namespace_labels)
    ]
    if not allowed:
        return [], "NotAllowedByListeners"

    matching = [l for l in allowed if hostnames_intersect(l, route.hostnames)]
    if not matching:
        return [], "NoMatchingListenerHostname"
    return matching, ""


def attaches_to_entry(
    route: RouteRecord, resources: Resources, namespace_labels: Mapping[str, str]
) -> bool:
    for ref in route.parent_refs:
        key = ref.gateway_key(route.namespace)
        gateway = resources.gateway(key) if key else None
        if gateway is None:
            continue
        listeners, _ = attached_listeners(route, ref, gateway, namespace_labels)
        if listeners:
            return True
    return False


# =============================================================================
# Validation
# =============================================================================


def validate_filters(route: RouteRecord) -> list[str]:
    """Problems with the HTTP filters of a route; empty when valid."""
    problems: list[str] = []
    for index, rule in enumerate(route.rules):
        if not isinstance(rule, HTTPRouteRule):
            continue
        types = Counter(f.type for f in rule.filters)
        for f in rule.filters:
            attribute = FILTER_PAYLOADS.get(f.type)
            if attribute is None:
                problems.append(f"rule {index}: unsupported filter type {f.type!r}")
                continue
            present = [a for a in FILTER_PAYLOADS.values() if getattr(f, a) is not None]
            if present != [attribute]:
                problems.append(
                    f"rule {index}: {f.type} filter must carry only its own configuration"
                )
                continue
            modifier = f.request_header_modifier or f.response_header_modifier
            if modifier is not None:
                names = modifier.header_names()
                if not names:
                    problems.append(f"rule {index}: {f.type} modifies no headers")
                elif "" in names:
                    problems.append(f"rule {index}: {f.type} has an empty header name")
                elif len(names) != len(set(names)):
                    problems.append(
                        f"rule {index}: {f.type} names a header more than once"
                    )
        for filter_type in SINGLETON_FILTERS:
            if types[filter_type] > 1:
                problems.append(f"rule {index}: more than one {filter_type} filter")
        if types["RequestRedirect"] and types["URLRewrite"]:
            problems.append(
                f"rule {index}: RequestRedirect and URLRewrite cannot be combined"
            )
    return problems


@dataclass(frozen=True)
class BackendResolution:
    """Outcome of resolving a route's backend references."""

    reason: str = "ResolvedRefs"
    message: str = "Resolved all the Object references for the Route"

    @property
    def resolved(self) -> bool:
        return self.reason == "ResolvedRefs"

    @property
    def permitted(self) -> bool:
        return self.reason != "RefNotPermitted"


def _grant_allows(
    grant: Mapping[str, Any], route: RouteRecord, service: NamespacedName
) -> bool:
    spec = grant.get("spec") or {}
    from_ok = any(
        item.get("group") == GATEWAY_API_GROUP
        and item.get("kind") == route.kind.value
        and item.get("namespace") == route.namespace
        for item in spec.get("from") or []
    )
    to_ok = any(
        item.get("group", "") in ("", "core")
        and item.get("kind") == "Service"
        and (not item.get("name") or item.get("name") == service.name)
        for item in spec.get("to") or []
    )
    return from_ok and to_ok


def resolve_backends(
    ctx: ReconcileContext, route: RouteRecord, lookups: Lookups
) -> BackendResolution:
    grants: dict[str, list[dict]] = {}
    not_permitted, invalid_kind, missing = [], [], []

    for ref in route.backend_refs():
        if not ref.is_service:
            invalid_kind.append(f"{ref.group}/{ref.kind} {ref.name}")
            continue
        key = ref.service_key(route.namespace)
        if key.namespace != route.namespace:
            if key.namespace not in grants:
                grants[key.namespace] = ctx.cluster.list_objects(
                    Kind.REFERENCE_GRANT, key.namespace
                )
            if not any(_grant_allows(g, route, key) for g in grants[key.namespace]):
                not_permitted.append(str(key))
                continue
        if lookups.service(key) is None:
            missing.append(str(key))

    if not_permitted:
        return BackendResolution(
            "RefNotPermitted",
            f"Backend references not permitted by any ReferenceGrant: {', '.join(not_permitted)}",
        )
    if invalid_kind:
        return BackendResolution(
            "InvalidKind", f"Unsupported backend kinds: {', '.join(invalid_kind)}"
        )
    if missing:
        return BackendResolution(
            "BackendNotFound", f"Services not found: {', '.join(missing)}"
        )
    return BackendResolution()


# =============================================================================
# Reconciliation
# =============================================================================


def _find_gateway(
    ctx: ReconcileContext, key: NamespacedName
) -> tuple[str, GatewayRecord] | None:
    for class_name, entry in ctx.store.items():
        gateway = entry.gateway(key)
        if gateway is not None:
            return class_name, gateway
    return None


def _terminating(body: Mapping[str, Any]) -> bool:
    return bool((body.get("metadata") or {}).get("deletionTimestamp"))


def reconcile_route(ctx: ReconcileContext, notification: Notification) -> None:
    """Reconcile one HTTPRoute or TLSRoute."""
    kind = notification.kind
    key = RouteKey(kind, notification.namespace or "", notification.name)
    lookups = ctx.lookups()

    body = None
    if not notification.deleted:
        body = ctx.cluster.get(kind, key.namespace, key.name)

    previous_parents: set[NamespacedName] = set()
    for _, entry in ctx.store.items():
        previous = entry.route(key)
        if previous is not None:
            previous_parents |= previous.parent_keys()

    if body is None or _terminating(body):
        for class_name in ctx.store.keys():
            if apply_route_change(ctx, class_name, key, None, lookups):
                logger.info(f"Removed {key} from {class_name}")
        _enqueue_gateways(ctx, previous_parents)
        return

    route = RouteRecord.from_object(kind, body)
    problems = validate_filters(route)
    backends = resolve_backends(ctx, route, lookups)
    valid = not problems and backends.permitted
    if problems:
        logger.warning(f"{key} is invalid: {'; '.join(problems)}")
    labels = lookups.namespace_labels(route.namespace)

    def belongs(entry: Resources) -> bool:
        return valid and attaches_to_entry(route, entry, labels)

    for class_name in ctx.store.keys():
        if apply_route_change(ctx, class_name, key, route, lookups, belongs):
            entry = ctx.load_entry(class_name)
            if entry is not None and entry.route(key) is not None:
                logger.info(f"Updated {key} in {class_name}")
            else:
                logger.info(f"Removed {key} from {class_name}")

    parents = _parent_statuses(ctx, route, problems, backends, labels)
    ctx.status.sync_route(kind, body, parents)
    _enqueue_gateways(ctx, previous_parents | route.parent_keys())


def _parent_statuses(
    ctx: ReconcileContext,
    route: RouteRecord,
    problems: list[str],
    backends: BackendResolution,
    labels: Mapping[str, str],
) -> list[RouteParentStatus]:
    resolved_refs = Condition(
        type="ResolvedRefs",
        status=ConditionStatus.TRUE if backends.resolved else ConditionStatus.FALSE,
        reason=backends.reason,
        message=backends.message,
    )

    statuses = []
    for ref in route.parent_refs:
        gateway_key = ref.gateway_key(route.namespace)
        found = _find_gateway(ctx, gateway_key) if gateway_key else None
        if found is None:
            # Not one of our Gateways
            continue
        _, gateway = found

        if problems:
            accepted = Condition(
                "Accepted", ConditionStatus.FALSE, "UnsupportedValue", "; ".join(problems)
            )
        elif not backends.permitted:
            accepted = Condition(
                "Accepted", ConditionStatus.FALSE, "UnsupportedValue", backends.message
            )
        else:
            listeners, reason = attached_listeners(route, ref, gateway, labels)
            if listeners:
                accepted = Condition(
                    "Accepted", ConditionStatus.TRUE, "Accepted", "Route is accepted"
                )
            else:
                accepted = Condition(
                    "Accepted",
                    ConditionStatus.FALSE,
                    reason,
                    f"No listener of Gateway {gateway_key} accepts this route",
                )
        statuses.append(RouteParentStatus(ref, (accepted, resolved_refs)))
    return statuses


def _enqueue_gateways(ctx: ReconcileContext, keys: set[NamespacedName]) -> None:
    for key in sorted(keys):
        ctx.enqueue_object(Kind.GATEWAY, key.namespace, key.name)
