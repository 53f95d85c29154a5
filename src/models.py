"""Domain models for the gateway operator.

This module defines typed projections of the watched Kubernetes objects and
the per-GatewayClass snapshot (`Resources`) handed to the downstream
translator. Records are immutable; fields that mirror object status are
excluded from equality so that two records compare equal exactly when their
spec-relevant content is equal.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from constants import GATEWAY_API_GROUP, GATEWAY_CLASS_FINALIZER


# =============================================================================
# Enums for constrained values
# =============================================================================


class Kind(Enum):
    """Watched object kinds."""

    GATEWAY_CLASS = "GatewayClass"
    GATEWAY = "Gateway"
    HTTP_ROUTE = "HTTPRoute"
    TLS_ROUTE = "TLSRoute"
    SERVICE = "Service"
    NAMESPACE = "Namespace"
    DEPLOYMENT = "Deployment"
    REFERENCE_GRANT = "ReferenceGrant"


ROUTE_KINDS = (Kind.HTTP_ROUTE, Kind.TLS_ROUTE)


class ConditionStatus(Enum):
    """Kubernetes condition status."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


# Route kinds a listener supports, by protocol
PROTOCOL_ROUTE_KINDS: dict[str, tuple[str, ...]] = {
    "HTTP": (Kind.HTTP_ROUTE.value,),
    "HTTPS": (Kind.HTTP_ROUTE.value,),
    "TLS": (Kind.TLS_ROUTE.value,),
}


# =============================================================================
# Identities
# =============================================================================


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Identity of a namespaced object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class RouteKey:
    """Identity of a route, unique across route kinds."""

    kind: Kind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


@dataclass(frozen=True)
class Notification:
    """A watch notification for one object."""

    kind: Kind
    namespace: str | None
    name: str
    deleted: bool = False

    @property
    def ref(self) -> tuple[Kind, str | None, str]:
        """Identity used to de-duplicate queued work."""
        return (self.kind, self.namespace, self.name)

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind.value} {self.namespace}/{self.name}"
        return f"{self.kind.value} {self.name}"


def _metadata(body: Mapping[str, Any]) -> Mapping[str, Any]:
    return body.get("metadata") or {}


def _spec(body: Mapping[str, Any]) -> Mapping[str, Any]:
    return body.get("spec") or {}


def _pairs(data: Mapping[str, str] | None) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((data or {}).items()))


# =============================================================================
# Label selectors
# =============================================================================


@dataclass(frozen=True)
class LabelRequirement:
    """A single matchExpressions entry."""

    key: str
    operator: str
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == "In":
            return labels.get(self.key) in self.values
        if self.operator == "NotIn":
            return labels.get(self.key) not in self.values
        if self.operator == "Exists":
            return self.key in labels
        if self.operator == "DoesNotExist":
            return self.key not in labels
        return False


@dataclass(frozen=True)
class LabelSelector:
    """Kubernetes label selector (matchLabels and matchExpressions)."""

    match_labels: tuple[tuple[str, str], ...] = ()
    match_expressions: tuple[LabelRequirement, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LabelSelector":
        return cls(
            match_labels=_pairs(data.get("matchLabels")),
            match_expressions=tuple(
                LabelRequirement(
                    key=expr.get("key", ""),
                    operator=expr.get("operator", ""),
                    values=tuple(expr.get("values") or ()),
                )
                for expr in data.get("matchExpressions") or []
            ),
        )

    def matches(self, labels: Mapping[str, str]) -> bool:
        for key, value in self.match_labels:
            if labels.get(key) != value:
                return False
        return all(expr.matches(labels) for expr in self.match_expressions)


# =============================================================================
# GatewayClass and Gateway
# =============================================================================


@dataclass(frozen=True)
class GatewayClassRecord:
    """Projection of a GatewayClass managed by this controller."""

    name: str
    controller_name: str
    description: str = ""
    accepted: bool = field(default=False, compare=False)
    finalized: bool = field(default=False, compare=False)

    @classmethod
    def from_object(
        cls, body: Mapping[str, Any], accepted: bool = False
    ) -> "GatewayClassRecord":
        meta = _metadata(body)
        spec = _spec(body)
        return cls(
            name=meta.get("name", ""),
            controller_name=spec.get("controllerName", ""),
            description=spec.get("description") or "",
            accepted=accepted,
            finalized=GATEWAY_CLASS_FINALIZER in (meta.get("finalizers") or []),
        )


@dataclass(frozen=True)
class Listener:
    """A Gateway listener."""

    name: str
    port: int
    protocol: str
    hostname: str | None = None
    allowed_namespaces: str = "Same"
    namespace_selector: LabelSelector | None = None
    allowed_kinds: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Listener":
        allowed = data.get("allowedRoutes") or {}
        namespaces = allowed.get("namespaces") or {}
        selector = namespaces.get("selector")
        return cls(
            name=data.get("name", ""),
            port=int(data.get("port", 0)),
            protocol=data.get("protocol", ""),
            hostname=data.get("hostname"),
            allowed_namespaces=namespaces.get("from", "Same"),
            namespace_selector=LabelSelector.from_dict(selector) if selector else None,
            allowed_kinds=tuple(
                kind.get("kind", "") for kind in allowed.get("kinds") or []
            ),
        )

    @property
    def valid(self) -> bool:
        """A listener is valid when its protocol is supported."""
        return self.protocol in PROTOCOL_ROUTE_KINDS

    def supported_kinds(self) -> tuple[str, ...]:
        """Route kinds that may attach to this listener."""
        kinds = PROTOCOL_ROUTE_KINDS.get(self.protocol, ())
        if self.allowed_kinds:
            kinds = tuple(k for k in kinds if k in self.allowed_kinds)
        return kinds


@dataclass(frozen=True)
class GatewayAddress:
    """An address reported in Gateway status."""

    type: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "value": self.value}


@dataclass(frozen=True)
class GatewayRecord:
    """Projection of a Gateway.

    `addresses` and `programmed` are computed from the generated workload,
    never read back from the Gateway's own status, so they take part in
    equality without a status write feeding back into a snapshot write.
    """

    namespace: str
    name: str
    gateway_class_name: str
    listeners: tuple[Listener, ...] = ()
    addresses: tuple[GatewayAddress, ...] = ()
    programmed: bool = False

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    @classmethod
    def from_object(cls, body: Mapping[str, Any]) -> "GatewayRecord":
        meta = _metadata(body)
        spec = _spec(body)
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            gateway_class_name=spec.get("gatewayClassName", ""),
            listeners=tuple(
                Listener.from_dict(item) for item in spec.get("listeners") or []
            ),
        )

    def listener(self, name: str) -> Listener | None:
        for listener in self.listeners:
            if listener.name == name:
                return listener
        return None


# =============================================================================
# Route references
# =============================================================================


@dataclass(frozen=True)
class ParentRef:
    """A route parentRef."""

    name: str
    namespace: str | None = None
    section_name: str | None = None
    port: int | None = None
    group: str = GATEWAY_API_GROUP
    kind: str = "Gateway"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ParentRef":
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace"),
            section_name=data.get("sectionName"),
            port=data.get("port"),
            group=data.get("group", GATEWAY_API_GROUP),
            kind=data.get("kind", "Gateway"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "group": self.group,
            "kind": self.kind,
            "name": self.name,
        }
        if self.namespace:
            result["namespace"] = self.namespace
        if self.section_name:
            result["sectionName"] = self.section_name
        if self.port is not None:
            result["port"] = self.port
        return result

    def gateway_key(self, route_namespace: str) -> NamespacedName | None:
        """The Gateway this reference points at, if it points at one."""
        if self.group != GATEWAY_API_GROUP or self.kind != "Gateway":
            return None
        return NamespacedName(self.namespace or route_namespace, self.name)


@dataclass(frozen=True)
class BackendRef:
    """A route backendRef."""

    name: str
    namespace: str | None = None
    port: int | None = None
    weight: int = 1
    group: str = ""
    kind: str = "Service"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackendRef":
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace"),
            port=data.get("port"),
            weight=data.get("weight", 1),
            group=data.get("group", ""),
            kind=data.get("kind", "Service"),
        )

    @property
    def is_service(self) -> bool:
        return self.group in ("", "core") and self.kind == "Service"

    def service_key(self, route_namespace: str) -> NamespacedName:
        return NamespacedName(self.namespace or route_namespace, self.name)


# =============================================================================
# HTTPRoute payload
# =============================================================================


@dataclass(frozen=True)
class PathMatch:
    type: str = "PathPrefix"
    value: str = "/"


@dataclass(frozen=True)
class ValueMatch:
    """Header or query parameter match."""

    name: str
    value: str
    type: str = "Exact"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValueMatch":
        return cls(
            name=data.get("name", ""),
            value=data.get("value", ""),
            type=data.get("type", "Exact"),
        )


@dataclass(frozen=True)
class HTTPRouteMatch:
    path: PathMatch | None = None
    headers: tuple[ValueMatch, ...] = ()
    query_params: tuple[ValueMatch, ...] = ()
    method: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HTTPRouteMatch":
        path = data.get("path")
        return cls(
            path=(
                PathMatch(
                    type=path.get("type", "PathPrefix"), value=path.get("value", "/")
                )
                if path
                else None
            ),
            headers=tuple(ValueMatch.from_dict(h) for h in data.get("headers") or []),
            query_params=tuple(
                ValueMatch.from_dict(q) for q in data.get("queryParams") or []
            ),
            method=data.get("method"),
        )


@dataclass(frozen=True)
class HeaderModifier:
    add: tuple[tuple[str, str], ...] = ()
    set: tuple[tuple[str, str], ...] = ()
    remove: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HeaderModifier":
        return cls(
            add=tuple((h.get("name", ""), h.get("value", "")) for h in data.get("add") or []),
            set=tuple((h.get("name", ""), h.get("value", "")) for h in data.get("set") or []),
            remove=tuple(data.get("remove") or ()),
        )

    def header_names(self) -> list[str]:
        """All header names touched, lower-cased, duplicates kept."""
        names = [name for name, _ in self.add] + [name for name, _ in self.set]
        return [name.lower() for name in names + list(self.remove)]


@dataclass(frozen=True)
class PathModifier:
    """ReplaceFullPath or ReplacePrefixMatch."""

    type: str
    value: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PathModifier":
        modifier_type = data.get("type", "")
        if modifier_type == "ReplaceFullPath":
            value = data.get("replaceFullPath")
        else:
            value = data.get("replacePrefixMatch")
        return cls(type=modifier_type, value=value)


@dataclass(frozen=True)
class RequestRedirect:
    scheme: str | None = None
    hostname: str | None = None
    path: PathModifier | None = None
    port: int | None = None
    status_code: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestRedirect":
        path = data.get("path")
        return cls(
            scheme=data.get("scheme"),
            hostname=data.get("hostname"),
            path=PathModifier.from_dict(path) if path else None,
            port=data.get("port"),
            status_code=data.get("statusCode"),
        )


@dataclass(frozen=True)
class URLRewrite:
    hostname: str | None = None
    path: PathModifier | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "URLRewrite":
        path = data.get("path")
        return cls(
            hostname=data.get("hostname"),
            path=PathModifier.from_dict(path) if path else None,
        )


@dataclass(frozen=True)
class RouteFilter:
    """An HTTPRoute filter; exactly one payload is expected for its type."""

    type: str
    request_header_modifier: HeaderModifier | None = None
    response_header_modifier: HeaderModifier | None = None
    request_redirect: RequestRedirect | None = None
    url_rewrite: URLRewrite | None = None
    request_mirror: BackendRef | None = None
    extension_ref: tuple[tuple[str, str], ...] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RouteFilter":
        request_headers = data.get("requestHeaderModifier")
        response_headers = data.get("responseHeaderModifier")
        redirect = data.get("requestRedirect")
        rewrite = data.get("urlRewrite")
        mirror = data.get("requestMirror")
        extension = data.get("extensionRef")
        return cls(
            type=data.get("type", ""),
            request_header_modifier=(
                HeaderModifier.from_dict(request_headers) if request_headers else None
            ),
            response_header_modifier=(
                HeaderModifier.from_dict(response_headers) if response_headers else None
            ),
            request_redirect=RequestRedirect.from_dict(redirect) if redirect else None,
            url_rewrite=URLRewrite.from_dict(rewrite) if rewrite else None,
            request_mirror=(
                BackendRef.from_dict(mirror.get("backendRef") or {}) if mirror else None
            ),
            extension_ref=_pairs(extension) if extension else None,
        )


@dataclass(frozen=True)
class HTTPRouteRule:
    matches: tuple[HTTPRouteMatch, ...] = ()
    filters: tuple[RouteFilter, ...] = ()
    backend_refs: tuple[BackendRef, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HTTPRouteRule":
        return cls(
            matches=tuple(HTTPRouteMatch.from_dict(m) for m in data.get("matches") or []),
            filters=tuple(RouteFilter.from_dict(f) for f in data.get("filters") or []),
            backend_refs=tuple(
                BackendRef.from_dict(b) for b in data.get("backendRefs") or []
            ),
        )

    def referenced_backends(self) -> tuple[BackendRef, ...]:
        """Backend refs plus RequestMirror targets."""
        mirrors = tuple(f.request_mirror for f in self.filters if f.request_mirror)
        return self.backend_refs + mirrors


@dataclass(frozen=True)
class TLSRouteRule:
    backend_refs: tuple[BackendRef, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TLSRouteRule":
        return cls(
            backend_refs=tuple(
                BackendRef.from_dict(b) for b in data.get("backendRefs") or []
            )
        )

    def referenced_backends(self) -> tuple[BackendRef, ...]:
        return self.backend_refs


_RULE_PARSERS = {
    Kind.HTTP_ROUTE: HTTPRouteRule.from_dict,
    Kind.TLS_ROUTE: TLSRouteRule.from_dict,
}


@dataclass(frozen=True)
class RouteRecord:
    """Projection of a route of any kind.

    `kind` selects the rule payload type; parent and backend extraction is
    shared by every kind.
    """

    kind: Kind
    namespace: str
    name: str
    parent_refs: tuple[ParentRef, ...] = ()
    hostnames: tuple[str, ...] = ()
    rules: tuple[HTTPRouteRule, ...] | tuple[TLSRouteRule, ...] = ()

    @property
    def key(self) -> RouteKey:
        return RouteKey(self.kind, self.namespace, self.name)

    @classmethod
    def from_object(cls, kind: Kind, body: Mapping[str, Any]) -> "RouteRecord":
        if kind not in _RULE_PARSERS:
            raise ValueError(f"{kind.value} is not a route kind")
        parse_rule = _RULE_PARSERS[kind]
        meta = _metadata(body)
        spec = _spec(body)
        return cls(
            kind=kind,
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            parent_refs=tuple(
                ParentRef.from_dict(p) for p in spec.get("parentRefs") or []
            ),
            hostnames=tuple(spec.get("hostnames") or ()),
            rules=tuple(parse_rule(r) for r in spec.get("rules") or []),
        )

    def parent_keys(self) -> frozenset[NamespacedName]:
        keys = (ref.gateway_key(self.namespace) for ref in self.parent_refs)
        return frozenset(key for key in keys if key is not None)

    def backend_refs(self) -> tuple[BackendRef, ...]:
        return tuple(ref for rule in self.rules for ref in rule.referenced_backends())

    def backend_keys(self) -> frozenset[NamespacedName]:
        """Services referenced by this route."""
        return frozenset(
            ref.service_key(self.namespace)
            for ref in self.backend_refs()
            if ref.is_service
        )


# =============================================================================
# Service and Namespace projections
# =============================================================================


@dataclass(frozen=True)
class ServicePort:
    name: str
    port: int
    protocol: str = "TCP"
    target_port: int | str | None = None


@dataclass(frozen=True)
class ServiceRecord:
    """Projection of a backend Service."""

    namespace: str
    name: str
    ports: tuple[ServicePort, ...] = ()

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    @classmethod
    def from_object(cls, body: Mapping[str, Any]) -> "ServiceRecord":
        meta = _metadata(body)
        spec = _spec(body)
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            ports=tuple(
                ServicePort(
                    name=p.get("name") or "",
                    port=int(p.get("port", 0)),
                    protocol=p.get("protocol") or "TCP",
                    target_port=p.get("targetPort"),
                )
                for p in spec.get("ports") or []
            ),
        )


@dataclass(frozen=True)
class NamespaceRecord:
    """Projection of a Namespace."""

    name: str
    labels: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_object(cls, body: Mapping[str, Any]) -> "NamespaceRecord":
        meta = _metadata(body)
        return cls(name=meta.get("name", ""), labels=_pairs(meta.get("labels")))

    @property
    def label_map(self) -> dict[str, str]:
        return dict(self.labels)


# =============================================================================
# Backend reference map
# =============================================================================


class BackendReferences:
    """Immutable map of Service identity to the routes referencing it.

    Every change returns a new instance; the instance stored in a snapshot is
    never mutated, so it can only change through the store's read-modify-write
    loop.
    """

    __slots__ = ("_refs",)

    def __init__(
        self, refs: Mapping[NamespacedName, Iterable[RouteKey]] | None = None
    ) -> None:
        self._refs: dict[NamespacedName, frozenset[RouteKey]] = {
            service: frozenset(routes)
            for service, routes in (refs or {}).items()
            if routes
        }

    @classmethod
    def from_routes(cls, routes: Iterable[RouteRecord]) -> "BackendReferences":
        refs: dict[NamespacedName, set[RouteKey]] = {}
        for route in routes:
            for service in route.backend_keys():
                refs.setdefault(service, set()).add(route.key)
        return cls(refs)

    def routes_for(self, service: NamespacedName) -> frozenset[RouteKey]:
        return self._refs.get(service, frozenset())

    def services_for(self, route: RouteKey) -> frozenset[NamespacedName]:
        return frozenset(s for s, routes in self._refs.items() if route in routes)

    def services(self) -> frozenset[NamespacedName]:
        return frozenset(self._refs)

    def on_route_changed(
        self,
        route: RouteKey,
        old_backends: Iterable[NamespacedName],
        new_backends: Iterable[NamespacedName],
    ) -> tuple["BackendReferences", frozenset[NamespacedName], frozenset[NamespacedName]]:
        """Move `route` from its old backends to its new ones.

        Returns the new map, the Services whose referencing set became
        non-empty and the Services whose referencing set became empty.
        """
        new_set = frozenset(new_backends)
        # Anything the map still attributes to the route is treated as old
        stale = (frozenset(old_backends) | self.services_for(route)) - new_set

        refs = dict(self._refs)
        added: set[NamespacedName] = set()
        removed: set[NamespacedName] = set()
        for service in stale:
            routes = refs.get(service, frozenset()) - {route}
            if routes:
                refs[service] = routes
            elif service in refs:
                del refs[service]
                removed.add(service)
        for service in new_set:
            routes = refs.get(service, frozenset())
            if not routes:
                added.add(service)
            refs[service] = routes | {route}
        return BackendReferences(refs), frozenset(added), frozenset(removed)

    def __contains__(self, service: object) -> bool:
        return service in self._refs

    def __len__(self) -> int:
        return len(self._refs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BackendReferences):
            return NotImplemented
        return self._refs == other._refs

    def __hash__(self) -> int:
        return hash(frozenset(self._refs.items()))

    def __repr__(self) -> str:
        items = ", ".join(
            f"{service}: {len(routes)}" for service, routes in sorted(self._refs.items())
        )
        return f"BackendReferences({{{items}}})"


# =============================================================================
# Snapshot
# =============================================================================


_ROUTE_FIELDS = {
    Kind.HTTP_ROUTE: "http_routes",
    Kind.TLS_ROUTE: "tls_routes",
}


@dataclass(frozen=True)
class Resources:
    """The snapshot of translator inputs for one GatewayClass."""

    gateway_class: GatewayClassRecord
    gateways: tuple[GatewayRecord, ...] = ()
    http_routes: tuple[RouteRecord, ...] = ()
    tls_routes: tuple[RouteRecord, ...] = ()
    services: tuple[ServiceRecord, ...] = ()
    namespaces: tuple[NamespaceRecord, ...] = ()
    references: BackendReferences = field(
        default_factory=BackendReferences, compare=False
    )

    @property
    def name(self) -> str:
        return self.gateway_class.name

    def routes(self) -> tuple[RouteRecord, ...]:
        return self.http_routes + self.tls_routes

    def routes_of(self, kind: Kind) -> tuple[RouteRecord, ...]:
        return getattr(self, _ROUTE_FIELDS[kind])

    def with_routes(self, kind: Kind, routes: Iterable[RouteRecord]) -> "Resources":
        return replace(self, **{_ROUTE_FIELDS[kind]: tuple(routes)})

    def gateway(self, key: NamespacedName) -> GatewayRecord | None:
        for gateway in self.gateways:
            if gateway.key == key:
                return gateway
        return None

    def route(self, key: RouteKey) -> RouteRecord | None:
        for route in self.routes_of(key.kind):
            if route.key == key:
                return route
        return None

    def service(self, key: NamespacedName) -> ServiceRecord | None:
        for service in self.services:
            if service.key == key:
                return service
        return None

    def namespace(self, name: str) -> NamespaceRecord | None:
        for namespace in self.namespaces:
            if namespace.name == name:
                return namespace
        return None


# =============================================================================
# Status
# =============================================================================


@dataclass(frozen=True)
class Condition:
    """Kubernetes-style condition."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""
    observed_generation: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for Kubernetes status."""
        result: dict[str, Any] = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
        }
        if self.observed_generation is not None:
            result["observedGeneration"] = self.observed_generation
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        """Create from Kubernetes status dict."""
        try:
            status = ConditionStatus(data.get("status", "Unknown"))
        except ValueError:
            status = ConditionStatus.UNKNOWN
        return cls(
            type=data.get("type", ""),
            status=status,
            reason=data.get("reason") or "",
            message=data.get("message") or "",
            last_transition_time=data.get("lastTransitionTime") or "",
            observed_generation=data.get("observedGeneration"),
        )

    def digest(self) -> tuple[str, str, str, str, int | None]:
        """Semantic content, ignoring the transition time."""
        return (
            self.type,
            self.status.value,
            self.reason,
            self.message,
            self.observed_generation,
        )


@dataclass(frozen=True)
class RouteParentStatus:
    """Status of a route for one of its parents."""

    parent_ref: ParentRef
    conditions: tuple[Condition, ...] = ()


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class ConflictError(OperatorError):
    """A write was rejected because the object or entry changed concurrently."""

    pass


class TransientError(OperatorError):
    """Cluster I/O failed in a way that is worth retrying."""

    pass


class InvariantError(OperatorError):
    """The snapshot or cluster state violates an invariant."""

    pass

