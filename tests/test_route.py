"""Tests for route attachment and validation."""

from models import (
    GatewayRecord,
    Kind,
    LabelSelector,
    Listener,
    ParentRef,
    RouteRecord,
)
from resources.route import (
    attached_listeners,
    hostnames_intersect,
    namespace_allowed,
    resolve_backends,
    validate_filters,
)

from conftest import backend, http_route, parent, reference_grant, service, tls_route


def _gateway(*listeners, namespace="infra"):
    return GatewayRecord(namespace, "gw1", "gc1", tuple(listeners))


def _route(hostnames=None, namespace="infra", filters=None, backends=None):
    return RouteRecord.from_object(
        Kind.HTTP_ROUTE,
        http_route(namespace, "r1", [parent("gw1")], backends, filters=filters, hostnames=hostnames),
    )


class TestHostnames:
    """Tests for hostname intersection."""

    def test_listener_without_hostname_matches_all(self):
        assert hostnames_intersect(Listener("http", 80, "HTTP"), ("a.example.com",))

    def test_route_without_hostnames_matches(self):
        listener = Listener("http", 80, "HTTP", hostname="a.example.com")
        assert hostnames_intersect(listener, ())

    def test_exact(self):
        listener = Listener("http", 80, "HTTP", hostname="a.example.com")

        assert hostnames_intersect(listener, ("a.example.com",))
        assert not hostnames_intersect(listener, ("b.example.com",))

    def test_wildcard_listener(self):
        listener = Listener("http", 80, "HTTP", hostname="*.example.com")

        assert hostnames_intersect(listener, ("a.example.com",))
        assert not hostnames_intersect(listener, ("example.org",))

    def test_wildcard_route(self):
        listener = Listener("http", 80, "HTTP", hostname="a.example.com")
        assert hostnames_intersect(listener, ("*.example.com",))


class TestNamespaceAllowed:
    """Tests for allowedRoutes.namespaces."""

    def test_same(self):
        listener = Listener("http", 80, "HTTP")
        gateway = _gateway(listener)

        assert namespace_allowed(listener, gateway, "infra", {})
        assert not namespace_allowed(listener, gateway, "apps", {})

    def test_all(self):
        listener = Listener("http", 80, "HTTP", allowed_namespaces="All")
        assert namespace_allowed(listener, _gateway(listener), "apps", {})

    def test_selector(self):
        listener = Listener(
            "http",
            80,
            "HTTP",
            allowed_namespaces="Selector",
            namespace_selector=LabelSelector(match_labels=(("team", "a"),)),
        )
        gateway = _gateway(listener)

        assert namespace_allowed(listener, gateway, "apps", {"team": "a"})
        assert not namespace_allowed(listener, gateway, "apps", {"team": "b"})

    def test_selector_without_selector_denies(self):
        listener = Listener("http", 80, "HTTP", allowed_namespaces="Selector")
        assert not namespace_allowed(listener, _gateway(listener), "apps", {})


class TestAttachedListeners:
    """Tests for attached_listeners function."""

    def test_attaches(self):
        gateway = _gateway(Listener("http", 80, "HTTP"))
        listeners, reason = attached_listeners(_route(), ParentRef("gw1"), gateway, {})

        assert [l.name for l in listeners] == ["http"]
        assert reason == ""

    def test_section_name_selects_listener(self):
        gateway = _gateway(Listener("a", 80, "HTTP"), Listener("b", 81, "HTTP"))
        listeners, _ = attached_listeners(
            _route(), ParentRef("gw1", section_name="b"), gateway, {}
        )

        assert [l.name for l in listeners] == ["b"]

    def test_unknown_section_name(self):
        gateway = _gateway(Listener("http", 80, "HTTP"))
        listeners, reason = attached_listeners(
            _route(), ParentRef("gw1", section_name="missing"), gateway, {}
        )

        assert listeners == []
        assert reason == "NoMatchingParent"

    def test_wrong_route_kind(self):
        gateway = _gateway(Listener("tls", 443, "TLS"))
        _, reason = attached_listeners(_route(), ParentRef("gw1"), gateway, {})

        assert reason == "NotAllowedByListeners"

    def test_tls_route_on_tls_listener(self):
        route = RouteRecord.from_object(
            Kind.TLS_ROUTE, tls_route("infra", "t1", [parent("gw1")], [backend("svc1")])
        )
        gateway = _gateway(Listener("http", 80, "HTTP"), Listener("tls", 443, "TLS"))
        listeners, _ = attached_listeners(route, ParentRef("gw1"), gateway, {})

        assert [l.name for l in listeners] == ["tls"]

    def test_other_namespace_not_allowed(self):
        gateway = _gateway(Listener("http", 80, "HTTP"))
        _, reason = attached_listeners(
            _route(namespace="apps"), ParentRef("gw1", namespace="infra"), gateway, {}
        )

        assert reason == "NotAllowedByListeners"

    def test_hostname_mismatch(self):
        gateway = _gateway(Listener("http", 80, "HTTP", hostname="a.example.com"))
        _, reason = attached_listeners(
            _route(hostnames=["b.example.com"]), ParentRef("gw1"), gateway, {}
        )

        assert reason == "NoMatchingListenerHostname"


class TestValidateFilters:
    """Tests for validate_filters function."""

    def test_valid_filters(self):
        route = _route(
            filters=[
                {
                    "type": "RequestHeaderModifier",
                    "requestHeaderModifier": {
                        "set": [{"name": "X-A", "value": "1"}],
                        "remove": ["X-B"],
                    },
                },
                {
                    "type": "URLRewrite",
                    "urlRewrite": {"path": {"type": "ReplacePrefixMatch", "replacePrefixMatch": "/v2"}},
                },
            ]
        )

        assert validate_filters(route) == []

    def test_unsupported_type(self):
        route = _route(filters=[{"type": "Teleport"}])
        assert "unsupported filter type" in validate_filters(route)[0]

    def test_payload_mismatch(self):
        route = _route(
            filters=[{"type": "URLRewrite", "requestRedirect": {"scheme": "https"}}]
        )
        assert "only its own configuration" in validate_filters(route)[0]

    def test_modifier_without_headers(self):
        route = _route(
            filters=[{"type": "ResponseHeaderModifier", "responseHeaderModifier": {"add": []}}]
        )
        assert "modifies no headers" in validate_filters(route)[0]

    def test_duplicate_header_names(self):
        route = _route(
            filters=[
                {
                    "type": "RequestHeaderModifier",
                    "requestHeaderModifier": {
                        "add": [{"name": "X-A", "value": "1"}],
                        "remove": ["x-a"],
                    },
                }
            ]
        )
        assert "more than once" in validate_filters(route)[0]

    def test_empty_header_name(self):
        route = _route(
            filters=[
                {
                    "type": "RequestHeaderModifier",
                    "requestHeaderModifier": {"set": [{"name": "", "value": "1"}]},
                }
            ]
        )
        assert "empty header name" in validate_filters(route)[0]

    def test_repeated_singleton_filter(self):
        modifier = {
            "type": "RequestHeaderModifier",
            "requestHeaderModifier": {"remove": ["X-A"]},
        }
        route = _route(filters=[modifier, modifier])

        assert any("more than one" in p for p in validate_filters(route))

    def test_redirect_with_rewrite(self):
        route = _route(
            filters=[
                {"type": "RequestRedirect", "requestRedirect": {"scheme": "https"}},
                {"type": "URLRewrite", "urlRewrite": {"hostname": "b.example.com"}},
            ]
        )

        assert any("cannot be combined" in p for p in validate_filters(route))

    def test_mirror_may_repeat(self):
        mirror = {"type": "RequestMirror", "requestMirror": {"backendRef": {"name": "m"}}}
        assert validate_filters(_route(filters=[mirror, mirror])) == []

    def test_tls_routes_have_no_filters(self):
        route = RouteRecord.from_object(
            Kind.TLS_ROUTE, tls_route("infra", "t1", [parent("gw1")], [backend("svc1")])
        )
        assert validate_filters(route) == []


class TestResolveBackends:
    """Tests for resolve_backends function."""

    def test_resolved(self, harness):
        harness.cluster.apply(Kind.SERVICE, service("apps", "svc1"))
        route = _route(namespace="apps", backends=[backend("svc1")])

        result = resolve_backends(harness.ctx, route, harness.ctx.lookups())

        assert result.resolved
        assert result.permitted

    def test_missing_service(self, harness):
        route = _route(namespace="apps", backends=[backend("svc1")])
        result = resolve_backends(harness.ctx, route, harness.ctx.lookups())

        assert result.reason == "BackendNotFound"
        assert result.permitted

    def test_invalid_kind(self, harness):
        route = _route(
            namespace="apps", backends=[{"name": "b", "group": "s3.io", "kind": "Bucket"}]
        )
        assert resolve_backends(harness.ctx, route, harness.ctx.lookups()).reason == "InvalidKind"

    def test_cross_namespace_needs_grant(self, harness):
        harness.cluster.apply(Kind.SERVICE, service("backends", "svc1"))
        route = _route(namespace="apps", backends=[backend("svc1", namespace="backends")])

        result = resolve_backends(harness.ctx, route, harness.ctx.lookups())

        assert result.reason == "RefNotPermitted"
        assert not result.permitted

    def test_cross_namespace_with_grant(self, harness):
        harness.cluster.apply(Kind.SERVICE, service("backends", "svc1"))
        harness.cluster.apply(
            Kind.REFERENCE_GRANT, reference_grant("backends", "allow-apps", "apps")
        )
        route = _route(namespace="apps", backends=[backend("svc1", namespace="backends")])

        assert resolve_backends(harness.ctx, route, harness.ctx.lookups()).resolved

    def test_grant_for_other_service_name(self, harness):
        harness.cluster.apply(Kind.SERVICE, service("backends", "svc1"))
        harness.cluster.apply(
            Kind.REFERENCE_GRANT,
            reference_grant("backends", "allow-apps", "apps", to_name="other"),
        )
        route = _route(namespace="apps", backends=[backend("svc1", namespace="backends")])

        assert not resolve_backends(harness.ctx, route, harness.ctx.lookups()).permitted

    def test_grant_for_other_route_kind(self, harness):
        harness.cluster.apply(Kind.SERVICE, service("backends", "svc1"))
        harness.cluster.apply(
            Kind.REFERENCE_GRANT,
            reference_grant("backends", "allow-apps", "apps", from_kind="TLSRoute"),
        )
        route = _route(namespace="apps", backends=[backend("svc1", namespace="backends")])

        assert not resolve_backends(harness.ctx, route, harness.ctx.lookups()).permitted
