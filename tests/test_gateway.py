"""Tests for Gateway status helpers."""

from models import (
    ConditionStatus,
    GatewayAddress,
    GatewayClassRecord,
    GatewayRecord,
    Kind,
    Listener,
    NamespaceRecord,
    Resources,
    RouteRecord,
)
from resources.gateway import (
    available_replicas,
    count_attached_routes,
    gateway_conditions,
    listener_statuses,
    service_addresses,
)

from conftest import http_route, parent


def _by_type(conditions):
    return {c.type: c for c in conditions}


class TestServiceAddresses:
    """Tests for service_addresses function."""

    def test_none(self):
        assert service_addresses(None) == []

    def test_load_balancer_ingress_first(self):
        body = {
            "spec": {"clusterIP": "10.96.0.10", "externalIPs": ["192.0.2.1"]},
            "status": {
                "loadBalancer": {"ingress": [{"ip": "203.0.113.5"}, {"hostname": "lb.example.com"}]}
            },
        }

        assert service_addresses(body) == [
            GatewayAddress("IPAddress", "203.0.113.5"),
            GatewayAddress("Hostname", "lb.example.com"),
            GatewayAddress("IPAddress", "192.0.2.1"),
        ]

    def test_duplicates_removed(self):
        body = {
            "spec": {"externalIPs": ["203.0.113.5"]},
            "status": {"loadBalancer": {"ingress": [{"ip": "203.0.113.5"}]}},
        }

        assert service_addresses(body) == [GatewayAddress("IPAddress", "203.0.113.5")]

    def test_cluster_ip_fallback(self):
        body = {"spec": {"clusterIP": "10.96.0.10"}}
        assert service_addresses(body) == [GatewayAddress("IPAddress", "10.96.0.10")]

    def test_headless_service_has_no_address(self):
        assert service_addresses({"spec": {"clusterIP": "None"}}) == []


class TestGatewayConditions:
    """Tests for gateway_conditions function."""

    gateway = GatewayRecord("ns1", "gw1", "gc1", (Listener("http", 80, "HTTP"),))

    def test_programmed(self):
        conditions = _by_type(
            gateway_conditions(self.gateway, 1, [GatewayAddress("IPAddress", "1.2.3.4")])
        )

        assert conditions["Accepted"].status == ConditionStatus.TRUE
        assert conditions["Programmed"].status == ConditionStatus.TRUE

    def test_no_replicas(self):
        conditions = _by_type(gateway_conditions(self.gateway, 0, []))
        assert conditions["Programmed"].reason == "NoResources"

    def test_no_address(self):
        conditions = _by_type(gateway_conditions(self.gateway, 2, []))
        assert conditions["Programmed"].reason == "AddressNotAssigned"

    def test_no_valid_listener(self):
        gateway = GatewayRecord("ns1", "gw1", "gc1", (Listener("dns", 53, "UDP"),))
        conditions = _by_type(gateway_conditions(gateway, 1, []))

        assert conditions["Accepted"].status == ConditionStatus.FALSE
        assert conditions["Accepted"].reason == "ListenersNotValid"


class TestListenerStatuses:
    """Tests for listener status reporting."""

    def _entry(self, gateway, *routes):
        return Resources(
            gateway_class=GatewayClassRecord("gc1", "ctrl"),
            gateways=(gateway,),
            http_routes=tuple(routes),
            namespaces=(NamespaceRecord("ns1"),),
        )

    def test_attached_routes_counted_per_listener(self):
        gateway = GatewayRecord(
            "ns1",
            "gw1",
            "gc1",
            (Listener("http", 80, "HTTP"), Listener("tls", 443, "TLS")),
        )
        routes = [
            RouteRecord.from_object(Kind.HTTP_ROUTE, http_route("ns1", f"r{i}", [parent("gw1")]))
            for i in range(2)
        ]
        entry = self._entry(gateway, *routes)

        assert count_attached_routes(gateway, gateway.listeners[0], entry) == 2
        assert count_attached_routes(gateway, gateway.listeners[1], entry) == 0
        assert count_attached_routes(gateway, gateway.listeners[0], None) == 0

    def test_statuses(self):
        gateway = GatewayRecord(
            "ns1",
            "gw1",
            "gc1",
            (
                Listener("http", 80, "HTTP", allowed_kinds=("HTTPRoute", "GRPCRoute")),
                Listener("dns", 53, "UDP"),
            ),
        )
        statuses = listener_statuses(gateway, self._entry(gateway), programmed=True)

        http = _by_type(statuses[0]["conditions"])
        assert statuses[0]["supportedKinds"] == [
            {"group": "gateway.networking.k8s.io", "kind": "HTTPRoute"}
        ]
        assert http["ResolvedRefs"].reason == "InvalidRouteKinds"
        assert http["Programmed"].reason == "Programmed"

        dns = _by_type(statuses[1]["conditions"])
        assert dns["Accepted"].reason == "UnsupportedProtocol"
        assert dns["Programmed"].reason == "Invalid"
        assert statuses[1]["supportedKinds"] == []

    def test_pending_until_programmed(self):
        gateway = GatewayRecord("ns1", "gw1", "gc1", (Listener("http", 80, "HTTP"),))
        statuses = listener_statuses(gateway, None, programmed=False)

        assert _by_type(statuses[0]["conditions"])["Programmed"].reason == "Pending"


class TestAvailableReplicas:
    """Tests for available_replicas function."""

    def test_values(self):
        assert available_replicas(None) == 0
        assert available_replicas({"status": {}}) == 0
        assert available_replicas({"status": {"availableReplicas": 3}}) == 3
