"""Kopf handlers for Gateway API resources."""

from typing import Any

import kopf

from constants import GATEWAY_API_GROUP
from handlers.events import notify
from models import Kind


@kopf.on.event(GATEWAY_API_GROUP, "v1", "gatewayclasses")
def gateway_class_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.GATEWAY_CLASS, event)


@kopf.on.event(GATEWAY_API_GROUP, "v1", "gateways")
def gateway_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.GATEWAY, event)


@kopf.on.event(GATEWAY_API_GROUP, "v1", "httproutes")
def http_route_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.HTTP_ROUTE, event)


@kopf.on.event(GATEWAY_API_GROUP, "v1alpha2", "tlsroutes")
def tls_route_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.TLS_ROUTE, event)


@kopf.on.event(GATEWAY_API_GROUP, "v1beta1", "referencegrants")
def reference_grant_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.REFERENCE_GRANT, event)
