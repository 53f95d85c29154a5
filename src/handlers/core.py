"""Kopf handlers for the core objects snapshots depend on."""

from typing import Any

import kopf

from handlers.events import notify
from models import Kind


@kopf.on.event("v1", "services")
def service_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.SERVICE, event)


@kopf.on.event("v1", "namespaces")
def namespace_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.NAMESPACE, event)


@kopf.on.event("apps", "v1", "deployments")
def deployment_event(event: kopf.RawEvent, **_: Any) -> None:
    notify(Kind.DEPLOYMENT, event)
