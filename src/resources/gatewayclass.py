"""GatewayClass reconciliation.

A GatewayClass moves through Unseen -> PendingAccept -> Accepted ->
Terminating -> Gone. Classes naming another controller are ignored. Accepted
classes own a snapshot entry, created even when no Gateway uses the class yet,
and carry the gateway-exists finalizer for as long as that entry exists. A
terminating class keeps its finalizer until the entry holds no Gateways; the
entry is deleted first and the finalizer removed after.
"""

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from constants import GATEWAY_CLASS_FINALIZER
from models import (
    Condition,
    ConditionStatus,
    GatewayClassRecord,
    Kind,
    Notification,
    Resources,
)
from resources.context import ReconcileContext
from resources.snapshot import empty_resources
from store import DELETE

logger = logging.getLogger(__name__)


def accepted_condition() -> Condition:
    return Condition(
        type="Accepted",
        status=ConditionStatus.TRUE,
        reason="Accepted",
        message="Valid GatewayClass",
    )


def _class_gateways(ctx: ReconcileContext, class_name: str) -> list[dict]:
    """Gateways in the cluster naming a class, excluding ones being deleted."""
    result = []
    for body in ctx.list_namespaced(Kind.GATEWAY):
        if (body.get("spec") or {}).get("gatewayClassName") != class_name:
            continue
        if (body.get("metadata") or {}).get("deletionTimestamp"):
            continue
        result.append(body)
    return result


def _enqueue_gateways(ctx: ReconcileContext, bodies: list[dict]) -> None:
    for body in bodies:
        meta = body.get("metadata") or {}
        ctx.enqueue_object(Kind.GATEWAY, meta.get("namespace"), meta.get("name", ""))


def _finalize(ctx: ReconcileContext, name: str, body: Mapping[str, Any]) -> None:
    """Tear down a terminating class once its Gateways are gone.

    Without an entry, as after a restart, the cluster decides: remaining
    Gateways get the entry back so they are tracked until deleted.
    """
    finalizers = (body.get("metadata") or {}).get("finalizers") or []
    if GATEWAY_CLASS_FINALIZER not in finalizers:
        ctx.store.delete(name)
        return

    record = GatewayClassRecord.from_object(body, accepted=True)
    remaining: list[dict] | None = None
    gateways: list[int] = []
    restored: list[bool] = []

    def mutate(current: Resources | None) -> object:
        nonlocal remaining
        gateways.clear()
        restored.clear()
        if current is None:
            if remaining is None:
                remaining = _class_gateways(ctx, name)
            if not remaining:
                return None
            restored.append(True)
            return empty_resources(record)
        if current.gateways:
            gateways.append(len(current.gateways))
            return None
        return DELETE

    written = ctx.store.update(name, mutate)
    if restored:
        logger.info(
            f"GatewayClass {name} is terminating, tracking its "
            f"{len(remaining or [])} remaining Gateway(s) again"
        )
        _enqueue_gateways(ctx, remaining or [])
        return
    if written:
        logger.info(f"Deleted snapshot entry of terminating GatewayClass {name}")
    if gateways:
        logger.info(
            f"GatewayClass {name} is terminating, waiting for {gateways[0]} Gateway(s)"
        )
        return
    ctx.status.remove_finalizer(Kind.GATEWAY_CLASS, body, GATEWAY_CLASS_FINALIZER)


def reconcile_gateway_class(ctx: ReconcileContext, notification: Notification) -> None:
    """Reconcile one GatewayClass."""
    name = notification.name

    body = None
    if not notification.deleted:
        body = ctx.cluster.get(Kind.GATEWAY_CLASS, None, name)
    if body is None:
        if ctx.store.delete(name):
            logger.info(f"GatewayClass {name} is gone, deleted its snapshot entry")
        return

    controller_name = (body.get("spec") or {}).get("controllerName")
    if controller_name != ctx.controller_name:
        if ctx.store.delete(name):
            logger.info(
                f"GatewayClass {name} now belongs to {controller_name}, "
                f"deleted its snapshot entry"
            )
        ctx.status.remove_finalizer(Kind.GATEWAY_CLASS, body, GATEWAY_CLASS_FINALIZER)
        return

    if (body.get("metadata") or {}).get("deletionTimestamp"):
        _finalize(ctx, name, body)
        return

    # The finalizer goes on before the entry exists
    body = ctx.status.add_finalizer(Kind.GATEWAY_CLASS, body, GATEWAY_CLASS_FINALIZER)
    record = GatewayClassRecord.from_object(body, accepted=True)
    created: list[bool] = []

    def mutate(current: Resources | None) -> Resources | None:
        created.clear()
        if current is None:
            created.append(True)
            return empty_resources(record)
        if current.gateway_class == record:
            return None
        return replace(current, gateway_class=record)

    ctx.store.update(name, mutate)
    ctx.status.sync_gateway_class(body, [accepted_condition()])

    if created:
        logger.info(f"Accepted GatewayClass {name}")
        _enqueue_gateways(ctx, _class_gateways(ctx, name))
