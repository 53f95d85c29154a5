"""Status and finalizer writes with diff-before-write.

Status writes produce watch events of their own. Every method compares the
desired state with the freshest read of the object by semantic content
(condition type, status, reason, message and observed generation; addresses in
order; listener status) and only writes when they differ. Writes carry the
resourceVersion that was read, so a concurrent change surfaces as
ConflictError and the object is reconciled again.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from cluster import ClusterClient
from constants import GATEWAY_API_GROUP
from metrics import STATUS_WRITES
from models import (
    Condition,
    ConflictError,
    GatewayAddress,
    Kind,
    ParentRef,
    RouteParentStatus,
)
from utils import merge_conditions

logger = logging.getLogger(__name__)

Body = Mapping[str, Any]


def _conditions(data: Iterable[Mapping[str, Any]] | None) -> list[Condition]:
    return [Condition.from_dict(c) for c in data or []]


def _digest(conditions: Iterable[Condition]) -> tuple:
    return tuple(sorted(c.digest() for c in conditions))


def _with_generation(
    conditions: Iterable[Condition], generation: int | None
) -> list[Condition]:
    return [
        c if c.observed_generation is not None else replace(c, observed_generation=generation)
        for c in conditions
    ]


def _parent_key(data: Mapping[str, Any]) -> tuple:
    return tuple(sorted(ParentRef.from_dict(data).to_dict().items()))


class StatusSynchronizer:
    """Writes conditions, addresses and finalizers back to source objects."""

    def __init__(self, cluster: ClusterClient, controller_name: str) -> None:
        self.cluster = cluster
        self.controller_name = controller_name

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def sync_gateway_class(self, body: Body, conditions: Sequence[Condition]) -> bool:
        """Write GatewayClass conditions if they changed."""
        current = _conditions((body.get("status") or {}).get("conditions"))
        desired = merge_conditions(
            current, _with_generation(conditions, _generation(body))
        )
        if _digest(current) == _digest(desired):
            return self._skipped(Kind.GATEWAY_CLASS)
        return self._write(
            Kind.GATEWAY_CLASS,
            body,
            {"conditions": [c.to_dict() for c in desired]},
        )

    def sync_gateway(
        self,
        body: Body,
        conditions: Sequence[Condition],
        addresses: Sequence[GatewayAddress],
        listeners: Sequence[Mapping[str, Any]],
    ) -> bool:
        """Write Gateway conditions, addresses and listener status if changed.

        `listeners` entries hold name, supportedKinds, attachedRoutes and a
        list of Condition objects under "conditions".
        """
        status = body.get("status") or {}
        generation = _generation(body)

        current_conditions = _conditions(status.get("conditions"))
        desired_conditions = merge_conditions(
            current_conditions, _with_generation(conditions, generation)
        )

        current_addresses = [
            (a.get("type", "IPAddress"), a.get("value", ""))
            for a in status.get("addresses") or []
        ]
        desired_addresses = [(a.type, a.value) for a in addresses]

        current_listeners = {
            item.get("name", ""): item for item in status.get("listeners") or []
        }
        desired_listeners = []
        listeners_changed = [item.get("name") for item in status.get("listeners") or []] != [
            item["name"] for item in listeners
        ]
        for item in listeners:
            previous = current_listeners.get(item["name"]) or {}
            previous_conditions = _conditions(previous.get("conditions"))
            merged = merge_conditions(
                previous_conditions, _with_generation(item["conditions"], generation)
            )
            if (
                previous.get("attachedRoutes") != item["attachedRoutes"]
                or _kinds(previous.get("supportedKinds")) != _kinds(item["supportedKinds"])
                or _digest(previous_conditions) != _digest(merged)
            ):
                listeners_changed = True
            desired_listeners.append(
                {
                    "name": item["name"],
                    "supportedKinds": list(item["supportedKinds"]),
                    "attachedRoutes": item["attachedRoutes"],
                    "conditions": [c.to_dict() for c in merged],
                }
            )

        if (
            _digest(current_conditions) == _digest(desired_conditions)
            and current_addresses == desired_addresses
            and not listeners_changed
        ):
            return self._skipped(Kind.GATEWAY)

        return self._write(
            Kind.GATEWAY,
            body,
            {
                "conditions": [c.to_dict() for c in desired_conditions],
                "addresses": [a.to_dict() for a in addresses],
                "listeners": desired_listeners,
            },
        )

    def sync_route(
        self, kind: Kind, body: Body, parents: Sequence[RouteParentStatus]
    ) -> bool:
        """Write this controller's entries of a route's status.parents.

        Entries owned by other controllers are kept as they are.
        """
        existing = (body.get("status") or {}).get("parents") or []
        foreign = [p for p in existing if p.get("controllerName") != self.controller_name]
        ours = {
            _parent_key(p.get("parentRef") or {}): p
            for p in existing
            if p.get("controllerName") == self.controller_name
        }
        generation = _generation(body)

        changed = len(ours) != len(parents)
        desired = []
        for parent in parents:
            ref = parent.parent_ref.to_dict()
            previous = ours.get(_parent_key(ref))
            previous_conditions = _conditions((previous or {}).get("conditions"))
            merged = merge_conditions(
                previous_conditions, _with_generation(parent.conditions, generation)
            )
            if previous is None or _digest(previous_conditions) != _digest(merged):
                changed = True
            desired.append(
                {
                    "parentRef": ref,
                    "controllerName": self.controller_name,
                    "conditions": [c.to_dict() for c in merged],
                }
            )

        if not changed:
            return self._skipped(kind)
        return self._write(kind, body, {"parents": foreign + desired})

    # -------------------------------------------------------------------------
    # Finalizers
    # -------------------------------------------------------------------------

    def add_finalizer(self, kind: Kind, body: Body, finalizer: str) -> Body:
        """Ensure `finalizer` is set. Returns the freshest known object."""
        finalizers = list((body.get("metadata") or {}).get("finalizers") or [])
        if finalizer in finalizers:
            return body
        logger.info(f"Adding finalizer to {kind.value} {_name(body)}")
        return self._write_finalizers(kind, body, finalizers + [finalizer])

    def remove_finalizer(self, kind: Kind, body: Body, finalizer: str) -> Body:
        """Ensure `finalizer` is not set. Returns the freshest known object."""
        finalizers = list((body.get("metadata") or {}).get("finalizers") or [])
        if finalizer not in finalizers:
            return body
        logger.info(f"Removing finalizer from {kind.value} {_name(body)}")
        return self._write_finalizers(
            kind, body, [f for f in finalizers if f != finalizer]
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _skipped(self, kind: Kind) -> bool:
        STATUS_WRITES.labels(kind=kind.value, outcome="skipped").inc()
        return False

    def _write(self, kind: Kind, body: Body, status: dict[str, Any]) -> bool:
        meta = body.get("metadata") or {}
        try:
            self.cluster.patch_status(
                kind,
                meta.get("namespace"),
                meta.get("name", ""),
                status,
                meta.get("resourceVersion"),
            )
        except ConflictError:
            STATUS_WRITES.labels(kind=kind.value, outcome="conflict").inc()
            raise
        STATUS_WRITES.labels(kind=kind.value, outcome="written").inc()
        logger.debug(f"Updated status of {kind.value} {_name(body)}")
        return True

    def _write_finalizers(self, kind: Kind, body: Body, finalizers: list[str]) -> Body:
        meta = body.get("metadata") or {}
        try:
            updated = self.cluster.patch_finalizers(
                kind,
                meta.get("namespace"),
                meta.get("name", ""),
                finalizers,
                meta.get("resourceVersion"),
            )
        except ConflictError:
            STATUS_WRITES.labels(kind=kind.value, outcome="conflict").inc()
            raise
        STATUS_WRITES.labels(kind=kind.value, outcome="written").inc()
        return updated


def _generation(body: Body) -> int | None:
    return (body.get("metadata") or {}).get("generation")


def _name(body: Body) -> str:
    meta = body.get("metadata") or {}
    if meta.get("namespace"):
        return f"{meta['namespace']}/{meta.get('name', '')}"
    return meta.get("name", "")


def _kinds(items: Iterable[Mapping[str, Any]] | None) -> list[tuple[str, str]]:
    return [
        (item.get("group", GATEWAY_API_GROUP), item.get("kind", ""))
        for item in items or []
    ]
