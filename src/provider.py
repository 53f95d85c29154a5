"""Dispatches notifications to the per-kind reconcilers."""

import logging
import time
from collections.abc import Callable

from metrics import RECONCILE_DURATION, RECONCILE_IN_PROGRESS, RECONCILE_TOTAL
from models import ConflictError, Kind, Notification, TransientError
from resources.context import ReconcileContext
from resources.core import (
    reconcile_deployment,
    reconcile_namespace,
    reconcile_reference_grant,
    reconcile_service,
)
from resources.gateway import reconcile_gateway
from resources.gatewayclass import reconcile_gateway_class
from resources.route import reconcile_route

logger = logging.getLogger(__name__)

Reconciler = Callable[[ReconcileContext, Notification], None]

RECONCILERS: dict[Kind, Reconciler] = {
    Kind.GATEWAY_CLASS: reconcile_gateway_class,
    Kind.GATEWAY: reconcile_gateway,
    Kind.HTTP_ROUTE: reconcile_route,
    Kind.TLS_ROUTE: reconcile_route,
    Kind.SERVICE: reconcile_service,
    Kind.NAMESPACE: reconcile_namespace,
    Kind.DEPLOYMENT: reconcile_deployment,
    Kind.REFERENCE_GRANT: reconcile_reference_grant,
}


class Provider:
    """Runs the reconciler of a notification's kind and records metrics.

    Errors propagate to the caller, which decides whether to retry.
    """

    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx

    def reconcile(self, notification: Notification) -> None:
        kind = notification.kind.value
        reconciler = RECONCILERS[notification.kind]
        logger.debug(f"Reconciling {notification}")

        start_time = time.monotonic()
        RECONCILE_IN_PROGRESS.labels(kind=kind).inc()
        try:
            reconciler(self.ctx, notification)
            RECONCILE_TOTAL.labels(kind=kind, status="success").inc()
        except ConflictError:
            RECONCILE_TOTAL.labels(kind=kind, status="conflict").inc()
            raise
        except TransientError:
            RECONCILE_TOTAL.labels(kind=kind, status="transient_error").inc()
            raise
        except Exception:
            RECONCILE_TOTAL.labels(kind=kind, status="error").inc()
            raise
        finally:
            RECONCILE_DURATION.labels(kind=kind).observe(time.monotonic() - start_time)
            RECONCILE_IN_PROGRESS.labels(kind=kind).dec()
