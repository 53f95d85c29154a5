"""Kopf event handlers feeding the reconciliation work queues.

This package contains handlers for:
- GatewayClass, Gateway, HTTPRoute, TLSRoute, ReferenceGrant
- Service, Namespace, Deployment

All handlers follow the same pattern: turn the watch event into a
`Notification` and enqueue it. Reconciliation happens on worker threads.
"""

# Import handlers to register them with Kopf
from handlers.gateway_api import *  # noqa: F401, F403
from handlers.core import *  # noqa: F401, F403
