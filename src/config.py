"""Operator configuration from environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from constants import DEFAULT_CONTROLLER_NAME


@dataclass(frozen=True)
class OperatorConfig:
    """Runtime settings of the gateway operator.

    Environment variables:
        CONTROLLER_NAME: GatewayClass controllerName handled by this operator
        WATCH_NAMESPACE: Restrict watches to one namespace (default: cluster-wide)
        METRICS_PORT: Prometheus metrics port (default: 9090)
        WORKERS_PER_KIND: Reconciliation workers per object kind (default: 2)
        WORKQUEUE_MAX_SIZE: Pending objects per kind before enqueue blocks (default: 1024)
        RETRY_BASE_DELAY_SECONDS: First requeue delay after a failure (default: 0.5)
        RETRY_MAX_DELAY_SECONDS: Requeue delay cap (default: 60)
        NAME_LENGTH_LIMIT: Longest generated child resource name (default: 63)
        API_REQUEST_TIMEOUT_SECONDS: Kubernetes API request timeout (default: 30)
    """

    controller_name: str = DEFAULT_CONTROLLER_NAME
    watch_namespace: str = ""
    metrics_port: int = 9090
    workers_per_kind: int = 2
    workqueue_max_size: int = 1024
    retry_base_delay: float = 0.5
    retry_max_delay: float = 60.0
    name_length_limit: int = 63
    api_request_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OperatorConfig":
        """Create from environment variables."""
        env = os.environ if environ is None else environ
        config = cls(
            controller_name=env.get("CONTROLLER_NAME", DEFAULT_CONTROLLER_NAME),
            watch_namespace=env.get("WATCH_NAMESPACE", ""),
            metrics_port=int(env.get("METRICS_PORT", "9090")),
            workers_per_kind=int(env.get("WORKERS_PER_KIND", "2")),
            workqueue_max_size=int(env.get("WORKQUEUE_MAX_SIZE", "1024")),
            retry_base_delay=float(env.get("RETRY_BASE_DELAY_SECONDS", "0.5")),
            retry_max_delay=float(env.get("RETRY_MAX_DELAY_SECONDS", "60")),
            name_length_limit=int(env.get("NAME_LENGTH_LIMIT", "63")),
            api_request_timeout=float(env.get("API_REQUEST_TIMEOUT_SECONDS", "30")),
        )
        if not config.controller_name:
            raise ValueError("CONTROLLER_NAME must not be empty")
        if config.workers_per_kind < 1:
            raise ValueError("WORKERS_PER_KIND must be at least 1")
        return config
