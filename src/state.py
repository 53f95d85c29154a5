"""Shared operator state - thread-safe container for the long-lived components."""

import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from cluster import ClusterClient
from config import OperatorConfig
from provider import Provider
from resources.context import ReconcileContext
from resources.status import StatusSynchronizer
from store import ResourceStore
from workqueue import Dispatcher


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    Holds the components created once per process:
    - Operator configuration
    - Kubernetes cluster client
    - Snapshot store
    - Provider and its worker pool

    Handlers use the global `state` instance; reconcilers get what they need
    injected through `ReconcileContext`.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _config: OperatorConfig | None = field(default=None, repr=False)
    _cluster: ClusterClient | None = field(default=None, repr=False)
    _store: ResourceStore | None = field(default=None, repr=False)
    _dispatcher: Dispatcher | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def _get_config(self) -> OperatorConfig:
        if self._config is None:
            self._config = OperatorConfig.from_env()
        return self._config

    def _get_cluster(self) -> ClusterClient:
        if self._cluster is None:
            self._ensure_k8s_config()
            self._cluster = ClusterClient(
                k8s_client.ApiClient(),
                request_timeout=self._get_config().api_request_timeout,
            )
        return self._cluster

    def _get_store(self) -> ResourceStore:
        if self._store is None:
            self._store = ResourceStore()
        return self._store

    def get_config(self) -> OperatorConfig:
        """Get the operator configuration (thread-safe)."""
        with self._lock:
            return self._get_config()

    def get_cluster(self) -> ClusterClient:
        """Get or create the cluster client (thread-safe)."""
        with self._lock:
            return self._get_cluster()

    def get_store(self) -> ResourceStore:
        """Get or create the snapshot store (thread-safe)."""
        with self._lock:
            return self._get_store()

    def get_dispatcher(self) -> Dispatcher:
        """Get or create the provider and its worker pool (thread-safe)."""
        with self._lock:
            if self._dispatcher is None:
                config = self._get_config()
                cluster = self._get_cluster()
                dispatcher: Dispatcher | None = None

                def enqueue(notification):
                    return dispatcher.requeue(notification)

                provider = Provider(
                    ReconcileContext(
                        store=self._get_store(),
                        cluster=cluster,
                        status=StatusSynchronizer(cluster, config.controller_name),
                        enqueue=enqueue,
                        controller_name=config.controller_name,
                        watch_namespace=config.watch_namespace,
                        name_length_limit=config.name_length_limit,
                    )
                )
                dispatcher = Dispatcher(
                    provider.reconcile,
                    workers_per_kind=config.workers_per_kind,
                    max_size=config.workqueue_max_size,
                    base_delay=config.retry_base_delay,
                    max_delay=config.retry_max_delay,
                )
                self._dispatcher = dispatcher
            return self._dispatcher

    def close(self) -> None:
        """Stop workers, end store subscriptions and close connections."""
        with self._lock:
            if self._dispatcher is not None:
                self._dispatcher.stop()
                self._dispatcher = None
            if self._store is not None:
                self._store.close()
                self._store = None
            if self._cluster is not None:
                self._cluster.close()
                self._cluster = None


# Global operator state singleton
state = OperatorState()


def get_store() -> ResourceStore:
    """Get the shared snapshot store."""
    return state.get_store()


def get_dispatcher() -> Dispatcher:
    """Get the shared worker pool."""
    return state.get_dispatcher()
