"""Kubernetes API wrapper with retry logic for the watched object kinds.

Objects are exchanged as plain dicts in their API (camelCase) form, the same
shape kopf hands to event handlers.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from kubernetes import client as k8s_client
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from constants import GATEWAY_API_GROUP
from metrics import CLUSTER_API_CALLS, CLUSTER_API_RETRIES
from models import ConflictError, Kind, TransientError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

MERGE_PATCH = "application/merge-patch+json"

# HTTP statuses worth retrying
TRANSIENT_STATUSES = frozenset({0, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ApiResource:
    """API coordinates of a kind."""

    group: str
    version: str
    plural: str
    namespaced: bool

    @property
    def custom(self) -> bool:
        return self.group == GATEWAY_API_GROUP


API_RESOURCES: dict[Kind, ApiResource] = {
    Kind.GATEWAY_CLASS: ApiResource(GATEWAY_API_GROUP, "v1", "gatewayclasses", False),
    Kind.GATEWAY: ApiResource(GATEWAY_API_GROUP, "v1", "gateways", True),
    Kind.HTTP_ROUTE: ApiResource(GATEWAY_API_GROUP, "v1", "httproutes", True),
    Kind.TLS_ROUTE: ApiResource(GATEWAY_API_GROUP, "v1alpha2", "tlsroutes", True),
    Kind.REFERENCE_GRANT: ApiResource(
        GATEWAY_API_GROUP, "v1beta1", "referencegrants", True
    ),
    Kind.SERVICE: ApiResource("", "v1", "services", True),
    Kind.NAMESPACE: ApiResource("", "v1", "namespaces", False),
    Kind.DEPLOYMENT: ApiResource("apps", "v1", "deployments", True),
}


def _is_transient(error: Exception) -> bool:
    if isinstance(error, ApiException):
        return error.status in TRANSIENT_STATUSES
    return isinstance(error, Urllib3HTTPError)


def retry_on_error(
    max_retries: int = 3,
    delay: float = 0.5,
    backoff: float = 2.0,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to retry Kubernetes API calls on transient errors."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    result = func(*args, **kwargs)
                    CLUSTER_API_CALLS.labels(
                        operation=func.__name__, status="success"
                    ).inc()
                    return result
                except (ApiException, Urllib3HTTPError) as e:
                    if not _is_transient(e):
                        CLUSTER_API_CALLS.labels(
                            operation=func.__name__, status="error"
                        ).inc()
                        raise
                    last_exception = e
                    if attempt < max_retries:
                        CLUSTER_API_RETRIES.labels(operation=func.__name__).inc()
                        logger.warning(
                            "Attempt %d/%d failed for %s: %s. Retrying in %.1fs...",
                            attempt + 1,
                            max_retries + 1,
                            func.__name__,
                            e,
                            current_delay,
                        )
                        time.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(
                            "All %d attempts failed for %s",
                            max_retries + 1,
                            func.__name__,
                        )

            CLUSTER_API_CALLS.labels(operation=func.__name__, status="error").inc()
            raise TransientError(
                f"Operation {func.__name__} failed after {max_retries + 1} attempts"
            ) from last_exception

        return wrapper

    return decorator


class ClusterClient:
    """Get, list and status/finalizer writes for the watched kinds."""

    def __init__(
        self,
        api_client: k8s_client.ApiClient | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        """Initialize API clients.

        Args:
            api_client: Configured ApiClient (default: from loaded kube config)
            request_timeout: Timeout in seconds applied to every request
        """
        self._api_client = api_client or k8s_client.ApiClient()
        self.custom = k8s_client.CustomObjectsApi(self._api_client)
        self.core = k8s_client.CoreV1Api(self._api_client)
        self.apps = k8s_client.AppsV1Api(self._api_client)
        self._timeout = request_timeout

    def close(self) -> None:
        self._api_client.close()

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self._api_client.sanitize_for_serialization(obj)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @retry_on_error()
    def get(self, kind: Kind, namespace: str | None, name: str) -> dict[str, Any] | None:
        """Get an object, or None if it does not exist."""
        resource = API_RESOURCES[kind]
        try:
            if resource.custom:
                if resource.namespaced:
                    return self.custom.get_namespaced_custom_object(
                        resource.group,
                        resource.version,
                        namespace,
                        resource.plural,
                        name,
                        _request_timeout=self._timeout,
                    )
                return self.custom.get_cluster_custom_object(
                    resource.group,
                    resource.version,
                    resource.plural,
                    name,
                    _request_timeout=self._timeout,
                )
            return self._to_dict(self._read_builtin(kind, namespace, name))
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    @retry_on_error()
    def list_objects(
        self,
        kind: Kind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally within one namespace."""
        resource = API_RESOURCES[kind]
        kwargs: dict[str, Any] = {"_request_timeout": self._timeout}
        if label_selector:
            kwargs["label_selector"] = label_selector

        try:
            if resource.custom:
                if resource.namespaced and namespace:
                    result = self.custom.list_namespaced_custom_object(
                        resource.group,
                        resource.version,
                        namespace,
                        resource.plural,
                        **kwargs,
                    )
                else:
                    result = self.custom.list_cluster_custom_object(
                        resource.group, resource.version, resource.plural, **kwargs
                    )
                return list(result.get("items", []))
            items = self._list_builtin(kind, namespace, kwargs).items or []
            return [self._to_dict(item) for item in items]
        except ApiException as e:
            if e.status == 404:
                # CRD not installed
                logger.debug("Listing %s returned 404, treating as empty", kind.value)
                return []
            raise

    def _read_builtin(self, kind: Kind, namespace: str | None, name: str) -> Any:
        if kind == Kind.SERVICE:
            return self.core.read_namespaced_service(
                name, namespace, _request_timeout=self._timeout
            )
        if kind == Kind.NAMESPACE:
            return self.core.read_namespace(name, _request_timeout=self._timeout)
        if kind == Kind.DEPLOYMENT:
            return self.apps.read_namespaced_deployment(
                name, namespace, _request_timeout=self._timeout
            )
        raise ValueError(f"Unsupported kind: {kind.value}")

    def _list_builtin(
        self, kind: Kind, namespace: str | None, kwargs: dict[str, Any]
    ) -> Any:
        if kind == Kind.SERVICE:
            if namespace:
                return self.core.list_namespaced_service(namespace, **kwargs)
            return self.core.list_service_for_all_namespaces(**kwargs)
        if kind == Kind.NAMESPACE:
            return self.core.list_namespace(**kwargs)
        if kind == Kind.DEPLOYMENT:
            if namespace:
                return self.apps.list_namespaced_deployment(namespace, **kwargs)
            return self.apps.list_deployment_for_all_namespaces(**kwargs)
        raise ValueError(f"Unsupported kind: {kind.value}")

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @retry_on_error()
    def patch_status(
        self,
        kind: Kind,
        namespace: str | None,
        name: str,
        status: dict[str, Any],
        resource_version: str | None = None,
    ) -> dict[str, Any]:
        """Merge-patch the status subresource.

        With `resource_version` the write is rejected with ConflictError if
        the object changed since it was read.
        """
        body = self._patch_body(resource_version)
        body["status"] = status
        return self._patch_custom(kind, namespace, name, body, status_subresource=True)

    @retry_on_error()
    def patch_finalizers(
        self,
        kind: Kind,
        namespace: str | None,
        name: str,
        finalizers: list[str],
        resource_version: str | None = None,
    ) -> dict[str, Any]:
        """Replace metadata.finalizers."""
        body = self._patch_body(resource_version)
        body["metadata"]["finalizers"] = finalizers
        return self._patch_custom(kind, namespace, name, body, status_subresource=False)

    @staticmethod
    def _patch_body(resource_version: str | None) -> dict[str, Any]:
        metadata: dict[str, Any] = {}
        if resource_version:
            metadata["resourceVersion"] = resource_version
        return {"metadata": metadata}

    def _patch_custom(
        self,
        kind: Kind,
        namespace: str | None,
        name: str,
        body: dict[str, Any],
        status_subresource: bool,
    ) -> dict[str, Any]:
        resource = API_RESOURCES[kind]
        if not resource.custom:
            raise ValueError(f"Status writes are not supported for {kind.value}")

        kwargs: dict[str, Any] = {
            "_request_timeout": self._timeout,
            "_content_type": MERGE_PATCH,
        }
        try:
            if resource.namespaced:
                patch = (
                    self.custom.patch_namespaced_custom_object_status
                    if status_subresource
                    else self.custom.patch_namespaced_custom_object
                )
                return patch(
                    resource.group,
                    resource.version,
                    namespace,
                    resource.plural,
                    name,
                    body,
                    **kwargs,
                )
            patch = (
                self.custom.patch_cluster_custom_object_status
                if status_subresource
                else self.custom.patch_cluster_custom_object
            )
            return patch(
                resource.group, resource.version, resource.plural, name, body, **kwargs
            )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"{kind.value} {namespace or ''}/{name} was modified concurrently"
                ) from e
            raise
