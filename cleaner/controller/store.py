"""Resource store: reads and writes cluster objects.

``ResourceStore`` is the narrow interface the reconciler depends on;
``KubernetesResourceStore`` implements it with the kubernetes dynamic client
so that any kind, including custom resources, can be read and deleted
without generated API classes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from ..models.conditional_ttl import API_VERSION, KIND, ConditionalTTL

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


class StoreError(Exception):
    """A store operation failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """The requested object does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status=404)


class ConflictError(StoreError):
    """The object changed since it was read."""

    def __init__(self, message: str):
        super().__init__(message, status=409)


def format_label_selector(selector: Optional[Mapping[str, Any]]) -> str:
    """Render a label selector to the string syntax the API server accepts.

    Args:
        selector: Selector with ``matchLabels`` and/or ``matchExpressions``

    Returns:
        Selector string such as "app=web,tier in (a,b),!legacy"

    Raises:
        ValueError: If an expression uses an unknown operator
    """
    if not selector:
        return ""

    parts: List[str] = []
    for key, value in sorted((selector.get("matchLabels") or {}).items()):
        parts.append(f"{key}={value}")

    for expression in selector.get("matchExpressions") or []:
        key = expression["key"]
        operator = expression["operator"]
        values = ",".join(expression.get("values") or [])
        if operator == "In":
            parts.append(f"{key} in ({values})")
        elif operator == "NotIn":
            parts.append(f"{key} notin ({values})")
        elif operator == "Exists":
            parts.append(key)
        elif operator == "DoesNotExist":
            parts.append(f"!{key}")
        else:
            raise ValueError(f"Unknown label selector operator: {operator}")

    return ",".join(parts)


def matches_label_selector(labels: Optional[Mapping[str, str]], selector: Optional[Mapping[str, Any]]) -> bool:
    """Check whether a label set satisfies a label selector.

    An empty selector matches everything.

    Raises:
        ValueError: If an expression uses an unknown operator
    """
    labels = labels or {}
    if not selector:
        return True

    for key, value in (selector.get("matchLabels") or {}).items():
        if labels.get(key) != value:
            return False

    for expression in selector.get("matchExpressions") or []:
        key = expression["key"]
        operator = expression["operator"]
        values = expression.get("values") or []
        if operator == "In":
            if labels.get(key) not in values:
                return False
        elif operator == "NotIn":
            if key in labels and labels[key] in values:
                return False
        elif operator == "Exists":
            if key not in labels:
                return False
        elif operator == "DoesNotExist":
            if key in labels:
                return False
        else:
            raise ValueError(f"Unknown label selector operator: {operator}")

    return True


class ResourceStore(ABC):
    """Access to cluster objects, as plain dictionaries."""

    @abstractmethod
    def get(self, api_version: str, kind: str, name: str, namespace: str) -> Dict[str, Any]:
        """Fetch one object.

        Raises:
            NotFoundError: If the object does not exist
        """

    @abstractmethod
    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str,
        label_selector: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """List objects matching a label selector.

        Returns:
            List object with ``apiVersion``, ``kind``, ``metadata`` and ``items``
        """

    @abstractmethod
    def delete(self, api_version: str, kind: str, name: str, namespace: str) -> None:
        """Request deletion of an object.

        Raises:
            NotFoundError: If the object does not exist
        """

    @abstractmethod
    def patch_finalizers(self, ttl: ConditionalTTL) -> Dict[str, Any]:
        """Persist the finalizer list of a ConditionalTTL.

        Raises:
            ConflictError: If the object changed since it was read
        """

    @abstractmethod
    def patch_status(self, ttl: ConditionalTTL) -> Dict[str, Any]:
        """Persist the status of a ConditionalTTL."""

    def get_conditional_ttl(self, namespace: str, name: str) -> ConditionalTTL:
        """Fetch and parse a ConditionalTTL.

        Raises:
            NotFoundError: If the object does not exist
        """
        return ConditionalTTL.from_dict(self.get(API_VERSION, KIND, name, namespace))


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class KubernetesResourceStore(ResourceStore):
    """ResourceStore backed by the kubernetes dynamic client."""

    def __init__(self, api_client: Optional[client.ApiClient] = None, request_timeout: Optional[float] = None):
        """Initialize the store.

        Args:
            api_client: Configured API client (default: from loaded kube config)
            request_timeout: Timeout in seconds applied to every request
        """
        self.client = dynamic.DynamicClient(api_client or client.ApiClient())
        self.request_timeout = request_timeout

    def _resource(self, api_version: str, kind: str) -> Any:
        try:
            return self.client.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError as e:
            raise NotFoundError(f"Unknown resource kind {kind} in {api_version}") from e

    def _options(self) -> Dict[str, Any]:
        if self.request_timeout is None:
            return {}
        return {"_request_timeout": self.request_timeout}

    @staticmethod
    def _translate(e: ApiException, what: str) -> StoreError:
        if e.status == 404:
            return NotFoundError(f"{what} not found")
        if e.status == 409:
            return ConflictError(f"{what} was modified concurrently")
        return StoreError(f"{what}: {e.reason}", status=e.status)

    def get(self, api_version: str, kind: str, name: str, namespace: str) -> Dict[str, Any]:
        resource = self._resource(api_version, kind)
        try:
            return resource.get(name=name, namespace=namespace, **self._options()).to_dict()
        except ApiException as e:
            raise self._translate(e, f"{kind} {namespace}/{name}") from e

    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str,
        label_selector: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        resource = self._resource(api_version, kind)
        selector = format_label_selector(label_selector)
        logger.debug(f"Listing {kind} in {namespace} with selector '{selector}'")
        try:
            result = resource.get(namespace=namespace, label_selector=selector, **self._options())
        except ApiException as e:
            raise self._translate(e, f"{kind} list in {namespace}") from e
        return result.to_dict()

    def delete(self, api_version: str, kind: str, name: str, namespace: str) -> None:
        resource = self._resource(api_version, kind)
        try:
            resource.delete(name=name, namespace=namespace, **self._options())
        except ApiException as e:
            raise self._translate(e, f"{kind} {namespace}/{name}") from e
        logger.debug(f"Requested deletion of {kind} {namespace}/{name}")

    def patch_finalizers(self, ttl: ConditionalTTL) -> Dict[str, Any]:
        body = {
            "metadata": {
                "finalizers": list(ttl.finalizers),
                "resourceVersion": ttl.resource_version,
            }
        }
        resource = self._resource(API_VERSION, KIND)
        try:
            result = resource.patch(
                body=body, name=ttl.name, namespace=ttl.namespace, content_type=MERGE_PATCH, **self._options()
            )
        except ApiException as e:
            raise self._translate(e, f"{KIND} {ttl.namespace}/{ttl.name}") from e
        return result.to_dict()

    def patch_status(self, ttl: ConditionalTTL) -> Dict[str, Any]:
        body = {"status": ttl.status.to_dict()}
        resource = self._resource(API_VERSION, KIND)
        try:
            result = resource.status.patch(
                body=body, name=ttl.name, namespace=ttl.namespace, content_type=MERGE_PATCH, **self._options()
            )
        except ApiException as e:
            raise self._translate(e, f"{KIND} {ttl.namespace}/{ttl.name} status") from e
        return result.to_dict()
