"""Cluster Event recording against ConditionalTTL objects."""

from __future__ import annotations

import logging
from typing import Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..models.conditional_ttl import API_VERSION, KIND, ConditionalTTL
from ..utils.timestamps import utcnow

logger = logging.getLogger(__name__)

COMPONENT = "cleaner"

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"

REASON_TARGET_DELETED = "TargetDeleted"
REASON_DELETE_TARGET_FAILED = "DeleteTargetFailed"
REASON_RELEASE_UNINSTALLED = "HelmReleaseUninstalled"
REASON_RELEASE_UNINSTALL_FAILED = "HelmUninstallFailed"
REASON_EVENT_DELIVERED = "EventDelivered"
REASON_EVENT_DELIVERY_FAILED = "EventDeliveryFailed"


class EventRecorder:
    """Publishes Events describing teardown progress.

    Events are informational: a failure to record one is logged and
    otherwise ignored.
    """

    def __init__(self, core_api: Optional[client.CoreV1Api] = None, request_timeout: Optional[float] = None):
        self.core_api = core_api or client.CoreV1Api()
        self.request_timeout = request_timeout

    def normal(self, ttl: ConditionalTTL, reason: str, message: str) -> None:
        self.record(ttl, EVENT_NORMAL, reason, message)

    def warning(self, ttl: ConditionalTTL, reason: str, message: str) -> None:
        self.record(ttl, EVENT_WARNING, reason, message)

    def record(self, ttl: ConditionalTTL, event_type: str, reason: str, message: str) -> None:
        """Create an Event involving the given ConditionalTTL."""
        now = utcnow()
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{ttl.name}.", namespace=ttl.namespace),
            involved_object=client.V1ObjectReference(
                api_version=API_VERSION,
                kind=KIND,
                name=ttl.name,
                namespace=ttl.namespace,
                uid=ttl.uid,
                resource_version=ttl.resource_version,
            ),
            reason=reason,
            message=message,
            type=event_type,
            count=1,
            first_timestamp=now,
            last_timestamp=now,
            source=client.V1EventSource(component=COMPONENT),
        )

        kwargs = {}
        if self.request_timeout is not None:
            kwargs["_request_timeout"] = self.request_timeout

        try:
            self.core_api.create_namespaced_event(ttl.namespace, event, **kwargs)
        except ApiException as e:
            logger.warning(f"Failed to record {reason} event for {ttl.namespace}/{ttl.name}: {e.reason}")
