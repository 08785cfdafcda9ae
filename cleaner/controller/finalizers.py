"""Teardown steps run while a ConditionalTTL is being deleted.

Each step is attached to the object as a finalizer marker. Steps run in the
order of ``FINALIZER_ORDER``, one per reconciliation pass, and every step
treats "already gone" as success so it can be re-run safely after a crash.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..models.conditional_ttl import API_GROUP, ConditionalTTL
from .events import (
    REASON_DELETE_TARGET_FAILED,
    REASON_EVENT_DELIVERED,
    REASON_EVENT_DELIVERY_FAILED,
    REASON_RELEASE_UNINSTALL_FAILED,
    REASON_RELEASE_UNINSTALLED,
    REASON_TARGET_DELETED,
    EventRecorder,
)
from .notifier import CloudEventNotifier, NotificationError
from .release import HelmReleaseManager, ReleaseError, ReleaseNotFoundError
from .resolver import TargetResolveError, TargetResolver
from .store import NotFoundError, ResourceStore, StoreError

logger = logging.getLogger(__name__)

TARGET_FINALIZER = f"{API_GROUP}/target-finalizer"
RELEASE_FINALIZER = f"{API_GROUP}/release-finalizer"
CLOUD_EVENT_FINALIZER = f"{API_GROUP}/cloud-event-finalizer"

FINALIZER_ORDER = (TARGET_FINALIZER, RELEASE_FINALIZER, CLOUD_EVENT_FINALIZER)

CLOUD_EVENT_TYPE = "conditionalTTL.deleted"
CLOUD_EVENT_SOURCE = f"{API_GROUP}/finalizer"


class FinalizerError(Exception):
    """A teardown step failed; its marker stays in place."""


class Finalizer(ABC):
    """A single teardown step identified by its marker name."""

    name: str = ""

    def __init__(self, recorder: Optional[EventRecorder] = None):
        self.recorder = recorder

    def _normal(self, ttl: ConditionalTTL, reason: str, message: str) -> None:
        if self.recorder is not None:
            self.recorder.normal(ttl, reason, message)

    def _warning(self, ttl: ConditionalTTL, reason: str, message: str) -> None:
        if self.recorder is not None:
            self.recorder.warning(ttl, reason, message)

    @abstractmethod
    def finalize(self, ttl: ConditionalTTL) -> None:
        """Run the step.

        Raises:
            FinalizerError: If the step must be retried
        """


class TargetFinalizer(Finalizer):
    """Deletes every target marked for deletion."""

    name = TARGET_FINALIZER

    def __init__(self, store: ResourceStore, resolver: TargetResolver, recorder: Optional[EventRecorder] = None):
        super().__init__(recorder)
        self.store = store
        self.resolver = resolver

    def finalize(self, ttl: ConditionalTTL) -> None:
        for target in ttl.spec.targets:
            if not target.delete:
                continue

            try:
                snapshot = self.resolver.resolve(target, ttl.namespace)
            except TargetResolveError as e:
                if e.not_found:
                    logger.info(f"Target {target.name} of {ttl.namespace}/{ttl.name} is already gone")
                    continue
                raise FinalizerError(str(e)) from e

            items: List[Dict[str, Any]] = snapshot.state["items"] if snapshot.is_collection else [snapshot.state]
            for item in items:
                self._delete(ttl, target.reference.api_version, target.reference.kind, item)

    def _delete(self, ttl: ConditionalTTL, api_version: str, kind: str, item: Dict[str, Any]) -> None:
        metadata = item.get("metadata") or {}
        name = metadata.get("name")
        namespace = metadata.get("namespace") or ttl.namespace
        api_version = item.get("apiVersion") or api_version
        kind = item.get("kind") or kind

        try:
            self.store.delete(api_version, kind, name, namespace)
        except NotFoundError:
            logger.debug(f"{kind} {namespace}/{name} already deleted")
            return
        except StoreError as e:
            message = f"Failed to delete {kind} {namespace}/{name}: {e}"
            self._warning(ttl, REASON_DELETE_TARGET_FAILED, message)
            raise FinalizerError(message) from e

        logger.info(f"Deleted {kind} {namespace}/{name} for {ttl.namespace}/{ttl.name}")
        self._normal(ttl, REASON_TARGET_DELETED, f"Deleted {kind} {namespace}/{name}")


class ReleaseFinalizer(Finalizer):
    """Uninstalls the Helm release when requested."""

    name = RELEASE_FINALIZER

    def __init__(self, releases: HelmReleaseManager, recorder: Optional[EventRecorder] = None):
        super().__init__(recorder)
        self.releases = releases

    def finalize(self, ttl: ConditionalTTL) -> None:
        release = ttl.spec.release_ref
        if release is None:
            return

        try:
            self.releases.uninstall(release, ttl.namespace)
        except ReleaseNotFoundError:
            logger.info(f"Helm release {release} of {ttl.namespace}/{ttl.name} is already uninstalled")
            return
        except ReleaseError as e:
            self._warning(ttl, REASON_RELEASE_UNINSTALL_FAILED, str(e))
            raise FinalizerError(str(e)) from e

        self._normal(ttl, REASON_RELEASE_UNINSTALLED, f"Uninstalled Helm release {release}")


class CloudEventFinalizer(Finalizer):
    """Notifies the sink with the frozen target snapshots."""

    name = CLOUD_EVENT_FINALIZER

    def __init__(self, notifier: CloudEventNotifier, recorder: Optional[EventRecorder] = None):
        super().__init__(recorder)
        self.notifier = notifier

    @staticmethod
    def payload(ttl: ConditionalTTL) -> Dict[str, Any]:
        return {
            "name": ttl.name,
            "namespace": ttl.namespace,
            "targets": [snapshot.to_dict() for snapshot in ttl.status.targets],
        }

    def finalize(self, ttl: ConditionalTTL) -> None:
        sink = ttl.spec.cloud_event_sink
        if not sink:
            return

        try:
            self.notifier.send(sink, CLOUD_EVENT_TYPE, CLOUD_EVENT_SOURCE, ttl.status.evaluation_time, self.payload(ttl))
        except NotificationError as e:
            self._warning(ttl, REASON_EVENT_DELIVERY_FAILED, str(e))
            raise FinalizerError(str(e)) from e

        self._normal(ttl, REASON_EVENT_DELIVERED, f"Delivered {CLOUD_EVENT_TYPE} to {sink}")


def next_finalizer(ttl: ConditionalTTL, finalizers: Sequence[Finalizer]) -> Optional[Finalizer]:
    """First teardown step whose marker is still attached."""
    for finalizer in finalizers:
        if ttl.has_finalizer(finalizer.name):
            return finalizer
    return None
