"""Controller: resource access, target resolution, teardown and reconciliation.

The kopf wiring lives in ``cleaner.controller.operator`` and is only
imported by ``cleaner run`` so that handlers are not registered as a side
effect of importing the engine.
"""

from __future__ import annotations

from .engine import ConditionalTTLReconciler, ReconcileError, ReconcileResult
from .finalizers import (
    CLOUD_EVENT_FINALIZER,
    FINALIZER_ORDER,
    RELEASE_FINALIZER,
    TARGET_FINALIZER,
    CloudEventFinalizer,
    Finalizer,
    FinalizerError,
    ReleaseFinalizer,
    TargetFinalizer,
)
from .notifier import CloudEventNotifier, NotificationError
from .release import HelmReleaseManager, ReleaseError, ReleaseNotFoundError
from .resolver import TargetResolveError, TargetResolver
from .store import ConflictError, NotFoundError, ResourceStore, StoreError

__all__ = [
    "CLOUD_EVENT_FINALIZER",
    "FINALIZER_ORDER",
    "RELEASE_FINALIZER",
    "TARGET_FINALIZER",
    "CloudEventFinalizer",
    "CloudEventNotifier",
    "ConditionalTTLReconciler",
    "ConflictError",
    "Finalizer",
    "FinalizerError",
    "HelmReleaseManager",
    "NotFoundError",
    "NotificationError",
    "ReconcileError",
    "ReconcileResult",
    "ReleaseError",
    "ReleaseFinalizer",
    "ReleaseNotFoundError",
    "ResourceStore",
    "StoreError",
    "TargetFinalizer",
    "TargetResolveError",
    "TargetResolver",
]
