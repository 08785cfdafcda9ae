"""kopf handlers: watch ConditionalTTL objects and schedule reconciliations.

Importing this module registers the handlers with kopf's default registry.
kopf delivers events serially per object, which is what the reconciler
expects; requeue requests become ``kopf.TemporaryError`` with a delay and
any other error is retried with kopf's backoff.
"""

from __future__ import annotations

import logging
from typing import Any

import kopf
from kubernetes import client

from ..cli.config import Config
from ..models.conditional_ttl import API_GROUP, API_VERSION, PLURAL
from .engine import ConditionalTTLReconciler, ReconcileResult
from .events import EventRecorder
from .finalizers import CloudEventFinalizer, ReleaseFinalizer, TargetFinalizer
from .notifier import CloudEventNotifier
from .release import HelmReleaseManager
from .resolver import TargetResolver
from .store import KubernetesResourceStore, load_kube_config

logger = logging.getLogger(__name__)

VERSION = API_VERSION.split("/", 1)[1]

# Delay between teardown steps of an object being deleted
FINALIZER_STEP_DELAY = 1.0


def build_reconciler(config: Config) -> ConditionalTTLReconciler:
    """Wire the reconciler with cluster-backed collaborators."""
    load_kube_config()
    api_client = client.ApiClient()
    store = KubernetesResourceStore(api_client, request_timeout=config.request_timeout)
    resolver = TargetResolver(store)
    recorder = EventRecorder(client.CoreV1Api(api_client), request_timeout=config.request_timeout)

    finalizers = [
        TargetFinalizer(store, resolver, recorder),
        ReleaseFinalizer(
            HelmReleaseManager(config.helm_binary, config.helm_driver, timeout=config.request_timeout),
            recorder,
        ),
        CloudEventFinalizer(CloudEventNotifier(timeout=config.request_timeout), recorder),
    ]
    return ConditionalTTLReconciler(store, finalizers, resolver=resolver)


def requeue(result: ReconcileResult) -> None:
    """Turn a requeue request into a kopf retry."""
    if result.pending_finalizers:
        raise kopf.TemporaryError(
            f"{result.pending_finalizers} finalizers pending", delay=FINALIZER_STEP_DELAY
        )
    if result.requeue_after is not None:
        delay = max(result.requeue_after.total_seconds(), 0.0)
        raise kopf.TemporaryError(f"requeue in {delay:.0f}s", delay=delay)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **kwargs: Any) -> None:
    config = getattr(memo, "config", None) or Config.load()
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=API_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=API_GROUP)
    settings.execution.max_workers = config.max_workers
    memo.reconciler = build_reconciler(config)
    logger.info(f"Cleaner operator started (max_workers={config.max_workers})")


@kopf.on.create(API_GROUP, VERSION, PLURAL)
@kopf.on.resume(API_GROUP, VERSION, PLURAL)
@kopf.on.update(API_GROUP, VERSION, PLURAL, field="spec")
def reconcile_handler(name: str, namespace: str, memo: kopf.Memo, **kwargs: Any) -> None:
    """Reconcile a ConditionalTTL until it is deleted or needs no callback."""
    requeue(memo.reconciler.reconcile(namespace, name))


@kopf.on.delete(API_GROUP, VERSION, PLURAL, optional=True)
def finalize_handler(name: str, namespace: str, memo: kopf.Memo, **kwargs: Any) -> None:
    """Advance teardown by one step per call until no marker of ours remains."""
    requeue(memo.reconciler.reconcile(namespace, name))
