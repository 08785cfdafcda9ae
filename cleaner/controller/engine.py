"""Reconciliation of ConditionalTTL objects.

Every pass recomputes the next action from the object's persisted state:

1. Being deleted: run the first teardown step whose marker is still
   attached, detach that marker, and stop.
2. TTL not elapsed: report NotExpired and ask to be called back at expiry.
3. Otherwise resolve the targets, evaluate the conditions and publish the
   verdict. When the conditions are met, freeze the snapshots into status,
   attach every teardown marker and request deletion of the object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from ..expressions.evaluator import EvaluationOutcome, evaluate_conditions
from ..expressions.library import build_context
from ..models.conditional_ttl import API_VERSION, KIND, ConditionalTTL
from ..models.status import ConditionStatus, ReadyCondition, ReadyReason
from ..utils.timestamps import utcnow
from .finalizers import FinalizerError, Finalizer, next_finalizer
from .resolver import TargetResolveError, TargetResolver
from .store import NotFoundError, ResourceStore

logger = logging.getLogger(__name__)

MESSAGE_NOT_EXPIRED = "Waiting for resource to expire"


class ReconcileError(Exception):
    """A pass failed and should be retried with backoff."""


@dataclass
class ReconcileResult:
    """Outcome of one pass.

    Attributes:
        requeue_after: Delay before the next pass, if one must be scheduled
        pending_finalizers: Teardown markers still attached after this pass
    """

    requeue_after: Optional[timedelta] = None
    pending_finalizers: int = 0


class ConditionalTTLReconciler:
    """Drives a ConditionalTTL from creation to deletion."""

    def __init__(
        self,
        store: ResourceStore,
        finalizers: Sequence[Finalizer],
        resolver: Optional[TargetResolver] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the reconciler.

        Args:
            store: Access to cluster objects
            finalizers: Teardown steps, in execution order
            resolver: Target resolver (default: one over ``store``)
            clock: Source of the current time
        """
        self.store = store
        self.finalizers: List[Finalizer] = list(finalizers)
        self.resolver = resolver or TargetResolver(store)
        self.clock = clock

    @property
    def finalizer_names(self) -> List[str]:
        return [finalizer.name for finalizer in self.finalizers]

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Run one reconciliation pass.

        Args:
            namespace: Namespace of the ConditionalTTL
            name: Name of the ConditionalTTL

        Returns:
            ReconcileResult telling the scheduler when to call again

        Raises:
            ReconcileError: When the pass must be retried with backoff
            StoreError: When reading or writing the object fails
        """
        try:
            ttl = self.store.get_conditional_ttl(namespace, name)
        except NotFoundError:
            logger.debug(f"ConditionalTTL {namespace}/{name} no longer exists")
            return ReconcileResult()

        if ttl.is_being_deleted:
            return self._finalize(ttl)

        now = self.clock()
        if not now > ttl.expires_at:
            self._publish(ttl, ConditionStatus.UNKNOWN, ReadyReason.NOT_EXPIRED, MESSAGE_NOT_EXPIRED, now)
            return ReconcileResult(requeue_after=ttl.expires_at - now)

        try:
            snapshots = self.resolver.resolve_all(ttl.spec.targets, ttl.namespace)
        except TargetResolveError as e:
            message = f"Error resolving targets: {e}"
            logger.error(f"ConditionalTTL {namespace}/{name}: {message}")
            self._publish(ttl, ConditionStatus.FALSE, ReadyReason.TARGET_RESOLVE_ERROR, message, now)
            raise ReconcileError(message) from e

        outcome = evaluate_conditions(
            ttl.spec.evaluated_target_names(),
            ttl.spec.conditions,
            build_context(snapshots, now),
        )

        if not outcome.met:
            self._publish(ttl, outcome.status, outcome.reason, outcome.message, now)
            return self._retry(ttl, outcome)

        ttl.status.targets = snapshots
        ttl.status.evaluation_time = now
        self._publish(ttl, outcome.status, outcome.reason, outcome.message, now)
        self._attach_finalizers(ttl)

        try:
            self.store.delete(API_VERSION, KIND, ttl.name, ttl.namespace)
        except NotFoundError:
            logger.debug(f"ConditionalTTL {namespace}/{name} was deleted concurrently")
            return ReconcileResult()

        logger.info(f"Deletion of ConditionalTTL {namespace}/{name} requested")
        return ReconcileResult()

    def _retry(self, ttl: ConditionalTTL, outcome: EvaluationOutcome) -> ReconcileResult:
        if not outcome.retryable:
            logger.warning(f"ConditionalTTL {ttl.namespace}/{ttl.name}: {outcome.message}")
            return ReconcileResult()
        if ttl.spec.retry_period is None:
            logger.warning(f"ConditionalTTL {ttl.namespace}/{ttl.name} has no retry period; not rescheduling")
            return ReconcileResult()
        return ReconcileResult(requeue_after=ttl.spec.retry_period)

    def _publish(
        self,
        ttl: ConditionalTTL,
        status: ConditionStatus,
        reason: ReadyReason,
        message: str,
        now: datetime,
    ) -> None:
        previous = ttl.status.ready_condition()
        if previous is None or previous.reason != reason:
            logger.info(f"ConditionalTTL {ttl.namespace}/{ttl.name} is {reason.value}: {message}")

        condition = ReadyCondition(
            status=status,
            reason=reason,
            message=message,
            observed_generation=ttl.generation,
        )
        ttl.status.set_condition(condition, now)
        updated = self.store.patch_status(ttl)
        ttl.resource_version = (updated.get("metadata") or {}).get("resourceVersion", ttl.resource_version)

    def _attach_finalizers(self, ttl: ConditionalTTL) -> None:
        added = [name for name in self.finalizer_names if ttl.add_finalizer(name)]
        if not added:
            return
        updated = self.store.patch_finalizers(ttl)
        ttl.resource_version = (updated.get("metadata") or {}).get("resourceVersion", ttl.resource_version)
        logger.debug(f"Attached finalizers {added} to {ttl.namespace}/{ttl.name}")

    def _finalize(self, ttl: ConditionalTTL) -> ReconcileResult:
        finalizer = next_finalizer(ttl, self.finalizers)
        if finalizer is None:
            return ReconcileResult()

        try:
            finalizer.finalize(ttl)
        except FinalizerError as e:
            logger.error(f"Finalizer {finalizer.name} of {ttl.namespace}/{ttl.name} failed: {e}")
            raise ReconcileError(f"finalizer {finalizer.name}: {e}") from e

        ttl.remove_finalizer(finalizer.name)
        self.store.patch_finalizers(ttl)
        logger.info(f"Finalizer {finalizer.name} of {ttl.namespace}/{ttl.name} completed")

        pending = sum(1 for name in self.finalizer_names if ttl.has_finalizer(name))
        return ReconcileResult(pending_finalizers=pending)
