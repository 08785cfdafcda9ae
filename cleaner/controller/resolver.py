"""Target resolution: turns target references into snapshots."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from ..models.conditional_ttl import Target
from ..models.status import TargetSnapshot
from .store import NotFoundError, ResourceStore, StoreError

logger = logging.getLogger(__name__)


class TargetResolveError(Exception):
    """A target could not be resolved.

    Attributes:
        target: Name of the target
        not_found: Whether the referenced object does not exist
    """

    def __init__(self, target: str, message: str, not_found: bool = False):
        super().__init__(f"target {target}: {message}")
        self.target = target
        self.not_found = not_found


class TargetResolver:
    """Resolves targets against a ResourceStore.

    Resolution always starts from scratch: every call reads the current
    state of the referenced objects.
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    def resolve(self, target: Target, namespace: str) -> TargetSnapshot:
        """Resolve a single target.

        A target naming one object fails when the object is missing. A
        target selecting by labels resolves to a list object, which may be
        empty.

        Args:
            target: Target to resolve
            namespace: Namespace of the owning ConditionalTTL

        Returns:
            TargetSnapshot with the object or list object as state

        Raises:
            TargetResolveError: If the object(s) cannot be read
        """
        reference = target.reference
        if reference.name is None and reference.label_selector is None:
            raise TargetResolveError(target.name, "reference needs a name or a labelSelector")
        if reference.is_single:
            try:
                state = self.store.get(reference.api_version, reference.kind, reference.name, namespace)
            except NotFoundError as e:
                raise TargetResolveError(target.name, str(e), not_found=True) from e
            except StoreError as e:
                raise TargetResolveError(target.name, str(e)) from e
        else:
            try:
                listed = self.store.list(reference.api_version, reference.kind, namespace, reference.label_selector)
            except NotFoundError as e:
                raise TargetResolveError(target.name, str(e), not_found=True) from e
            except (StoreError, ValueError) as e:
                raise TargetResolveError(target.name, str(e)) from e
            state = self._list_object(target, listed)

        return TargetSnapshot(
            name=target.name,
            delete=target.delete,
            include_when_evaluating=target.include_when_evaluating,
            state=state,
        )

    def resolve_all(self, targets: Iterable[Target], namespace: str) -> List[TargetSnapshot]:
        """Resolve targets in declared order, stopping at the first failure.

        Raises:
            TargetResolveError: For the first target that cannot be resolved
        """
        snapshots = []
        for target in targets:
            snapshots.append(self.resolve(target, namespace))
        logger.debug(f"Resolved {len(snapshots)} targets in {namespace}")
        return snapshots

    @staticmethod
    def _list_object(target: Target, listed: Dict[str, Any]) -> Dict[str, Any]:
        metadata = dict(listed.get("metadata") or {})
        if metadata.get("continue"):
            raise TargetResolveError(target.name, "list result is incomplete (continue token set)")

        reference = target.reference
        kind = listed.get("kind") or f"{reference.kind}List"
        return {
            "apiVersion": listed.get("apiVersion") or reference.api_version,
            "kind": kind,
            "metadata": metadata,
            "items": list(listed.get("items") or []),
        }
