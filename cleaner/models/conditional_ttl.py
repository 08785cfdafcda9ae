"""ConditionalTTL resource model.

A ConditionalTTL declares a minimum lifetime, a set of referenced targets to
track and optionally delete, and expression-language conditions that must
all hold before deletion begins.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..utils.durations import format_duration, parse_duration
from ..utils.timestamps import format_timestamp, parse_timestamp
from .status import ConditionalTTLStatus

API_GROUP = "cleaner.vtex.io"
API_VERSION = f"{API_GROUP}/v1alpha1"
KIND = "ConditionalTTL"
PLURAL = "conditionalttls"

# Always present in the evaluation context, so no target may use it
RESERVED_TARGET_NAME = "time"

_IDENTIFIER = re.compile(r"^[_a-zA-Z][_a-zA-Z0-9]*$")


@dataclass
class TargetReference:
    """How to look up a target group.

    Either a single object by ``name`` or a collection of objects of the same
    kind by ``label_selector``. When both are present ``name`` wins.
    """

    api_version: str
    kind: str
    name: Optional[str] = None
    label_selector: Optional[Dict[str, Any]] = None

    @property
    def is_single(self) -> bool:
        return self.name is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind}
        if self.name is not None:
            data["name"] = self.name
        if self.label_selector is not None:
            data["labelSelector"] = copy.deepcopy(self.label_selector)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetReference":
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name"),
            label_selector=copy.deepcopy(data.get("labelSelector")),
        )


@dataclass
class Target:
    """A named target group of a ConditionalTTL.

    Attributes:
        name: Identifier used to refer to the target's state in conditions
        delete: Whether the target group is deleted when the TTL triggers
        include_when_evaluating: Whether the state is exposed to conditions
        reference: Lookup of the object(s) in the cluster
    """

    name: str
    reference: TargetReference
    delete: bool = False
    include_when_evaluating: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "delete": self.delete,
            "includeWhenEvaluating": self.include_when_evaluating,
            "reference": self.reference.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Target":
        return cls(
            name=data["name"],
            delete=bool(data.get("delete", False)),
            include_when_evaluating=bool(data.get("includeWhenEvaluating", False)),
            reference=TargetReference.from_dict(data.get("reference") or {}),
        )


@dataclass
class HelmConfig:
    """Helm release related to the ConditionalTTL."""

    release: str = ""
    delete: bool = False


@dataclass
class ConditionalTTLSpec:
    """Desired behaviour of a ConditionalTTL.

    Attributes:
        ttl: Minimum lifetime, relative to the object's creation time
        retry_period: Delay between condition re-evaluations
        helm: Helm release to uninstall during teardown (optional)
        targets: Target groups, in declared order
        conditions: Expression-language conditions, in declared order
        cloud_event_sink: URL notified once teardown runs (optional)
    """

    ttl: timedelta
    retry_period: Optional[timedelta] = None
    helm: Optional[HelmConfig] = None
    targets: List[Target] = field(default_factory=list)
    conditions: List[str] = field(default_factory=list)
    cloud_event_sink: Optional[str] = None

    @property
    def release_ref(self) -> Optional[str]:
        """Name of the release to tear down, if teardown is requested."""
        if self.helm is None or not self.helm.delete or not self.helm.release:
            return None
        return self.helm.release

    def evaluated_target_names(self) -> List[str]:
        """Names of the targets exposed to condition evaluation."""
        return [t.name for t in self.targets if t.include_when_evaluating]

    def validate(self) -> bool:
        """Validate spec invariants normally enforced at admission time.

        Validation rules:
            - target names are identifiers, unique, and not "time"
            - every reference has a name or a labelSelector
            - a retry period is set when conditions are present

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        seen = set()
        for target in self.targets:
            if target.name == RESERVED_TARGET_NAME:
                raise ValueError(f"Target name '{RESERVED_TARGET_NAME}' is reserved")
            if not _IDENTIFIER.match(target.name):
                raise ValueError(f"Target name '{target.name}' is not a valid identifier")
            if target.name in seen:
                raise ValueError(f"Duplicate target name '{target.name}'")
            seen.add(target.name)

            ref = target.reference
            if not ref.api_version or not ref.kind:
                raise ValueError(f"Target '{target.name}' reference requires apiVersion and kind")
            if ref.name is None and ref.label_selector is None:
                raise ValueError(f"Target '{target.name}' reference needs a name or a labelSelector")

        if self.conditions and self.retry_period is None:
            raise ValueError("retry.period is required when conditions are set")

        if self.ttl < timedelta(0):
            raise ValueError("ttl cannot be negative")

        return True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ttl": format_duration(self.ttl)}
        if self.retry_period is not None:
            data["retry"] = {"period": format_duration(self.retry_period)}
        if self.helm is not None:
            data["helm"] = {"release": self.helm.release, "delete": self.helm.delete}
        if self.targets:
            data["targets"] = [t.to_dict() for t in self.targets]
        if self.conditions:
            data["conditions"] = list(self.conditions)
        if self.cloud_event_sink is not None:
            data["cloudEventSink"] = self.cloud_event_sink
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionalTTLSpec":
        retry = data.get("retry") or {}
        helm = data.get("helm")
        return cls(
            ttl=parse_duration(data.get("ttl") or "0s"),
            retry_period=parse_duration(retry["period"]) if retry.get("period") else None,
            helm=HelmConfig(release=helm.get("release", ""), delete=bool(helm.get("delete", False))) if helm else None,
            targets=[Target.from_dict(t) for t in data.get("targets") or []],
            conditions=list(data.get("conditions") or []),
            cloud_event_sink=data.get("cloudEventSink"),
        )


@dataclass
class ConditionalTTL:
    """A ConditionalTTL object as read from the cluster.

    ``raw`` keeps the full object as received so that writes can carry
    fields this model does not interpret.
    """

    name: str
    namespace: str
    spec: ConditionalTTLSpec
    creation_timestamp: datetime
    status: ConditionalTTLStatus = field(default_factory=ConditionalTTLStatus)
    generation: int = 0
    resource_version: Optional[str] = None
    deletion_timestamp: Optional[datetime] = None
    finalizers: List[str] = field(default_factory=list)
    uid: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_being_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def expires_at(self) -> datetime:
        return self.creation_timestamp + self.spec.ttl

    def has_finalizer(self, name: str) -> bool:
        return name in self.finalizers

    def add_finalizer(self, name: str) -> bool:
        """Add a finalizer marker. Returns True if it was not present."""
        if name in self.finalizers:
            return False
        self.finalizers.append(name)
        return True

    def remove_finalizer(self, name: str) -> bool:
        """Remove a finalizer marker. Returns True if it was present."""
        if name not in self.finalizers:
            return False
        self.finalizers = [f for f in self.finalizers if f != name]
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the cluster object representation."""
        data = copy.deepcopy(self.raw) if self.raw else {}
        data["apiVersion"] = API_VERSION
        data["kind"] = KIND

        metadata = data.setdefault("metadata", {})
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        metadata["generation"] = self.generation
        metadata["creationTimestamp"] = format_timestamp(self.creation_timestamp)
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        if self.uid is not None:
            metadata["uid"] = self.uid
        if self.deletion_timestamp is not None:
            metadata["deletionTimestamp"] = format_timestamp(self.deletion_timestamp)
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)
        else:
            metadata.pop("finalizers", None)

        data["spec"] = self.spec.to_dict()
        data["status"] = self.status.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionalTTL":
        """Create from a cluster object dictionary.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        metadata = data.get("metadata") or {}
        if not metadata.get("name"):
            raise ValueError("ConditionalTTL requires metadata.name")

        created = parse_timestamp(metadata.get("creationTimestamp"))
        if created is None:
            raise ValueError(f"ConditionalTTL {metadata['name']} has no creationTimestamp")

        return cls(
            name=metadata["name"],
            namespace=metadata.get("namespace", "default"),
            spec=ConditionalTTLSpec.from_dict(data.get("spec") or {}),
            creation_timestamp=created,
            status=ConditionalTTLStatus.from_dict(data.get("status")),
            generation=int(metadata.get("generation", 0)),
            resource_version=metadata.get("resourceVersion"),
            deletion_timestamp=parse_timestamp(metadata.get("deletionTimestamp")),
            finalizers=list(metadata.get("finalizers") or []),
            uid=metadata.get("uid"),
            raw=copy.deepcopy(data),
        )
