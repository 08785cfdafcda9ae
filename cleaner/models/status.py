"""Status model for ConditionalTTL objects.

The status is the only persisted state of the controller: the Ready
condition, the frozen target snapshots and the evaluation time.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.timestamps import format_timestamp, parse_timestamp

CONDITION_TYPE_READY = "Ready"


class ConditionStatus(Enum):
    """Tri-state status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ReadyReason(Enum):
    """Reason of the Ready condition.

    Exactly one reason holds at any time and it is the primary observable
    state of a ConditionalTTL. Values are the wire strings.
    """

    NOT_EXPIRED = "NotExpired"
    TARGET_RESOLVE_ERROR = "TargetResolveError"
    ENVIRONMENT_ERROR = "ConditionEnvironmentError"
    COMPILE_ERROR = "ConditionCompileError"
    EVALUATION_ERROR = "ConditionEvaluationError"
    RESULT_NOT_BOOLEAN = "ConditionResultNotBoolean"
    WAITING_FOR_CONDITIONS = "WaitingForConditions"
    TERMINATING = "Terminating"


@dataclass
class ReadyCondition:
    """A status condition entry.

    Attributes:
        status: True, False or Unknown
        reason: Machine-readable reason
        message: Human-readable message
        observed_generation: Object generation the condition was computed for
        type: Condition type (always "Ready" for this controller)
        last_transition_time: When status last changed
    """

    status: ConditionStatus
    reason: ReadyReason
    message: str
    observed_generation: int = 0
    type: str = CONDITION_TYPE_READY
    last_transition_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason.value,
            "message": self.message,
            "observedGeneration": self.observed_generation,
        }
        if self.last_transition_time is not None:
            data["lastTransitionTime"] = format_timestamp(self.last_transition_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadyCondition":
        return cls(
            type=data.get("type", CONDITION_TYPE_READY),
            status=ConditionStatus(data.get("status", "Unknown")),
            reason=ReadyReason(data["reason"]),
            message=data.get("message", ""),
            observed_generation=int(data.get("observedGeneration", 0)),
            last_transition_time=parse_timestamp(data.get("lastTransitionTime")),
        )


@dataclass
class TargetSnapshot:
    """Observed state of a target group at resolution time.

    ``state`` is either a single object record or a list object whose
    ``items`` hold the matched records.
    """

    name: str
    delete: bool
    include_when_evaluating: bool
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_collection(self) -> bool:
        return "items" in self.state and isinstance(self.state.get("items"), list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "delete": self.delete,
            "includeWhenEvaluating": self.include_when_evaluating,
            "state": copy.deepcopy(self.state),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetSnapshot":
        return cls(
            name=data["name"],
            delete=bool(data.get("delete", False)),
            include_when_evaluating=bool(data.get("includeWhenEvaluating", False)),
            state=copy.deepcopy(data.get("state") or {}),
        )


@dataclass
class ConditionalTTLStatus:
    """Persisted status of a ConditionalTTL."""

    conditions: List[ReadyCondition] = field(default_factory=list)
    targets: List[TargetSnapshot] = field(default_factory=list)
    evaluation_time: Optional[datetime] = None

    def ready_condition(self) -> Optional[ReadyCondition]:
        """Return the Ready condition, if one has been published."""
        for condition in self.conditions:
            if condition.type == CONDITION_TYPE_READY:
                return condition
        return None

    def set_condition(self, condition: ReadyCondition, now: datetime) -> None:
        """Insert or replace a condition of the same type.

        ``last_transition_time`` only moves when the status value changes,
        so repeated reconciliations with the same verdict keep the original
        transition time.

        Args:
            condition: New condition value
            now: Time to record as transition time when status changes
        """
        for index, existing in enumerate(self.conditions):
            if existing.type != condition.type:
                continue
            if existing.status == condition.status and existing.last_transition_time is not None:
                condition.last_transition_time = existing.last_transition_time
            else:
                condition.last_transition_time = now
            self.conditions[index] = condition
            return

        condition.last_transition_time = now
        self.conditions.append(condition)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.targets:
            data["targets"] = [target.to_dict() for target in self.targets]
        if self.evaluation_time is not None:
            data["evaluationTime"] = format_timestamp(self.evaluation_time)
        if self.conditions:
            data["conditions"] = [condition.to_dict() for condition in self.conditions]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConditionalTTLStatus":
        data = data or {}
        conditions = []
        for entry in data.get("conditions") or []:
            try:
                conditions.append(ReadyCondition.from_dict(entry))
            except (KeyError, ValueError):
                # conditions written by other tools are not ours to interpret
                continue
        return cls(
            conditions=conditions,
            targets=[TargetSnapshot.from_dict(t) for t in data.get("targets") or []],
            evaluation_time=parse_timestamp(data.get("evaluationTime")),
        )
