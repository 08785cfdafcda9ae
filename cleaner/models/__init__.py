"""Data models for ConditionalTTL objects and their status."""

from __future__ import annotations

from .conditional_ttl import (
    API_GROUP,
    API_VERSION,
    KIND,
    PLURAL,
    ConditionalTTL,
    ConditionalTTLSpec,
    HelmConfig,
    Target,
    TargetReference,
)
from .status import (
    ConditionalTTLStatus,
    ConditionStatus,
    ReadyCondition,
    ReadyReason,
    TargetSnapshot,
)

__all__ = [
    "API_GROUP",
    "API_VERSION",
    "KIND",
    "PLURAL",
    "ConditionalTTL",
    "ConditionalTTLSpec",
    "ConditionalTTLStatus",
    "ConditionStatus",
    "HelmConfig",
    "ReadyCondition",
    "ReadyReason",
    "Target",
    "TargetReference",
    "TargetSnapshot",
]
