"""Condition expressions: ordering extensions, macros, environment and evaluation."""

from __future__ import annotations

from .evaluator import EvaluationOutcome, evaluate_conditions
from .library import (
    ConditionEnvironment,
    EnvironmentBuildError,
    UndeclaredReferenceError,
    build_context,
    build_environment,
    to_cel,
)
from .macros import MacroError, expand_macros
from .ordering import Comparison, OrderedPair, SortOrder, compare, make_pair, reverse_list, sort_unstructured, sort_values

__all__ = [
    "Comparison",
    "ConditionEnvironment",
    "EnvironmentBuildError",
    "EvaluationOutcome",
    "MacroError",
    "OrderedPair",
    "SortOrder",
    "UndeclaredReferenceError",
    "build_context",
    "build_environment",
    "compare",
    "evaluate_conditions",
    "expand_macros",
    "make_pair",
    "reverse_list",
    "sort_unstructured",
    "sort_values",
]
