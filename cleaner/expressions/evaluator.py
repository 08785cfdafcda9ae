"""Condition evaluation.

Conditions are compiled and evaluated in declared order. Every condition is
evaluated even after one is false, so the first compile or evaluation error
anywhere in the list is reported before concluding that the object is
waiting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Sequence

from celpy import celtypes
from celpy.celparser import CELParseError
from celpy.evaluation import CELEvalError
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedToken

from ..models.status import ConditionStatus, ReadyReason
from .library import EnvironmentBuildError, UndeclaredReferenceError, build_environment
from .macros import MacroError

logger = logging.getLogger(__name__)

MESSAGE_WAITING = "Waiting for conditions to be met"
MESSAGE_MET = "Targets resolved and conditions met"


@dataclass
class EvaluationOutcome:
    """Verdict of a condition evaluation pass.

    Attributes:
        met: Whether every condition holds
        retryable: Whether re-evaluating later may change the verdict
        reason: Ready reason to publish
        status: Ready status to publish
        message: Human-readable message naming the offending condition
    """

    met: bool
    retryable: bool
    reason: ReadyReason
    status: ConditionStatus
    message: str

    @classmethod
    def failure(cls, reason: ReadyReason, message: str, retryable: bool = False) -> "EvaluationOutcome":
        return cls(met=False, retryable=retryable, reason=reason, status=ConditionStatus.FALSE, message=message)


def describe_error(error: Exception) -> str:
    """One-line description of a compile or evaluation error.

    Parse errors carry a rendering of the source with a caret; the cause
    and position are rebuilt from the underlying parser error instead.
    Other errors are described by their first argument.
    """
    if isinstance(error, CELParseError):
        cause = error.__context__
        if isinstance(cause, UnexpectedToken) and cause.token.type != "$END":
            detail = f"unexpected token '{cause.token}'"
        elif isinstance(cause, (UnexpectedToken, UnexpectedEOF)):
            detail = "unexpected end of expression"
        elif isinstance(cause, UnexpectedCharacters):
            detail = f"unexpected character '{cause.char}'"
        else:
            detail = "syntax error"
        if error.line is not None:
            return f"{detail} at line {error.line}, column {error.column}"
        return detail

    if error.args:
        return str(error.args[0])
    return error.__class__.__name__


def is_boolean(value: Any) -> bool:
    return isinstance(value, (bool, celtypes.BoolType))


def evaluate_conditions(
    target_names: Iterable[str],
    conditions: Sequence[str],
    context: Dict[str, Any],
) -> EvaluationOutcome:
    """Compile and evaluate conditions against a context.

    Args:
        target_names: Targets declared in the environment
        conditions: Condition sources, in declared order
        context: Variable values (see ``build_context``)

    Returns:
        EvaluationOutcome describing the verdict
    """
    try:
        environment = build_environment(target_names)
    except EnvironmentBuildError as e:
        return EvaluationOutcome.failure(ReadyReason.ENVIRONMENT_ERROR, f"Error preparing CEL environment: {e}")

    result = True
    for index, source in enumerate(conditions):
        try:
            tree = environment.compile(source)
        except (CELParseError, MacroError, UndeclaredReferenceError) as e:
            logger.debug(f"Condition {index} failed to compile: {e}")
            return EvaluationOutcome.failure(
                ReadyReason.COMPILE_ERROR, f"Error compiling condition {index}: {describe_error(e)}"
            )

        try:
            value = environment.program(tree).evaluate(context)
        except CELEvalError as e:
            logger.debug(f"Condition {index} failed to evaluate: {e}")
            return EvaluationOutcome.failure(
                ReadyReason.EVALUATION_ERROR,
                f"Error evaluating condition {index}: {describe_error(e)}",
                retryable=True,
            )

        if not is_boolean(value):
            return EvaluationOutcome.failure(
                ReadyReason.RESULT_NOT_BOOLEAN, f"Condition {index} result is not a boolean value"
            )
        result = result and bool(value)

    if not result:
        return EvaluationOutcome.failure(ReadyReason.WAITING_FOR_CONDITIONS, MESSAGE_WAITING, retryable=True)

    return EvaluationOutcome(
        met=True,
        retryable=False,
        reason=ReadyReason.TERMINATING,
        status=ConditionStatus.TRUE,
        message=MESSAGE_MET,
    )
