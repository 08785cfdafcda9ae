"""Expression environment for ConditionalTTL conditions.

Bundles the base language with string and list helpers, the ordering
functions (``sort``, ``reverseList``, ``pair``) and the ``sortBy`` macro,
and declares the free variables of a condition: ``time`` plus one per
target included in evaluation.

An environment is built per evaluation from the object's own target names;
nothing is registered globally, so two objects never see each other's
declarations.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

import celpy
from celpy import celtypes
from celpy.evaluation import CELEvalError, base_functions
from lark import Token, Tree

from ..models.status import TargetSnapshot
from .macros import MacroError, expand_macros, identifier_of
from .ordering import (
    OrderedPair,
    compare,
    make_pair,
    reverse_list,
    sort_pairs,
    sort_unstructured,
    sort_values,
)

logger = logging.getLogger(__name__)

TIME_VARIABLE = "time"

# Macros that bind their first argument as a loop variable
COMPREHENSION_MACROS = frozenset({"map", "filter", "all", "exists", "exists_one"})

# Identifiers the language resolves on its own
BUILTIN_IDENTIFIERS = frozenset(
    {"int", "uint", "double", "bool", "string", "bytes", "list", "map", "null_type", "type", "dyn"}
)

# Calls the evaluator handles itself rather than through the function table
SPECIAL_FUNCTIONS = frozenset({"has", "dyn", "type"})

RESERVED_WORDS = frozenset(
    {
        "true", "false", "null", "in", "as", "break", "const", "continue", "else", "for",
        "function", "if", "import", "let", "loop", "package", "namespace", "return", "var",
        "void", "while",
    }
)

_IDENTIFIER = re.compile(r"^[_a-zA-Z][_a-zA-Z0-9]*$")


class EnvironmentBuildError(Exception):
    """The expression environment cannot be built for an object."""


class UndeclaredReferenceError(Exception):
    """A condition refers to a variable that is not declared."""


def to_cel(value: Any) -> Any:
    """Convert a plain Python value to an expression value.

    Raises:
        TypeError: For values with no expression counterpart
    """
    if value is None:
        return celtypes.NullType()
    if isinstance(value, bool):
        return celtypes.BoolType(value)
    if isinstance(value, int):
        return celtypes.IntType(value)
    if isinstance(value, float):
        return celtypes.DoubleType(value)
    if isinstance(value, str):
        return celtypes.StringType(value)
    if isinstance(value, bytes):
        return celtypes.BytesType(value)
    if isinstance(value, datetime):
        return celtypes.TimestampType(value if value.tzinfo else value.replace(tzinfo=timezone.utc))
    if isinstance(value, date):
        return celtypes.StringType(value.isoformat())
    if isinstance(value, timedelta):
        return celtypes.DurationType(value)
    if isinstance(value, Mapping):
        return celtypes.MapType({celtypes.StringType(str(k)): to_cel(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return celtypes.ListType([to_cel(item) for item in value])
    raise TypeError(f"Cannot convert {type(value).__name__} to an expression value")


def _binding(name: str, function: Callable[..., Any]) -> Callable[..., Any]:
    """Turn Python errors of a bound function into evaluation errors."""

    @functools.wraps(function)
    def wrapper(*args: Any) -> Any:
        try:
            return function(*args)
        except (TypeError, ValueError, IndexError) as e:
            raise CELEvalError(f"{name}: {e}", e.__class__, e.args) from e

    return wrapper


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _sort(items: Any, order: Any = "asc") -> celtypes.ListType:
    if not isinstance(items, list):
        raise TypeError(f"sort expects a list, got {type(items).__name__}")
    if not isinstance(order, str):
        raise ValueError(f"unknown order: {order!r}")

    if items and all(isinstance(item, OrderedPair) for item in items):
        return celtypes.ListType(sort_pairs(items, order))
    if items and all(isinstance(item, Mapping) for item in items):
        return celtypes.ListType(sort_unstructured(items, order))
    return celtypes.ListType(sort_values(items, order))


def _reverse_list(items: Any) -> celtypes.ListType:
    if not isinstance(items, list):
        raise TypeError(f"reverseList expects a list, got {type(items).__name__}")
    return celtypes.ListType(reverse_list(items))


def _pair(order: Any, value: Any) -> OrderedPair:
    return make_pair(order, value)


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def _char_at(text: str, index: int) -> celtypes.StringType:
    if index < 0 or index > len(text):
        raise IndexError(f"index out of range: {index}")
    return celtypes.StringType(text[index:index + 1])


def _index_of(container: Any, item: Any, start: int = 0) -> celtypes.IntType:
    if isinstance(container, str):
        if start < 0 or start > len(container):
            raise IndexError(f"index out of range: {start}")
        return celtypes.IntType(container.find(item, start))
    if isinstance(container, list):
        for position, element in enumerate(container):
            if element == item:
                return celtypes.IntType(position)
        return celtypes.IntType(-1)
    raise TypeError(f"indexOf not supported on {type(container).__name__}")


def _last_index_of(container: Any, item: Any) -> celtypes.IntType:
    if isinstance(container, str):
        return celtypes.IntType(container.rfind(item))
    if isinstance(container, list):
        for position in range(len(container) - 1, -1, -1):
            if container[position] == item:
                return celtypes.IntType(position)
        return celtypes.IntType(-1)
    raise TypeError(f"lastIndexOf not supported on {type(container).__name__}")


def _lower_ascii(text: str) -> celtypes.StringType:
    return celtypes.StringType("".join(c.lower() if c.isascii() else c for c in text))


def _upper_ascii(text: str) -> celtypes.StringType:
    return celtypes.StringType("".join(c.upper() if c.isascii() else c for c in text))


def _replace(text: str, old: str, new: str, limit: int = -1) -> celtypes.StringType:
    return celtypes.StringType(text.replace(old, new, int(limit)))


def _split(text: str, separator: str, limit: int = -1) -> celtypes.ListType:
    limit = int(limit)
    if limit == 0:
        return celtypes.ListType([])
    parts = text.split(separator, limit - 1) if limit > 0 else text.split(separator)
    return celtypes.ListType([celtypes.StringType(p) for p in parts])


def _substring(text: str, start: int, end: Optional[int] = None) -> celtypes.StringType:
    stop = len(text) if end is None else int(end)
    if start < 0 or stop > len(text) or start > stop:
        raise IndexError(f"substring out of range: [{start}:{stop}]")
    return celtypes.StringType(text[int(start):stop])


def _trim(text: str) -> celtypes.StringType:
    return celtypes.StringType(text.strip())


def _join(items: Any, separator: str = "") -> celtypes.StringType:
    if not all(isinstance(item, str) for item in items):
        raise TypeError("join expects a list of strings")
    return celtypes.StringType(separator.join(items))


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------


def _is_sorted(items: Any) -> celtypes.BoolType:
    for left, right in zip(items, items[1:]):
        if compare(left, right) > 0:
            return celtypes.BoolType(False)
    return celtypes.BoolType(True)


def _sum(items: Any) -> Any:
    if not items:
        return celtypes.IntType(0)
    total = items[0]
    for item in items[1:]:
        total = total + item
    return total


def extension_functions() -> Dict[str, Callable[..., Any]]:
    """Function table added on top of the language's base functions."""
    functions = {
        "sort": _sort,
        "reverseList": _reverse_list,
        "pair": _pair,
        "charAt": _char_at,
        "indexOf": _index_of,
        "lastIndexOf": _last_index_of,
        "lowerAscii": _lower_ascii,
        "upperAscii": _upper_ascii,
        "replace": _replace,
        "split": _split,
        "substring": _substring,
        "trim": _trim,
        "join": _join,
        "isSorted": _is_sorted,
        "sum": _sum,
    }
    return {name: _binding(name, function) for name, function in functions.items()}


class ConditionEnvironment:
    """Compilation and evaluation environment for one object's conditions.

    Attributes:
        variables: Declared free variables
        functions: Extension function table
    """

    def __init__(self, variables: Iterable[str]) -> None:
        self.variables: FrozenSet[str] = frozenset(variables)
        self.functions = extension_functions()
        self._env = celpy.Environment()

    def parse(self, source: str) -> Tree:
        """Parse without macro expansion or checks."""
        return self._env.compile(source)

    def compile(self, source: str) -> Tree:
        """Parse, expand macros and check variable references.

        Raises:
            CELParseError: Syntax errors
            MacroError: Invalid macro calls
            UndeclaredReferenceError: Reference to an undeclared variable
        """
        tree = expand_macros(self.parse(source), self.parse)
        self._check_references(tree)
        return tree

    def program(self, tree: Tree) -> Any:
        """Create a runnable program from a compiled tree."""
        return self._env.program(tree, functions=self.functions)

    def _check_references(self, tree: Tree) -> None:
        known_functions = set(base_functions) | set(self.functions) | COMPREHENSION_MACROS | SPECIAL_FUNCTIONS
        bound = set()
        for call in tree.find_data("member_dot_arg"):
            name = _token_name(call)
            if name not in known_functions:
                raise UndeclaredReferenceError(f"undeclared reference to function '{name}'")
            if name not in COMPREHENSION_MACROS:
                continue
            arguments = [c for c in call.children if isinstance(c, Tree)]
            if len(arguments) < 2 or not arguments[1].children:
                continue
            variable = identifier_of(arguments[1].children[0])
            if variable:
                bound.add(variable)

        for call in tree.find_data("ident_arg"):
            name = _token_name(call)
            if name not in known_functions:
                raise UndeclaredReferenceError(f"undeclared reference to function '{name}'")

        allowed = self.variables | bound | BUILTIN_IDENTIFIERS
        for node in tree.find_data("ident"):
            name = str(node.children[0])
            if name not in allowed:
                raise UndeclaredReferenceError(f"undeclared reference to '{name}'")


def _token_name(call: Tree) -> Optional[str]:
    return next((str(c) for c in call.children if isinstance(c, Token)), None)


def build_environment(target_names: Iterable[str]) -> ConditionEnvironment:
    """Build a fresh environment declaring ``time`` and the given targets.

    Args:
        target_names: Names of the targets included in evaluation

    Returns:
        New ConditionEnvironment

    Raises:
        EnvironmentBuildError: On reserved, duplicate or invalid names
    """
    names: List[str] = []
    for name in target_names:
        if name == TIME_VARIABLE:
            raise EnvironmentBuildError(f"target name '{TIME_VARIABLE}' is reserved")
        if not _IDENTIFIER.match(name) or name in RESERVED_WORDS:
            raise EnvironmentBuildError(f"target name '{name}' is not a valid identifier")
        if name in names:
            raise EnvironmentBuildError(f"target '{name}' declared more than once")
        names.append(name)

    logger.debug(f"Building condition environment with variables: {[TIME_VARIABLE] + names}")
    return ConditionEnvironment([TIME_VARIABLE] + names)


def build_context(snapshots: Iterable[TargetSnapshot], now: datetime) -> Dict[str, Any]:
    """Build the evaluation context from target snapshots.

    Only targets included in evaluation are exposed; ``time`` is the
    evaluation instant.
    """
    context: Dict[str, Any] = {}
    for snapshot in snapshots:
        if not snapshot.include_when_evaluating:
            continue
        context[snapshot.name] = to_cel(snapshot.state)
    context[TIME_VARIABLE] = celtypes.TimestampType(now)
    return context
