"""Tests for the condition expression environment."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from celpy import celtypes
from celpy.celparser import CELParseError
from celpy.evaluation import CELEvalError

from cleaner.expressions.library import (
    EnvironmentBuildError,
    UndeclaredReferenceError,
    build_context,
    build_environment,
    to_cel,
)
from cleaner.expressions.macros import MacroError
from cleaner.models.status import TargetSnapshot

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

PEOPLE = [
    {"name": "a", "age": 30},
    {"name": "b", "age": 20},
    {"name": "c", "age": 40},
]


def run(source: str, **variables):
    """Compile and evaluate an expression with the given variables."""
    environment = build_environment(sorted(variables))
    context = {name: to_cel(value) for name, value in variables.items()}
    context["time"] = celtypes.TimestampType(NOW)
    return environment.program(environment.compile(source)).evaluate(context)


class TestBuildEnvironment:
    """Tests for build_environment."""

    def test_declares_time_and_targets(self) -> None:
        """Test the declared variables."""
        environment = build_environment(["pods", "db"])

        assert environment.variables == frozenset({"time", "pods", "db"})

    def test_fresh_environment_per_call(self) -> None:
        """Test that environments do not share declarations."""
        first = build_environment(["a"])
        second = build_environment(["b"])

        assert "b" not in first.variables
        assert "a" not in second.variables

    def test_reserved_time(self) -> None:
        """Test that a target named time is rejected."""
        with pytest.raises(EnvironmentBuildError, match="reserved"):
            build_environment(["time"])

    def test_duplicate_names(self) -> None:
        """Test that duplicate target names are rejected."""
        with pytest.raises(EnvironmentBuildError, match="more than once"):
            build_environment(["a", "a"])

    @pytest.mark.parametrize("name", ["1abc", "with-dash", "in", "null"])
    def test_invalid_identifier(self, name: str) -> None:
        """Test that names unusable as variables are rejected."""
        with pytest.raises(EnvironmentBuildError, match="not a valid identifier"):
            build_environment([name])


class TestCompile:
    """Tests for ConditionEnvironment.compile."""

    def test_syntax_error(self) -> None:
        """Test that malformed expressions fail to parse."""
        with pytest.raises(CELParseError):
            build_environment([]).compile("1 +")

    def test_undeclared_variable(self) -> None:
        """Test that unknown variables are compile errors."""
        with pytest.raises(UndeclaredReferenceError, match="missing"):
            build_environment(["pods"]).compile("missing.size() > 0")

    def test_undeclared_function(self) -> None:
        """Test that unknown functions are compile errors."""
        with pytest.raises(UndeclaredReferenceError, match="frobnicate"):
            build_environment(["pods"]).compile("frobnicate(pods)")

    def test_macro_variables_are_declared(self) -> None:
        """Test that comprehension variables are accepted."""
        environment = build_environment(["pods"])

        environment.compile("pods.items.all(p, p.metadata.name != '')")
        environment.compile("pods.items.sortBy(p, p.metadata.name).size() >= 0")

    def test_macro_error(self) -> None:
        """Test that invalid macro calls are reported at compile time."""
        with pytest.raises(MacroError):
            build_environment(["pods"]).compile("pods.items.sortBy(p.x, p)")


class TestOrderingFunctions:
    """Tests for sort, sortBy, reverseList and pair."""

    def test_sort_values(self) -> None:
        """Test sorting numbers in both directions."""
        assert run("sort([3, 1, 2], 'asc') == [1, 2, 3]")
        assert run("sort([3, 1, 2], 'DESC') == [3, 2, 1]")
        assert run("['b', 'a'].sort('asc') == ['a', 'b']")

    def test_sort_unknown_order(self) -> None:
        """Test that an unknown order is an evaluation error."""
        with pytest.raises(CELEvalError):
            run("sort([1, 2], 'sideways')")

    def test_sort_records_by_creation_timestamp(self) -> None:
        """Test that records are sorted by metadata.creationTimestamp."""
        pods = {
            "items": [
                {"metadata": {"name": "new", "creationTimestamp": "2024-05-03T00:00:00Z"}},
                {"metadata": {"name": "old", "creationTimestamp": "2024-05-01T00:00:00Z"}},
            ]
        }

        assert run("sort(pods.items, 'asc').map(p, p.metadata.name) == ['old', 'new']", pods=pods)

    def test_sort_by_projected_key(self) -> None:
        """Test sortBy with default and explicit order."""
        assert run("people.sortBy(p, p.age).map(p, p.name) == ['b', 'a', 'c']", people=PEOPLE)
        assert run("people.sortBy(p, p.age, 'desc').map(p, p.name) == ['c', 'a', 'b']", people=PEOPLE)

    def test_sort_by_matches_pair_sort(self) -> None:
        """Test that sortBy equals sorting explicit pairs."""
        assert run(
            "people.sortBy(p, p.name) == sort(people.map(p, pair(p.name, p)), 'asc')",
            people=PEOPLE,
        )

    def test_sort_by_unorderable_key(self) -> None:
        """Test that a key without ordering is an evaluation error."""
        with pytest.raises(CELEvalError):
            run("people.sortBy(p, [p.age])", people=PEOPLE)

    def test_reverse_list(self) -> None:
        """Test positional reversal."""
        assert run("reverseList([1, 'a', true]) == [true, 'a', 1]")

    def test_pair_fields(self) -> None:
        """Test that pair fields are readable."""
        assert run("pair(1, 'x').order == 1 && pair(1, 'x').value == 'x'")

    def test_time_variable(self) -> None:
        """Test that time is the evaluation instant."""
        assert run("time > timestamp('2024-05-01T11:00:00Z')")


class TestStringAndListFunctions:
    """Tests for the string and list helpers."""

    @pytest.mark.parametrize(
        "source",
        [
            "'hello'.charAt(1) == 'e'",
            "'hello'.charAt(5) == ''",
            "'hello'.indexOf('l') == 2",
            "'hello'.indexOf('l', 3) == 3",
            "'hello'.lastIndexOf('l') == 3",
            "'HeLLo'.lowerAscii() == 'hello'",
            "'hello'.upperAscii() == 'HELLO'",
            "'a-b-c'.replace('-', '+') == 'a+b+c'",
            "'a-b-c'.replace('-', '+', 1) == 'a+b-c'",
            "'a,b,c'.split(',') == ['a', 'b', 'c']",
            "'a,b,c'.split(',', 2) == ['a', 'b,c']",
            "'hello'.substring(1, 3) == 'el'",
            "'hello'.substring(2) == 'llo'",
            "'  x '.trim() == 'x'",
            "['a', 'b'].join('-') == 'a-b'",
            "['a', 'b'].join() == 'ab'",
            "[1, 2, 3].isSorted()",
            "![3, 1].isSorted()",
            "[1, 2, 3].sum() == 6",
            "[1, 2, 3].indexOf(2) == 1",
        ],
    )
    def test_helpers(self, source: str) -> None:
        """Test each helper with a representative call."""
        assert run(source)

    def test_out_of_range(self) -> None:
        """Test that out-of-range indexes are evaluation errors."""
        with pytest.raises(CELEvalError):
            run("'abc'.substring(2, 10)")


class TestBuildContext:
    """Tests for build_context and to_cel."""

    def test_only_included_targets(self) -> None:
        """Test that excluded targets are not in the context."""
        snapshots = [
            TargetSnapshot(name="a", delete=False, include_when_evaluating=True, state={"kind": "Pod"}),
            TargetSnapshot(name="b", delete=True, include_when_evaluating=False, state={"kind": "Pod"}),
        ]

        context = build_context(snapshots, NOW)

        assert set(context) == {"a", "time"}
        assert isinstance(context["a"], celtypes.MapType)
        assert isinstance(context["time"], celtypes.TimestampType)

    def test_to_cel_conversions(self) -> None:
        """Test conversion of plain values."""
        value = to_cel({"n": 1, "f": 1.5, "s": "x", "b": True, "l": [None]})

        assert isinstance(value[celtypes.StringType("n")], celtypes.IntType)
        assert isinstance(value[celtypes.StringType("f")], celtypes.DoubleType)
        assert isinstance(value[celtypes.StringType("s")], celtypes.StringType)
        assert isinstance(value[celtypes.StringType("b")], celtypes.BoolType)
        assert isinstance(value[celtypes.StringType("l")], celtypes.ListType)

    def test_to_cel_rejects_unknown_types(self) -> None:
        """Test that unsupported values raise TypeError."""
        with pytest.raises(TypeError):
            to_cel(object())
