"""Local evaluation of parsed predicates against identifiers.

All comparisons are on strings: ordering is lexicographic and matching is
case-sensitive. Clauses combine strictly left to right in the order written;
``a Or b And c`` means ``(a or b) and c``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import Any

from vaultrepo.core.types import PageRequest, Sort
from vaultrepo.exceptions import QueryArgumentError
from vaultrepo.query.parser import Combinator, Operator, PredicateClause, QueryDescriptor

Test = Callable[[str], bool]
BoundArguments = tuple[tuple[Any, ...], ...]


def bind_arguments(
    descriptor: QueryDescriptor,
    args: Sequence[Any],
) -> tuple[BoundArguments, PageRequest | None]:
    """Split call arguments into per-clause operands and a runtime page request.

    A trailing ``PageRequest`` or ``Sort`` argument is taken as the runtime
    request; every other argument is consumed by the clauses in order.

    Raises:
        QueryArgumentError: If the number of operands does not match
    """
    operands = list(args)
    page_request: PageRequest | None = None
    if operands and isinstance(operands[-1], (PageRequest, Sort)):
        last = operands.pop()
        page_request = last if isinstance(last, PageRequest) else PageRequest(sort=last)

    expected = descriptor.parameter_count
    if len(operands) != expected:
        raise QueryArgumentError(
            descriptor.method_name,
            f"expected {expected} argument(s) but received {len(operands)}",
        )

    bound: list[tuple[Any, ...]] = []
    position = 0
    for clause in descriptor.clauses:
        bound.append(tuple(operands[position : position + clause.arity]))
        position += clause.arity
    return tuple(bound), page_request


def _as_text(method_name: str, value: Any) -> str:
    if value is None:
        raise QueryArgumentError(method_name, "identifier operands must not be None")
    return value if isinstance(value, str) else str(value)


def _as_text_set(method_name: str, value: Any) -> frozenset[str]:
    if isinstance(value, str):
        return frozenset((value,))
    try:
        return frozenset(_as_text(method_name, item) for item in value)
    except TypeError as e:
        raise QueryArgumentError(method_name, f"expected a collection, got {value!r}") from e


def compile_clause(method_name: str, clause: PredicateClause, operands: tuple[Any, ...]) -> Test:
    """Build a test for one clause with its operands bound."""
    operator = clause.operator

    if operator in (Operator.IN, Operator.NOT_IN):
        values = _as_text_set(method_name, operands[0])
        if operator is Operator.IN:
            return lambda identifier: identifier in values
        return lambda identifier: identifier not in values

    if operator is Operator.BETWEEN:
        low, high = (_as_text(method_name, v) for v in operands)
        return lambda identifier: low <= identifier <= high

    value = _as_text(method_name, operands[0])

    if operator is Operator.REGEX:
        try:
            pattern = re.compile(value)
        except re.error as e:
            raise QueryArgumentError(
                method_name, f"invalid regular expression {value!r}: {e}"
            ) from e
        return lambda identifier: pattern.fullmatch(identifier) is not None

    tests: dict[Operator, Test] = {
        Operator.EQUALS: lambda identifier: identifier == value,
        Operator.NOT_EQUALS: lambda identifier: identifier != value,
        Operator.GREATER_THAN: lambda identifier: identifier > value,
        Operator.GREATER_THAN_EQUAL: lambda identifier: identifier >= value,
        Operator.LESS_THAN: lambda identifier: identifier < value,
        Operator.LESS_THAN_EQUAL: lambda identifier: identifier <= value,
        Operator.STARTING_WITH: lambda identifier: identifier.startswith(value),
        Operator.ENDING_WITH: lambda identifier: identifier.endswith(value),
        Operator.NOT_LIKE: lambda identifier: not identifier.startswith(value),
        Operator.CONTAINING: lambda identifier: value in identifier,
        Operator.NOT_CONTAINING: lambda identifier: value not in identifier,
    }
    return tests[operator]


def compile_predicate(descriptor: QueryDescriptor, bound: BoundArguments) -> Test:
    """Build the combined identifier test for a descriptor.

    A descriptor without clauses matches every identifier.
    """
    tests = [
        compile_clause(descriptor.method_name, clause, operands)
        for clause, operands in zip(descriptor.clauses, bound, strict=True)
    ]
    if not tests:
        return lambda identifier: True

    first, rest = tests[0], list(zip(descriptor.combinators, tests[1:], strict=True))

    def matches(identifier: str) -> bool:
        result = first(identifier)
        for combinator, test in rest:
            if combinator is Combinator.AND:
                result = result and test(identifier)
            else:
                result = result or test(identifier)
        return result

    return matches
