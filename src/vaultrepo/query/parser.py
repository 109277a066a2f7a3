"""Derive query descriptors from repository method names.

A method name is split into words (camelCase and snake_case are both
accepted), then decomposed as::

    <prefix> [<subject>] [By <clause> ((And|Or) <clause>)*] [OrderBy <field>[Asc|Desc]...]

Examples:
    find_by_id_starts_with                      -> id STARTING_WITH ?
    findTop10ByIdStartsWithOrderBySsnDesc       -> id STARTING_WITH ?, sort ssn desc, limit 10
    count_by_id_in                              -> count, id IN ?
    find_all_order_by_id_desc                   -> no predicate, sort id desc

Only the identifier property may appear in clauses: the store can only be
filtered by listing keys. Sort fields may be any declared property.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from vaultrepo.core.metadata import EntityMetadata
from vaultrepo.core.types import Direction, Order, Sort
from vaultrepo.exceptions import UnsupportedKeywordError, UnsupportedPredicateError

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


class QueryAction(StrEnum):
    """What a derived query does with the matching entities."""

    FIND = "find"
    COUNT = "count"
    EXISTS = "exists"
    DELETE = "delete"


class Combinator(StrEnum):
    """Boolean connective between two consecutive clauses."""

    AND = "and"
    OR = "or"


class Operator(StrEnum):
    """Comparison applied to the identifier."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN = "less_than"
    LESS_THAN_EQUAL = "less_than_equal"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"
    STARTING_WITH = "starting_with"
    ENDING_WITH = "ending_with"
    NOT_LIKE = "not_like"
    CONTAINING = "containing"
    NOT_CONTAINING = "not_containing"
    REGEX = "regex"

    @property
    def arity(self) -> int:
        """Number of call arguments the operator consumes."""
        return 2 if self is Operator.BETWEEN else 1


PREFIXES: dict[str, QueryAction] = {
    "find": QueryAction.FIND,
    "get": QueryAction.FIND,
    "read": QueryAction.FIND,
    "query": QueryAction.FIND,
    "search": QueryAction.FIND,
    "stream": QueryAction.FIND,
    "count": QueryAction.COUNT,
    "exists": QueryAction.EXISTS,
    "delete": QueryAction.DELETE,
    "remove": QueryAction.DELETE,
}

_KEYWORDS: dict[str, Operator] = {
    "Is": Operator.EQUALS,
    "Equals": Operator.EQUALS,
    "IsEqualTo": Operator.EQUALS,
    "Not": Operator.NOT_EQUALS,
    "IsNot": Operator.NOT_EQUALS,
    "After": Operator.GREATER_THAN,
    "IsAfter": Operator.GREATER_THAN,
    "GreaterThan": Operator.GREATER_THAN,
    "IsGreaterThan": Operator.GREATER_THAN,
    "GreaterThanEqual": Operator.GREATER_THAN_EQUAL,
    "IsGreaterThanEqual": Operator.GREATER_THAN_EQUAL,
    "Before": Operator.LESS_THAN,
    "IsBefore": Operator.LESS_THAN,
    "LessThan": Operator.LESS_THAN,
    "IsLessThan": Operator.LESS_THAN,
    "LessThanEqual": Operator.LESS_THAN_EQUAL,
    "IsLessThanEqual": Operator.LESS_THAN_EQUAL,
    "Between": Operator.BETWEEN,
    "IsBetween": Operator.BETWEEN,
    "In": Operator.IN,
    "IsIn": Operator.IN,
    "NotIn": Operator.NOT_IN,
    "IsNotIn": Operator.NOT_IN,
    "Like": Operator.STARTING_WITH,
    "IsLike": Operator.STARTING_WITH,
    "StartingWith": Operator.STARTING_WITH,
    "IsStartingWith": Operator.STARTING_WITH,
    "StartsWith": Operator.STARTING_WITH,
    "EndingWith": Operator.ENDING_WITH,
    "IsEndingWith": Operator.ENDING_WITH,
    "EndsWith": Operator.ENDING_WITH,
    "NotLike": Operator.NOT_LIKE,
    "IsNotLike": Operator.NOT_LIKE,
    "Containing": Operator.CONTAINING,
    "IsContaining": Operator.CONTAINING,
    "Contains": Operator.CONTAINING,
    "NotContaining": Operator.NOT_CONTAINING,
    "IsNotContaining": Operator.NOT_CONTAINING,
    "NotContains": Operator.NOT_CONTAINING,
    "Regex": Operator.REGEX,
    "MatchesRegex": Operator.REGEX,
    "Matches": Operator.REGEX,
}


def split_words(name: str) -> list[str]:
    """Split a camelCase or snake_case name into lower-case words.

    ``findTop10ByIdStartsWith`` and ``find_top10_by_id_starts_with`` both give
    ``["find", "top", "10", "by", "id", "starts", "with"]``.
    """
    words: list[str] = []
    for part in name.split("_"):
        words.extend(word.lower() for word in _WORD.findall(part))
    return words


def _camel(words: list[str] | tuple[str, ...]) -> str:
    return "".join(word.capitalize() for word in words)


# Longest keyword first so ``IsNot`` wins over ``Not`` and ``NotIn`` over ``In``.
KEYWORD_TABLE: tuple[tuple[tuple[str, ...], Operator], ...] = tuple(
    sorted(
        ((tuple(split_words(keyword)), operator) for keyword, operator in _KEYWORDS.items()),
        key=lambda entry: len(entry[0]),
        reverse=True,
    )
)
_KEYWORD_WORDS = {words for words, _ in KEYWORD_TABLE}


@dataclass(frozen=True)
class PredicateClause:
    """One comparison of the identifier property against call arguments."""

    property_name: str
    operator: Operator

    @property
    def arity(self) -> int:
        return self.operator.arity


@dataclass(frozen=True)
class QueryDescriptor:
    """Parsed form of one query method. Immutable and shareable across threads.

    ``distinct`` records a ``Distinct`` subject for display only: results are
    keyed by identifier, so they never hold duplicates and execution ignores it.
    """

    method_name: str
    action: QueryAction
    clauses: tuple[PredicateClause, ...] = ()
    combinators: tuple[Combinator, ...] = ()
    sort: Sort | None = None
    limit: int | None = None
    distinct: bool = False

    @property
    def parameter_count(self) -> int:
        """Positional arguments consumed by the clauses."""
        return sum(clause.arity for clause in self.clauses)

    @property
    def has_predicates(self) -> bool:
        return bool(self.clauses)


class PredicateParser:
    """Turns method names into ``QueryDescriptor``s for one entity type."""

    def parse(self, method_name: str, metadata: EntityMetadata) -> QueryDescriptor:
        """Parse a method name.

        Raises:
            UnsupportedKeywordError: If the name has no known prefix, an empty
                clause, or a clause with an unknown keyword
            UnsupportedPredicateError: If a clause targets anything but the
                identifier, or a sort field is not a declared property
        """
        words = split_words(method_name)
        if not words or words[0] not in PREFIXES:
            raise UnsupportedKeywordError(
                method_name,
                words[0] if words else method_name,
                f"Method names must start with one of: {', '.join(PREFIXES)}",
            )
        action = PREFIXES[words[0]]

        # Split off OrderBy first: sort properties may contain "by" (created_by).
        body, order_words = words[1:], []
        for index in range(len(body) - 1):
            if body[index] == "order" and body[index + 1] == "by":
                body, order_words = body[:index], body[index + 2 :]
                break

        subject, predicate = body, []
        if "by" in body:
            split = body.index("by")
            subject, predicate = body[:split], body[split + 1 :]

        limit, distinct = self._parse_subject(subject)
        clauses, combinators = self._parse_predicate(method_name, predicate, metadata)
        sort = self._parse_order(method_name, order_words, metadata) if order_words else None

        descriptor = QueryDescriptor(
            method_name=method_name,
            action=action,
            clauses=tuple(clauses),
            combinators=tuple(combinators),
            sort=sort,
            limit=limit,
            distinct=distinct,
        )
        logger.debug(f"Parsed {method_name}: {descriptor}")
        return descriptor

    @staticmethod
    def _parse_subject(subject: list[str]) -> tuple[int | None, bool]:
        limit: int | None = None
        distinct = "distinct" in subject
        for index, word in enumerate(subject):
            if word in ("first", "top"):
                following = subject[index + 1] if index + 1 < len(subject) else ""
                limit = int(following) if following.isdigit() else 1
                break
        if limit == 0:
            limit = None
        return limit, distinct

    def _parse_predicate(
        self,
        method_name: str,
        words: list[str],
        metadata: EntityMetadata,
    ) -> tuple[list[PredicateClause], list[Combinator]]:
        clauses: list[PredicateClause] = []
        combinators: list[Combinator] = []
        if not words:
            return clauses, combinators

        current: list[str] = []
        for word in [*words, None]:
            if word in ("and", "or", None):
                if not current:
                    raise UnsupportedKeywordError(
                        method_name, word or "", "Every And/Or must join two conditions."
                    )
                clauses.append(self._parse_clause(method_name, current, metadata))
                if word is not None:
                    combinators.append(Combinator(word))
                current = []
            else:
                current.append(word)
        return clauses, combinators

    def _parse_clause(
        self,
        method_name: str,
        words: list[str],
        metadata: EntityMetadata,
    ) -> PredicateClause:
        operator = Operator.EQUALS
        field_words = words
        for keyword, candidate in KEYWORD_TABLE:
            size = len(keyword)
            if len(words) > size and tuple(words[-size:]) == keyword:
                operator, field_words = candidate, words[:-size]
                break

        property_name = metadata.resolve_property(_camel(field_words))
        if property_name == metadata.id_field:
            return PredicateClause(property_name=property_name, operator=operator)

        if property_name is None:
            # "IdFoo": the identifier followed by something that is not a keyword.
            for split in range(len(words) - 1, 0, -1):
                head, rest = words[:split], tuple(words[split:])
                if metadata.resolve_property(_camel(head)) == metadata.id_field:
                    if rest not in _KEYWORD_WORDS:
                        raise UnsupportedKeywordError(
                            method_name,
                            _camel(rest),
                            f"Supported keywords: {', '.join(sorted(_KEYWORDS))}",
                        )

        raise UnsupportedPredicateError(
            method_name, property_name or _camel(field_words), [metadata.id_field]
        )

    @staticmethod
    def _parse_order(
        method_name: str,
        words: list[str],
        metadata: EntityMetadata,
    ) -> Sort:
        orders: list[Order] = []
        current: list[str] = []

        def close(direction: Direction) -> None:
            if not current:
                raise UnsupportedKeywordError(
                    method_name, direction.value, "OrderBy needs a property before a direction."
                )
            property_name = metadata.resolve_property(_camel(current))
            if property_name is None:
                raise UnsupportedPredicateError(
                    method_name, _camel(current), list(metadata.fields)
                )
            orders.append(Order(name=property_name, direction=direction))
            current.clear()

        for word in words:
            if word in Direction.values():
                close(Direction(word))
            else:
                current.append(word)
        if current:
            close(Direction.ASC)
        return Sort(orders=tuple(orders))


class DescriptorCache:
    """Cache of parsed descriptors.

    Entries are keyed by entity type, identifier property, declared fields and
    method name, so the same type described by two registries never shares a
    descriptor.

    Reads are lock-free; population parses outside the lock and publishes the
    finished descriptor under it, so readers never see a partial result. Two
    threads may parse the same name concurrently; the first published wins.
    """

    def __init__(self, parser: PredicateParser | None = None) -> None:
        self._parser = parser or PredicateParser()
        self._descriptors: dict[tuple[Any, ...], QueryDescriptor] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(metadata: EntityMetadata, method_name: str) -> tuple[Any, ...]:
        return (metadata.entity_type, metadata.id_field, metadata.fields, method_name)

    def get(self, metadata: EntityMetadata, method_name: str) -> QueryDescriptor | None:
        return self._descriptors.get(self._key(metadata, method_name))

    def get_or_parse(self, metadata: EntityMetadata, method_name: str) -> QueryDescriptor:
        key = self._key(metadata, method_name)
        descriptor = self._descriptors.get(key)
        if descriptor is None:
            parsed = self._parser.parse(method_name, metadata)
            with self._lock:
                descriptor = self._descriptors.setdefault(key, parsed)
        return descriptor

    def clear(self) -> None:
        with self._lock:
            self._descriptors.clear()

    def __len__(self) -> int:
        return len(self._descriptors)


default_cache = DescriptorCache()
