"""Derived queries for VaultRepo.

Method names are parsed into descriptors (``parser``), bound to call
arguments and evaluated on identifiers (``predicates``), and run against a
store (``executor``).

Example:
    descriptor = PredicateParser().parse("find_top10_by_id_starts_with", metadata)
    results = QueryExecutor(store, converter, metadata).execute(descriptor, ["cred-"])
"""

from vaultrepo.query.executor import QueryExecutor
from vaultrepo.query.parser import (
    Combinator,
    DescriptorCache,
    Operator,
    PredicateClause,
    PredicateParser,
    QueryAction,
    QueryDescriptor,
    default_cache,
)

__all__ = [
    "QueryExecutor",
    "PredicateParser",
    "DescriptorCache",
    "default_cache",
    "QueryDescriptor",
    "PredicateClause",
    "QueryAction",
    "Combinator",
    "Operator",
]
