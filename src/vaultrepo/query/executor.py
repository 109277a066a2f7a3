"""Execution of query descriptors against a secret store.

The store can only list keys and fetch single entries, so every query runs
the same pipeline:

1. list the keyspace once (non-recursive)
2. evaluate the predicate on each identifier and order survivors by identifier
3. when a sort is requested, fetch every survivor before truncating
4. stable-sort, ties broken by identifier ascending
5. apply the static limit, then the runtime offset/limit
6. without a sort, fetch only the identifiers inside the window

Because the window is always cut from the complete, deterministically ordered
candidate set, results never depend on the store's listing order. The price
is that sorted queries fetch every matching entry.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel

from vaultrepo.core.metadata import EntityMetadata
from vaultrepo.core.paths import from_child_key, is_leaf_key, keyspace_path, to_path
from vaultrepo.core.store import SecretStore
from vaultrepo.core.types import Order, PageRequest, Sort
from vaultrepo.data.converter import EntityConverter
from vaultrepo.exceptions import EntityNotFoundError, QueryArgumentError, QueryCancelledError
from vaultrepo.query.parser import QueryAction, QueryDescriptor
from vaultrepo.query.predicates import bind_arguments, compile_predicate

logger = logging.getLogger(__name__)

Entry = tuple[str, BaseModel]


def _sort_key(value: Any) -> tuple[bool, Any]:
    # None sorts before any value when ascending.
    return (value is not None, value)


class QueryExecutor:
    """Runs descriptors for one entity type in one keyspace."""

    def __init__(
        self,
        store: SecretStore,
        converter: EntityConverter,
        metadata: EntityMetadata,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Secret store to query
            converter: Converter used to rebuild fetched entities
            metadata: Entity metadata; its keyspace must be set
        """
        if not metadata.keyspace:
            raise ValueError(f"Metadata for {metadata.name} has no keyspace")
        self._store = store
        self._converter = converter
        self._metadata = metadata
        self._keyspace: str = metadata.keyspace

    @property
    def keyspace(self) -> str:
        return self._keyspace

    def list_identifiers(self) -> list[str]:
        """Identifiers under the keyspace, in store listing order.

        A keyspace that does not exist yet is empty.
        """
        try:
            children = self._store.list(keyspace_path(self._keyspace))
        except EntityNotFoundError:
            return []
        return [from_child_key(self._keyspace, key) for key in children if is_leaf_key(key)]

    def fetch(self, identifier: str) -> BaseModel | None:
        """Fetch one entity, or None if nothing is stored under the identifier."""
        try:
            document = self._store.read(to_path(self._keyspace, identifier))
        except EntityNotFoundError:
            return None
        return self._converter.to_entity(document, self._metadata.entity_type)

    def execute(
        self,
        descriptor: QueryDescriptor,
        args: Sequence[Any] = (),
        page_request: PageRequest | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[BaseModel] | int | bool:
        """Run a query.

        Args:
            descriptor: Parsed query method
            args: Call arguments; a trailing ``PageRequest`` or ``Sort`` is
                used as the runtime request
            page_request: Runtime request passed by keyword
            cancel_event: When set, remaining fetches and deletes are abandoned

        Returns:
            Entities for find queries, the match count for count queries,
            whether anything matched for exists queries, and the number of
            deleted entries for delete queries

        Raises:
            QueryArgumentError: If arguments do not fit the descriptor
            QueryCancelledError: If ``cancel_event`` was set mid-query
            StoreUnavailableError: If any store call fails
        """
        bound, trailing_request = bind_arguments(descriptor, args)
        if trailing_request is not None and page_request is not None:
            raise QueryArgumentError(
                descriptor.method_name, "page request passed both positionally and by keyword"
            )
        page_request = page_request or trailing_request
        matches = compile_predicate(descriptor, bound)

        listed = self.list_identifiers()
        candidates = sorted(identifier for identifier in listed if matches(identifier))
        logger.debug(
            f"{descriptor.method_name} on '{self._keyspace}': "
            f"{len(candidates)} of {len(listed)} key(s) match"
        )

        if descriptor.action is QueryAction.COUNT:
            return len(candidates)
        if descriptor.action is QueryAction.EXISTS:
            return bool(candidates)

        sort = self._effective_sort(descriptor, page_request)
        fetched = 0

        def fetch_checked(identifier: str) -> BaseModel | None:
            nonlocal fetched
            if cancel_event is not None and cancel_event.is_set():
                raise QueryCancelledError(self._keyspace, fetched)
            fetched += 1
            return self.fetch(identifier)

        if sort:
            entries: list[Entry] = []
            for identifier in candidates:
                found = fetch_checked(identifier)
                if found is not None:
                    entries.append((identifier, found))
            ordered = self._sort(descriptor.method_name, entries, sort)
            window = self._window(ordered, descriptor.limit, page_request)
        elif descriptor.action is QueryAction.DELETE:
            window = [
                (identifier, None)
                for identifier in self._window(candidates, descriptor.limit, page_request)
            ]
        else:
            window = self._fetch_window(candidates, descriptor.limit, page_request, fetch_checked)

        logger.debug(f"{descriptor.method_name}: fetched {fetched}, returning {len(window)}")

        if descriptor.action is QueryAction.DELETE:
            deleted = 0
            for identifier, _ in window:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        f"Delete on '{self._keyspace}' cancelled after {deleted} entry(ies)"
                    )
                    raise QueryCancelledError(self._keyspace, fetched)
                self._store.delete(to_path(self._keyspace, identifier))
                deleted += 1
            logger.info(f"Deleted {deleted} entry(ies) from '{self._keyspace}'")
            return deleted
        return [found for _, found in window]

    def _effective_sort(
        self,
        descriptor: QueryDescriptor,
        page_request: PageRequest | None,
    ) -> Sort | None:
        """Runtime sort when given, otherwise the one parsed from the method name."""
        if page_request is not None and page_request.sort:
            allows_extra = self._metadata.entity_type.model_config.get("extra") == "allow"
            orders = []
            for order in page_request.sort.orders:
                name = self._metadata.resolve_property(order.name)
                if name is None and allows_extra:
                    name = order.name
                if name is None:
                    raise QueryArgumentError(
                        descriptor.method_name,
                        f"cannot sort by unknown property '{order.name}'. "
                        f"Available: {', '.join(self._metadata.fields)}",
                    )
                orders.append(Order(name=name, direction=order.direction))
            return Sort(orders=tuple(orders))
        return descriptor.sort

    @staticmethod
    def _sort(method_name: str, entries: list[Entry], sort: Sort) -> list[Entry]:
        """Order entries by ``sort``.

        Raises:
            QueryArgumentError: If a sort property holds values that cannot be
                compared with each other (dicts, lists, nested models, mixed types)
        """
        ordered = sorted(entries, key=lambda entry: entry[0])
        # Stable sorts from the least to the most significant order; reverse=True
        # keeps equal elements in identifier order.
        for order in reversed(sort.orders):
            try:
                ordered.sort(
                    key=lambda entry, name=order.name: _sort_key(getattr(entry[1], name, None)),
                    reverse=not order.ascending,
                )
            except TypeError as e:
                raise QueryArgumentError(
                    method_name, f"cannot sort by '{order.name}': its values are not comparable"
                ) from e
        return ordered

    @staticmethod
    def _window(items: list[Any], limit: int | None, page_request: PageRequest | None) -> list[Any]:
        if limit is not None:
            items = items[:limit]
        if page_request is not None:
            start = page_request.offset
            stop = start + page_request.limit if page_request.limit is not None else None
            items = items[start:stop]
        return items

    @staticmethod
    def _fetch_window(
        candidates: list[str],
        limit: int | None,
        page_request: PageRequest | None,
        fetch: Callable[[str], BaseModel | None],
    ) -> list[Entry]:
        """Fetch identifiers from the window start until it is full.

        Identifiers that vanished since listing are skipped and the next
        candidate (still within the static limit) takes their place.
        """
        if limit is not None:
            candidates = candidates[:limit]
        start = page_request.offset if page_request is not None else 0
        size = page_request.limit if page_request is not None else None

        entries: list[Entry] = []
        for identifier in candidates[start:]:
            if size is not None and len(entries) >= size:
                break
            found = fetch(identifier)
            if found is not None:
                entries.append((identifier, found))
        return entries
