"""Typed repositories over a secret store.

A repository binds one entity type to one keyspace and offers CRUD
operations plus derived queries. Derived queries are declared as stub
methods; their names are parsed once, when the class is defined, so a
misnamed method fails at import time rather than on first call. That needs
the entity registered (``@entity``) before the repository class; otherwise
the names are checked when the repository is constructed.

Example:
    class CredentialRepository(SecretRepository[Credential]):
        @query_method
        def find_by_id_starts_with(self, prefix: str) -> list[Credential]: ...

        @query_method
        def count_by_id_in(self, ids: list[str]) -> int: ...

    repo = CredentialRepository(InMemorySecretStore())
    repo.save(Credential(id="heisenberg", password="..."))
    repo.find_by_id_starts_with("heis")
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, ClassVar, Generic, TypeVar, cast, get_args, get_origin
from uuid import uuid4

from pydantic import BaseModel

from vaultrepo.core.metadata import EntityMetadata, MetadataRegistry, default_registry
from vaultrepo.core.paths import to_path, validate_identifier, validate_keyspace
from vaultrepo.core.store import SecretStore
from vaultrepo.core.types import PageRequest, RepositoryConfig, Sort
from vaultrepo.data.converter import EntityConverter
from vaultrepo.exceptions import InvalidIdentifierError
from vaultrepo.query.executor import QueryExecutor
from vaultrepo.query.parser import DescriptorCache, QueryAction, QueryDescriptor, default_cache

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)

_FIND_ALL = QueryDescriptor(method_name="find_all", action=QueryAction.FIND)


class QueryMethod:
    """Class attribute standing for a derived query.

    The decorated function's body is never run; only its name matters.
    Calls go through ``SecretRepository.query``.
    """

    def __init__(self, func: Callable[..., Any]) -> None:
        functools.update_wrapper(self, func)
        self.name = func.__name__

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self

        @functools.wraps(self.__wrapped__)  # type: ignore[attr-defined]
        def bound(
            *args: Any,
            page_request: PageRequest | None = None,
            cancel_event: threading.Event | None = None,
        ) -> Any:
            return instance.query(
                self.name, *args, page_request=page_request, cancel_event=cancel_event
            )

        return bound


def query_method(func: Callable[..., Any]) -> QueryMethod:
    """Declare a derived query on a ``SecretRepository`` subclass."""
    return QueryMethod(func)


def _entity_type_from_bases(cls: type) -> type[BaseModel] | None:
    """``SecretRepository[Credential]`` in the class bases -> ``Credential``."""
    for base in getattr(cls, "__orig_bases__", ()):
        origin = get_origin(base)
        if isinstance(origin, type) and issubclass(origin, SecretRepository):
            for arg in get_args(base):
                if isinstance(arg, type) and issubclass(arg, BaseModel):
                    return arg
    return None


class SecretRepository(Generic[EntityT]):
    """CRUD and derived queries for one entity type.

    Subclasses name their entity type through the generic parameter
    (``SecretRepository[Credential]``) or an ``entity_type`` class attribute.
    The base class can also be used directly by passing ``entity_type``.
    """

    entity_type: ClassVar[type[BaseModel] | None] = None
    query_methods: ClassVar[tuple[str, ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "entity_type" not in vars(cls):
            inferred = _entity_type_from_bases(cls)
            if inferred is not None:
                cls.entity_type = inferred

        declared = [name for name, value in vars(cls).items() if isinstance(value, QueryMethod)]
        cls.query_methods = tuple(dict.fromkeys([*cls.query_methods, *declared]))

        # A lookup registers by convention, so only registered types are checked here.
        if cls.entity_type is not None and cls.entity_type in default_registry:
            metadata = default_registry.get(cls.entity_type)
            for name in cls.query_methods:
                default_cache.get_or_parse(metadata, name)

    def __init__(
        self,
        store: SecretStore,
        entity_type: type[EntityT] | None = None,
        *,
        keyspace: str | None = None,
        config: RepositoryConfig | None = None,
        registry: MetadataRegistry | None = None,
        cache: DescriptorCache | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            store: Secret store holding the entities
            entity_type: Entity class (defaults to the class-level entity type)
            keyspace: Keyspace override (defaults to the registered or derived one)
            config: Naming, converter and discriminator settings
            registry: Metadata registry (defaults to the process-wide one)
            cache: Descriptor cache (defaults to the process-wide one)

        Raises:
            ValueError: If no entity type is known
            MetadataError: If the entity type cannot be described
            UnsupportedPredicateError, UnsupportedKeywordError: If a declared
                query method cannot be parsed
        """
        resolved_type = entity_type or self.entity_type
        if resolved_type is None:
            raise ValueError(
                f"{type(self).__name__} has no entity type. "
                "Subclass SecretRepository[YourEntity] or pass entity_type=..."
            )

        self._store = store
        self._config = config or RepositoryConfig()
        self._registry = registry or default_registry
        self._cache = cache or default_cache

        metadata = self._registry.get(resolved_type)
        if keyspace is not None:
            metadata = dataclasses.replace(metadata, keyspace=keyspace)
        self._metadata: EntityMetadata = metadata.with_keyspace(self._config.keyspace_naming)
        validate_keyspace(self.keyspace)

        self._converter = EntityConverter(self._config, self._registry)
        self._executor = QueryExecutor(store, self._converter, self._metadata)

        for name in self.query_methods:
            self._cache.get_or_parse(self._metadata, name)

    @property
    def metadata(self) -> EntityMetadata:
        return self._metadata

    @property
    def keyspace(self) -> str:
        return cast(str, self._metadata.keyspace)

    @property
    def converter(self) -> EntityConverter:
        return self._converter

    def _path(self, identifier: str) -> str:
        return to_path(self.keyspace, identifier)

    # === CRUD ===

    def save(self, entity: EntityT) -> EntityT:
        """Write an entity, replacing whatever was stored under its identifier.

        Entities with an auto-assigned identifier get a fresh UUID when it is
        empty; the returned copy carries it.

        Raises:
            InvalidIdentifierError: If the identifier is empty and not
                auto-assigned, or cannot form a path
            ConversionError: If the entity cannot be converted
        """
        identifier = self._metadata.get_id(entity)
        if not identifier:
            if not self._metadata.auto_id:
                raise InvalidIdentifierError(
                    identifier, f"{self._metadata.name}.{self._metadata.id_field} is empty"
                )
            identifier = str(uuid4())
            entity = entity.model_copy(update={self._metadata.id_field: identifier})

        path = self._path(identifier)
        self._store.write(path, self._converter.to_document(entity))
        logger.debug(f"Saved {self._metadata.name} at {path}")
        return entity

    def save_all(self, entities: Iterable[EntityT]) -> list[EntityT]:
        """Save entities one by one; stops at the first failure."""
        return [self.save(entity) for entity in entities]

    def find_by_id(self, identifier: str) -> EntityT | None:
        """Entity stored under ``identifier``, or None."""
        validate_identifier(identifier)
        return cast("EntityT | None", self._executor.fetch(identifier))

    def exists_by_id(self, identifier: str) -> bool:
        validate_identifier(identifier)
        return identifier in self._executor.list_identifiers()

    def find_all(self, request: PageRequest | Sort | None = None) -> list[EntityT]:
        """Every entity of the keyspace, optionally sorted and windowed.

        Without a sort, entities come back in identifier order.
        """
        args = (request,) if request is not None else ()
        return cast("list[EntityT]", self._executor.execute(_FIND_ALL, args))

    def find_all_by_id(self, identifiers: Iterable[str]) -> list[EntityT]:
        """Entities for the given identifiers, in the given order; missing ones are skipped."""
        found: list[EntityT] = []
        for identifier in dict.fromkeys(identifiers):
            entity = self.find_by_id(identifier)
            if entity is not None:
                found.append(entity)
        return found

    def count(self) -> int:
        """Number of entities in the keyspace. Lists only; never fetches."""
        return len(self._executor.list_identifiers())

    def delete(self, entity: EntityT) -> None:
        """Delete an entity by its identifier. Deleting a missing entity is a no-op."""
        self.delete_by_id(cast(str, self._metadata.get_id(entity)))

    def delete_by_id(self, identifier: str) -> None:
        path = self._path(identifier)
        self._store.delete(path)
        logger.debug(f"Deleted {path}")

    def delete_all(self) -> int:
        """Delete every entity in the keyspace and return how many were listed."""
        identifiers = self._executor.list_identifiers()
        for identifier in identifiers:
            self._store.delete(self._path(identifier))
        logger.info(f"Deleted {len(identifiers)} entry(ies) from '{self.keyspace}'")
        return len(identifiers)

    # === Derived queries ===

    def descriptor(self, method_name: str) -> QueryDescriptor:
        """Parsed descriptor for a method name (parsed on first use, then cached)."""
        return self._cache.get_or_parse(self._metadata, method_name)

    def query(
        self,
        method_name: str,
        *args: Any,
        page_request: PageRequest | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        """Run a derived query by method name.

        Example:
            repo.query("find_top2_by_id_starts_with_order_by_id_desc", "a")
            repo.query("count_by_id_between", "a", "m")
        """
        return self._executor.execute(
            self.descriptor(method_name),
            args,
            page_request=page_request,
            cancel_event=cancel_event,
        )
