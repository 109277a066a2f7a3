"""Entity metadata registration.

Each entity type is described once by an ``EntityMetadata`` record: the
keyspace it lives under, which property is its identifier, and which
properties it declares. Types register explicitly with the ``@entity``
decorator; unregistered pydantic models are described on first use from
conventions (a property named ``id`` and a keyspace derived from the class
name).

Example:
    @entity(keyspace="credentials")
    class Credential(BaseModel):
        id: Annotated[str, Identifier()]
        social_security_number: int = 0
"""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
import types
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel

from vaultrepo.core.types import KeyspaceNaming
from vaultrepo.exceptions import MetadataError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CONVENTIONAL_ID_FIELD = "id"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


@dataclass(frozen=True)
class Identifier:
    """Marks the identifier property: ``id: Annotated[str, Identifier()]``.

    ``auto=True`` lets the repository assign a generated identifier on save
    when the property is empty.
    """

    auto: bool = False


def type_alias(cls: type) -> str:
    """Fully-qualified name written to the discriminator field."""
    return f"{cls.__module__}.{cls.__qualname__}"


def normalize_property(name: str) -> str:
    """Case- and underscore-insensitive form used to match parsed names."""
    return name.replace("_", "").lower()


def to_snake_case(name: str) -> str:
    """CreditCard -> credit_card."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def derive_keyspace(entity_type: type, naming: KeyspaceNaming) -> str:
    """Keyspace for a type without an explicit one."""
    simple_name = entity_type.__name__
    if naming == KeyspaceNaming.LOWERCASE:
        return simple_name.lower()
    if naming == KeyspaceNaming.SNAKE_CASE:
        return to_snake_case(simple_name)
    return simple_name


@dataclass(frozen=True)
class EntityMetadata:
    """Everything the converter, codec and executor need to know about a type."""

    entity_type: type[BaseModel]
    id_field: str
    fields: tuple[str, ...]
    keyspace: str | None = None
    auto_id: bool = False

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def alias(self) -> str:
        return type_alias(self.entity_type)

    def with_keyspace(self, naming: KeyspaceNaming) -> EntityMetadata:
        """Copy with the keyspace filled in from the naming strategy if unset."""
        if self.keyspace:
            return self
        return dataclasses.replace(self, keyspace=derive_keyspace(self.entity_type, naming))

    def get_id(self, entity: BaseModel) -> str | None:
        return getattr(entity, self.id_field)

    def resolve_property(self, name: str) -> str | None:
        """Declared property matching ``name`` (``socialSecurityNumber`` and
        ``social_security_number`` both match), or None."""
        wanted = normalize_property(name)
        for field_name in self.fields:
            if normalize_property(field_name) == wanted:
                return field_name
        return None


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return (inner annotation, was_optional) for ``X | None``."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1 and len(get_args(annotation)) == 2:
            return args[0], True
    return annotation, False


def build_metadata(
    entity_type: type[BaseModel],
    keyspace: str | None = None,
    id_field: str | None = None,
    auto_id: bool | None = None,
) -> EntityMetadata:
    """Describe a pydantic model class.

    Raises:
        MetadataError: If the type is not a pydantic model, has no identifier,
            has more than one marked identifier, or the identifier is not a string
    """
    name = getattr(entity_type, "__name__", repr(entity_type))
    if not (isinstance(entity_type, type) and issubclass(entity_type, BaseModel)):
        raise MetadataError(name, "entities must be pydantic BaseModel subclasses")

    model_fields = entity_type.model_fields
    marker: Identifier | None = None

    if id_field is not None:
        if id_field not in model_fields:
            raise MetadataError(
                name,
                f"identifier '{id_field}' is not a field. "
                f"Available fields: {', '.join(model_fields)}",
            )
    else:
        marked = []
        for field_name, info in model_fields.items():
            for item in info.metadata:
                if isinstance(item, Identifier) or item is Identifier:
                    marked.append(field_name)
                    marker = item if isinstance(item, Identifier) else Identifier()
        if len(marked) > 1:
            raise MetadataError(name, f"more than one identifier marked: {', '.join(marked)}")
        if marked:
            id_field = marked[0]
        elif CONVENTIONAL_ID_FIELD in model_fields:
            id_field = CONVENTIONAL_ID_FIELD
        else:
            raise MetadataError(
                name,
                "no identifier found. Mark one field with Annotated[str, Identifier()], "
                "pass id_field=..., or declare a field named 'id'.",
            )

    if auto_id is None:
        auto_id = marker.auto if marker is not None else False

    annotation, optional = _unwrap_optional(model_fields[id_field].annotation)
    if annotation is not str:
        raise MetadataError(name, f"identifier '{id_field}' must be annotated as str")
    if optional and not auto_id:
        raise MetadataError(
            name, f"identifier '{id_field}' may only be optional when it is auto-assigned"
        )

    return EntityMetadata(
        entity_type=entity_type,
        id_field=id_field,
        fields=tuple(model_fields),
        keyspace=keyspace,
        auto_id=auto_id,
    )


class MetadataRegistry:
    """Process-wide registry of entity metadata and discriminator aliases.

    Registration happens at import/startup time; lookups afterwards are
    read-only.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metadata: dict[type, EntityMetadata] = {}
        self._aliases: dict[str, type] = {}

    def register(
        self,
        entity_type: type[BaseModel],
        keyspace: str | None = None,
        id_field: str | None = None,
        auto_id: bool | None = None,
    ) -> EntityMetadata:
        """Register an entity type and return its metadata."""
        metadata = build_metadata(
            entity_type, keyspace=keyspace, id_field=id_field, auto_id=auto_id
        )
        with self._lock:
            self._metadata[entity_type] = metadata
            self._aliases[metadata.alias] = entity_type
        logger.debug(
            f"Registered entity {metadata.name} (id={metadata.id_field}, "
            f"keyspace={metadata.keyspace or '<derived>'})"
        )
        return metadata

    def register_type(self, cls: type) -> None:
        """Make a nested (non-entity) type resolvable from its discriminator."""
        with self._lock:
            self._aliases[type_alias(cls)] = cls

    def get(self, entity_type: type[BaseModel]) -> EntityMetadata:
        """Metadata for a type, registering it from conventions if needed."""
        metadata = self._metadata.get(entity_type)
        if metadata is None:
            metadata = self.register(entity_type)
        return metadata

    def resolve_alias(self, alias: str) -> type | None:
        return self._aliases.get(alias)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._metadata


default_registry = MetadataRegistry()


def entity(
    cls: type[ModelT] | None = None,
    *,
    keyspace: str | None = None,
    id_field: str | None = None,
    auto_id: bool | None = None,
    registry: MetadataRegistry | None = None,
) -> type[ModelT] | Callable[[type[ModelT]], type[ModelT]]:
    """Class decorator registering a pydantic model as a stored entity.

    Usable bare (``@entity``) or with options (``@entity(keyspace="creds")``).
    """

    def decorate(target: type[ModelT]) -> type[ModelT]:
        (registry or default_registry).register(
            target, keyspace=keyspace, id_field=id_field, auto_id=auto_id
        )
        return target

    if cls is not None:
        return decorate(cls)
    return decorate
