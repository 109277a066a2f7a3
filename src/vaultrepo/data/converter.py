"""Conversion between pydantic entities and store documents.

A document is a JSON object. Scalars are serialized through pydantic's
``TypeAdapter`` in JSON mode; nested models, lists, sets, tuples and dicts
are converted recursively. Wherever the declared type of a value does not
pin down its concrete class (abstract base, union, ``Any``, or a subclass
instance), the nested document carries a discriminator key naming the class
so it can be rebuilt on read. The root document always carries it.
"""

from __future__ import annotations

import collections.abc
import inspect
import sys
import types
from functools import lru_cache
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from vaultrepo.core.metadata import MetadataRegistry, default_registry, type_alias
from vaultrepo.core.store import Document
from vaultrepo.core.types import RepositoryConfig, ScalarConverter
from vaultrepo.exceptions import ConversionError

_SEQUENCE_ORIGINS = {
    list,
    set,
    frozenset,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.MutableSet,
    collections.abc.Collection,
    collections.abc.Iterable,
}
_MAPPING_ORIGINS = {dict, collections.abc.Mapping, collections.abc.MutableMapping}


@lru_cache(maxsize=256)
def _adapter(annotation: Any) -> TypeAdapter[Any]:
    return TypeAdapter(annotation)


def _strip_annotated(annotation: Any) -> Any:
    while get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    return annotation


def _is_union(annotation: Any) -> bool:
    origin = get_origin(annotation)
    return origin is Union or origin is types.UnionType


def _unwrap_optional(annotation: Any) -> Any:
    """``X | None`` -> ``X``; other unions keep their remaining members."""
    annotation = _strip_annotated(annotation)
    if not _is_union(annotation):
        return annotation
    args = tuple(a for a in get_args(annotation) if a is not type(None))
    if len(args) == 1:
        return _strip_annotated(args[0])
    return Union[args]  # noqa: UP007


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _model_members(annotation: Any) -> tuple[type[BaseModel], ...]:
    """Model classes a declared annotation can hold."""
    if _is_model(annotation):
        return (annotation,)
    if _is_union(annotation):
        return tuple(a for a in get_args(annotation) if _is_model(_strip_annotated(a)))
    return ()


def _type_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or repr(annotation)


def zero_value(annotation: Any) -> Any:
    """Default for a required property missing from a document."""
    annotation = _strip_annotated(annotation)
    if _is_union(annotation) and type(None) in get_args(annotation):
        return None
    origin = get_origin(annotation) or annotation
    if origin in (list, collections.abc.Sequence, collections.abc.MutableSequence):
        return []
    if origin in (set, collections.abc.Set, collections.abc.MutableSet):
        return set()
    if origin is frozenset:
        return frozenset()
    if origin is tuple:
        return ()
    if origin in _MAPPING_ORIGINS:
        return {}
    if annotation is bool:
        return False
    if annotation is int:
        return 0
    if annotation is float:
        return 0.0
    if annotation is str:
        return ""
    return None


class EntityConverter:
    """Maps entities to documents and back.

    Custom ``ScalarConverter``s from the configuration run before the default
    mapping: on write they match by ``isinstance`` of the value, on read by the
    declared property type.
    """

    def __init__(
        self,
        config: RepositoryConfig | None = None,
        registry: MetadataRegistry | None = None,
    ) -> None:
        self._config = config or RepositoryConfig()
        self._registry = registry or default_registry
        self._converters: list[ScalarConverter] = list(self._config.custom_converters)

    @property
    def discriminator_key(self) -> str:
        return self._config.discriminator_key

    # === Writing ===

    def to_document(self, entity: BaseModel) -> Document:
        """Convert an entity into a fresh document."""
        if not isinstance(entity, BaseModel):
            raise ConversionError("document", f"{type(entity).__name__} is not a pydantic model")
        return self._write_model(entity, type(entity).__name__, with_discriminator=True)

    def _write_model(self, model: BaseModel, path: str, with_discriminator: bool) -> Document:
        cls = type(model)
        document: Document = {}
        if with_discriminator:
            self._registry.register_type(cls)
            document[self.discriminator_key] = type_alias(cls)
        for name, info in cls.model_fields.items():
            document[name] = self._write_value(
                getattr(model, name), info.annotation, f"{path}.{name}"
            )
        for name, value in (model.model_extra or {}).items():
            document[name] = self._write_value(value, Any, f"{path}.{name}")
        return document

    def _custom_for_value(self, value: Any) -> ScalarConverter | None:
        for converter in self._converters:
            if isinstance(value, converter.source_type):
                return converter
        return None

    def _write_value(self, value: Any, annotation: Any, path: str) -> Any:
        if value is None:
            return None

        custom = self._custom_for_value(value)
        if custom is not None:
            return custom.write(value)

        declared = _unwrap_optional(annotation)

        if isinstance(value, BaseModel):
            return self._write_model(value, path, with_discriminator=type(value) is not declared)

        origin = get_origin(declared)
        args = get_args(declared)

        if isinstance(value, collections.abc.Mapping):
            if origin in _MAPPING_ORIGINS and len(args) == 2:
                key_type, value_type = args
            else:
                key_type, value_type = Any, Any
            return {
                self._write_key(k, key_type, path): self._write_value(v, value_type, f"{path}.{k}")
                for k, v in value.items()
            }

        if isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
            return [
                self._write_value(item, self._element_type(declared, index), f"{path}[{index}]")
                for index, item in enumerate(items)
            ]

        try:
            return _adapter(type(value)).dump_python(value, mode="json")
        except (TypeError, ValueError) as e:
            raise ConversionError(_type_name(type(value)), str(e), path) from e

    def _write_key(self, key: Any, key_type: Any, path: str) -> str:
        if isinstance(key, str):
            return key
        written = self._write_value(key, key_type, path)
        return written if isinstance(written, str) else str(written)

    @staticmethod
    def _element_type(declared: Any, index: int) -> Any:
        origin = get_origin(declared)
        args = get_args(declared)
        if origin not in _SEQUENCE_ORIGINS or not args:
            return Any
        if origin is tuple and not (len(args) == 2 and args[1] is Ellipsis):
            return args[index] if index < len(args) else Any
        return args[0]

    # === Reading ===

    def to_entity(self, document: Document, target_type: type[BaseModel]) -> BaseModel:
        """Rebuild an entity of ``target_type`` (or the subclass named by the
        document's discriminator)."""
        return self._read_model(document, target_type, target_type.__name__)

    def _custom_for_type(self, annotation: Any) -> ScalarConverter | None:
        if not isinstance(annotation, type):
            return None
        for converter in self._converters:
            if issubclass(annotation, converter.source_type):
                return converter
        return None

    def _read_value(self, raw: Any, annotation: Any, path: str) -> Any:
        if raw is None:
            return None

        declared = _unwrap_optional(annotation)

        custom = self._custom_for_type(declared)
        if custom is not None:
            return custom.read(raw)

        if declared is Any or declared is object:
            if isinstance(raw, dict) and self.discriminator_key in raw:
                return self._read_model(raw, BaseModel, path)
            return raw

        if _model_members(declared):
            if isinstance(raw, dict):
                return self._read_model(raw, declared, path)
            if _is_model(declared):
                raise ConversionError(_type_name(declared), "expected a nested document", path)

        origin = get_origin(declared)
        args = get_args(declared)

        if origin in _MAPPING_ORIGINS and isinstance(raw, dict):
            key_type, value_type = args if len(args) == 2 else (Any, Any)
            return {
                self._read_scalar(k, key_type, path): self._read_value(v, value_type, f"{path}.{k}")
                for k, v in raw.items()
            }

        if origin in _SEQUENCE_ORIGINS and isinstance(raw, list):
            items = [
                self._read_value(item, self._element_type(declared, index), f"{path}[{index}]")
                for index, item in enumerate(raw)
            ]
            if origin in (set, collections.abc.Set, collections.abc.MutableSet):
                return set(items)
            if origin is frozenset:
                return frozenset(items)
            if origin is tuple:
                return tuple(items)
            return items

        return self._read_scalar(raw, declared, path)

    @staticmethod
    def _read_scalar(raw: Any, annotation: Any, path: str) -> Any:
        if annotation is Any:
            return raw
        try:
            return _adapter(annotation).validate_python(raw)
        except ValidationError as e:
            reason = e.errors()[0]["msg"] if e.errors() else str(e)
            raise ConversionError(_type_name(annotation), f"{raw!r}: {reason}", path) from e

    def _resolve(self, alias: str, declared: Any, path: str) -> type[BaseModel]:
        cls = self._registry.resolve_alias(alias)
        if cls is None:
            cls = _lookup_loaded_class(alias)
        if cls is None or not _is_model(cls):
            raise ConversionError(
                _type_name(declared),
                f"unknown type '{alias}' in discriminator; register it or import its module",
                path,
            )
        allowed = _model_members(declared) or (BaseModel,)
        if not issubclass(cls, allowed):
            raise ConversionError(
                _type_name(declared), f"'{alias}' is not assignable to the declared type", path
            )
        return cls

    def _read_model(self, raw: Any, declared: Any, path: str) -> BaseModel:
        if not isinstance(raw, dict):
            raise ConversionError(_type_name(declared), "expected a document", path)

        alias = raw.get(self.discriminator_key)
        if alias:
            cls = self._resolve(str(alias), declared, path)
        elif _is_model(declared) and declared is not BaseModel and not inspect.isabstract(declared):
            cls = declared
        else:
            raise ConversionError(
                _type_name(declared),
                f"missing '{self.discriminator_key}' for a polymorphic value",
                path,
            )

        values: dict[str, Any] = {}
        for name, info in cls.model_fields.items():
            if name in raw:
                values[name] = self._read_value(raw[name], info.annotation, f"{path}.{name}")
            elif info.is_required():
                values[name] = zero_value(info.annotation)

        if cls.model_config.get("extra") == "allow":
            for name, value in raw.items():
                if name not in cls.model_fields and name != self.discriminator_key:
                    values[name] = self._read_value(value, Any, f"{path}.{name}")

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConversionError(cls.__name__, str(e), path) from e


def _lookup_loaded_class(alias: str) -> type | None:
    """Find ``module.QualName`` among already imported modules (never imports)."""
    parts = alias.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module = sys.modules.get(".".join(parts[:split]))
        if module is None:
            continue
        target: Any = module
        for attribute in parts[split:]:
            target = getattr(target, attribute, None)
            if target is None:
                break
        if isinstance(target, type):
            return target
    return None
