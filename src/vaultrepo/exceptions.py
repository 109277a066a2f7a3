"""Custom exceptions for VaultRepo.

Every error carries a human-readable message plus a context dict so callers
(and the CLI's JSON mode) can act on it without parsing strings.
"""

from __future__ import annotations

from typing import Any


class VaultRepoError(Exception):
    """Base exception for all VaultRepo errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class InvalidIdentifierError(VaultRepoError):
    """Identifier cannot be turned into a store path."""

    def __init__(self, identifier: Any, reason: str) -> None:
        message = f"Invalid identifier {identifier!r}: {reason}."
        super().__init__(message, {"identifier": identifier, "reason": reason})
        self.identifier = identifier
        self.reason = reason


class MetadataError(VaultRepoError):
    """Entity type cannot be registered (no identifier, wrong identifier type, ...)."""

    def __init__(self, entity_type: str, reason: str) -> None:
        message = f"Cannot register entity '{entity_type}': {reason}"
        super().__init__(message, {"entity_type": entity_type, "reason": reason})
        self.entity_type = entity_type
        self.reason = reason


class UnsupportedPredicateError(VaultRepoError):
    """Query method references a property that cannot be queried."""

    def __init__(
        self,
        method_name: str,
        property_name: str,
        supported: list[str] | None = None,
    ) -> None:
        supported = supported or []
        message = (
            f"Method '{method_name}' references unsupported property '{property_name}'."
        )
        if supported:
            message += f" Supported properties: {', '.join(supported)}"
        super().__init__(
            message,
            {"method_name": method_name, "property": property_name, "supported": supported},
        )
        self.method_name = method_name
        self.property_name = property_name
        self.supported = supported


class UnsupportedKeywordError(VaultRepoError):
    """Query method name cannot be decomposed into a known keyword."""

    def __init__(self, method_name: str, fragment: str, hint: str = "") -> None:
        message = f"Cannot parse '{fragment}' in method '{method_name}'."
        if hint:
            message += f" {hint}"
        super().__init__(message, {"method_name": method_name, "fragment": fragment})
        self.method_name = method_name
        self.fragment = fragment


class QueryArgumentError(VaultRepoError):
    """Arguments passed to a query method do not match its predicates."""

    def __init__(self, method_name: str, reason: str) -> None:
        message = f"Invalid arguments for '{method_name}': {reason}"
        super().__init__(message, {"method_name": method_name, "reason": reason})
        self.method_name = method_name
        self.reason = reason


class QueryCancelledError(VaultRepoError):
    """Query was cancelled before all entities were fetched."""

    def __init__(self, keyspace: str, fetched: int) -> None:
        message = f"Query on keyspace '{keyspace}' cancelled after {fetched} fetch(es)."
        super().__init__(message, {"keyspace": keyspace, "fetched": fetched})
        self.keyspace = keyspace
        self.fetched = fetched


class StoreUnavailableError(VaultRepoError):
    """The secret store could not be reached or refused the request."""

    def __init__(self, operation: str, path: str, reason: str) -> None:
        message = f"Secret store {operation} failed for '{path}': {reason}"
        super().__init__(message, {"operation": operation, "path": path, "reason": reason})
        self.operation = operation
        self.path = path
        self.reason = reason


class EntityNotFoundError(VaultRepoError):
    """Nothing is stored at the given path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No entry found at '{path}'.", {"path": path})
        self.path = path


class ConversionError(VaultRepoError):
    """Document cannot be mapped to (or from) the target type."""

    def __init__(self, target: str, reason: str, field_path: str | None = None) -> None:
        location = f" at '{field_path}'" if field_path else ""
        message = f"Cannot convert{location} to '{target}': {reason}"
        super().__init__(
            message, {"target": target, "reason": reason, "field_path": field_path}
        )
        self.target = target
        self.reason = reason
        self.field_path = field_path
