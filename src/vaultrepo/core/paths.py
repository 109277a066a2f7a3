"""Mapping between (keyspace, identifier) pairs and secret store paths."""

from __future__ import annotations

from vaultrepo.exceptions import InvalidIdentifierError

SEPARATOR = "/"


def validate_identifier(identifier: object) -> str:
    """Return the identifier if it can be used as a single path segment.

    Raises:
        InvalidIdentifierError: If the identifier is not a non-empty string
            free of path separators
    """
    if not isinstance(identifier, str):
        raise InvalidIdentifierError(identifier, "identifier must be a string")
    if not identifier:
        raise InvalidIdentifierError(identifier, "identifier must not be empty")
    if SEPARATOR in identifier:
        raise InvalidIdentifierError(
            identifier, f"identifier must not contain the path separator '{SEPARATOR}'"
        )
    return identifier


def validate_keyspace(keyspace: str) -> str:
    """Return the keyspace if it is usable as a path prefix."""
    if not keyspace or keyspace.startswith(SEPARATOR) or keyspace.endswith(SEPARATOR):
        raise InvalidIdentifierError(
            keyspace, "keyspace must be non-empty without leading or trailing separators"
        )
    return keyspace


def keyspace_path(keyspace: str) -> str:
    """Path to list in order to enumerate every entity of a keyspace."""
    return validate_keyspace(keyspace) + SEPARATOR


def to_path(keyspace: str, identifier: object) -> str:
    """Full store path of one entity: ``keyspace/identifier``."""
    return keyspace_path(keyspace) + validate_identifier(identifier)


def from_child_key(keyspace: str, child_key: str) -> str:
    """Identifier for a key returned by listing ``keyspace``.

    Listing already yields keys relative to the keyspace, so the key is the
    identifier.
    """
    return child_key


def is_leaf_key(child_key: str) -> bool:
    """False for sub-folder entries, which stores list with a trailing separator."""
    return bool(child_key) and not child_key.endswith(SEPARATOR)
