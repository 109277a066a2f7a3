"""Core components for VaultRepo: paths, metadata, stores and value types."""

from vaultrepo.core.metadata import (
    EntityMetadata,
    Identifier,
    MetadataRegistry,
    default_registry,
    entity,
)
from vaultrepo.core.paths import from_child_key, to_path
from vaultrepo.core.store import Document, InMemorySecretStore, JsonFileSecretStore, SecretStore
from vaultrepo.core.types import (
    Direction,
    KeyspaceNaming,
    Order,
    PageRequest,
    RepositoryConfig,
    ScalarConverter,
    Sort,
)
from vaultrepo.core.vault import VaultSecretStore

__all__ = [
    "EntityMetadata",
    "Identifier",
    "MetadataRegistry",
    "default_registry",
    "entity",
    "to_path",
    "from_child_key",
    "Document",
    "SecretStore",
    "InMemorySecretStore",
    "JsonFileSecretStore",
    "VaultSecretStore",
    "Direction",
    "KeyspaceNaming",
    "Order",
    "PageRequest",
    "RepositoryConfig",
    "ScalarConverter",
    "Sort",
]
