"""VaultRepo - Typed repositories over path-based secret stores.

Secret stores such as HashiCorp Vault's KV engine only read, write, list and
delete single paths. VaultRepo maps pydantic entities onto
``keyspace/identifier`` paths and derives queries from repository method
names, filtering on identifiers while listing and sorting/paginating
locally, with results independent of the store's listing order.

Example:
    from typing import Annotated

    from pydantic import BaseModel

    from vaultrepo import Identifier, InMemorySecretStore, SecretRepository, entity, query_method

    @entity(keyspace="credentials")
    class Credential(BaseModel):
        id: Annotated[str, Identifier()]
        password: str = ""

    class CredentialRepository(SecretRepository[Credential]):
        @query_method
        def find_by_id_starts_with(self, prefix: str) -> list[Credential]: ...

    repo = CredentialRepository(InMemorySecretStore())
    repo.save(Credential(id="heisenberg", password="blue"))
    repo.find_by_id("heisenberg")
    repo.find_by_id_starts_with("heis")
"""

from vaultrepo.core.metadata import EntityMetadata, Identifier, MetadataRegistry, entity
from vaultrepo.core.store import InMemorySecretStore, JsonFileSecretStore, SecretStore
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
from vaultrepo.data.converter import EntityConverter
from vaultrepo.data.repository import SecretRepository, query_method
from vaultrepo.exceptions import (
    ConversionError,
    EntityNotFoundError,
    InvalidIdentifierError,
    MetadataError,
    QueryArgumentError,
    QueryCancelledError,
    StoreUnavailableError,
    UnsupportedKeywordError,
    UnsupportedPredicateError,
    VaultRepoError,
)
from vaultrepo.query import PredicateParser, QueryDescriptor, QueryExecutor

__version__ = "0.1.0"

__all__ = [
    # Repositories
    "SecretRepository",
    "query_method",
    # Metadata
    "entity",
    "Identifier",
    "EntityMetadata",
    "MetadataRegistry",
    # Stores
    "SecretStore",
    "InMemorySecretStore",
    "JsonFileSecretStore",
    "VaultSecretStore",
    # Types
    "Direction",
    "KeyspaceNaming",
    "Order",
    "PageRequest",
    "RepositoryConfig",
    "ScalarConverter",
    "Sort",
    # Engine
    "EntityConverter",
    "PredicateParser",
    "QueryDescriptor",
    "QueryExecutor",
    # Exceptions
    "VaultRepoError",
    "InvalidIdentifierError",
    "MetadataError",
    "UnsupportedPredicateError",
    "UnsupportedKeywordError",
    "QueryArgumentError",
    "QueryCancelledError",
    "StoreUnavailableError",
    "EntityNotFoundError",
    "ConversionError",
]
