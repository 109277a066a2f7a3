"""CLI context management for store connections and shared state."""

import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict

from vaultrepo.core.metadata import EntityMetadata, build_metadata
from vaultrepo.core.store import Document, InMemorySecretStore, JsonFileSecretStore, SecretStore
from vaultrepo.core.vault import DEFAULT_MOUNT_POINT, VaultSecretStore
from vaultrepo.data.converter import EntityConverter

DEFAULT_STORE_URL = "file://./vaultrepo.json"


class RawSecret(BaseModel):
    """Schemaless view of a stored document; every key becomes an attribute."""

    model_config = ConfigDict(extra="allow")

    id: str = ""


class RawDocumentConverter(EntityConverter):
    """Reads documents as ``RawSecret``s without resolving discriminators.

    Documents written by other applications name classes the CLI cannot
    import, so the discriminator is dropped instead of resolved.
    """

    def to_entity(self, document: Document, target_type: type[BaseModel]) -> BaseModel:
        values: dict[str, Any] = {
            key: value for key, value in document.items() if key != self.discriminator_key
        }
        if not isinstance(values.get("id", ""), str):
            values["id"] = str(values["id"])
        return RawSecret.model_validate(values)


def raw_metadata(keyspace: str, fields: list[str] | None = None) -> EntityMetadata:
    """Metadata for ad-hoc CLI queries; ``fields`` become usable in OrderBy."""
    metadata = build_metadata(RawSecret, keyspace=keyspace)
    extra = tuple(f for f in (fields or []) if f not in metadata.fields)
    return EntityMetadata(
        entity_type=RawSecret,
        id_field=metadata.id_field,
        fields=metadata.fields + extra,
        keyspace=keyspace,
    )


def get_store_url(url: str | None) -> str:
    """Resolve store URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. VAULTREPO_STORE environment variable
    3. Default: file://./vaultrepo.json
    """
    if url:
        return url
    if env_url := os.getenv("VAULTREPO_STORE"):
        return env_url
    return DEFAULT_STORE_URL


def open_store(
    url: str,
    token: str | None = None,
    kv_version: int = 2,
    namespace: str | None = None,
) -> SecretStore:
    """Create a store from a URL.

    Supported:
    - file://path/to/secrets.json (JSON file store)
    - memory:// (throwaway in-memory store)
    - http(s)://vault:8200/<mount> (Vault KV engine at <mount>, default "secret")
    """
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return JsonFileSecretStore(url[len("file://") :])
    if parsed.scheme == "memory":
        return InMemorySecretStore()
    if parsed.scheme in ("http", "https"):
        mount_point = parsed.path.strip("/") or DEFAULT_MOUNT_POINT
        return VaultSecretStore.from_url(
            f"{parsed.scheme}://{parsed.netloc}",
            token=token or os.getenv("VAULT_TOKEN"),
            mount_point=mount_point,
            kv_version=kv_version,
            namespace=namespace,
        )
    raise ValueError(
        f"Unsupported store URL: '{url}'. Use file://, memory://, http:// or https://"
    )


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the store lifecycle and output preferences.
    """

    store_url: str
    json_output: bool
    token: str | None = None
    kv_version: int = 2
    namespace: str | None = None
    _store: SecretStore | None = field(default=None, init=False, repr=False)

    def get_store(self) -> SecretStore:
        """Get or create the secret store (lazy initialization)."""
        if self._store is None:
            self._store = open_store(
                self.store_url,
                token=self.token,
                kv_version=self.kv_version,
                namespace=self.namespace,
            )
        return self._store

    def close(self) -> None:
        """Drop the store reference."""
        self._store = None
