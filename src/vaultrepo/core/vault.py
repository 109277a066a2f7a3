"""HashiCorp Vault KV store adapter built on hvac.

Supports KV version 1 and version 2 mounts. Vault has no native query
support, which is exactly the shape the repository layer expects: list
child keys, then read, write or delete single paths.
"""

from __future__ import annotations

import logging
from typing import Any

import hvac
from hvac.exceptions import InvalidPath, VaultError

from vaultrepo.core.store import Document
from vaultrepo.exceptions import EntityNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MOUNT_POINT = "secret"
SUPPORTED_KV_VERSIONS = (1, 2)


class VaultSecretStore:
    """``SecretStore`` backed by a Vault KV secrets engine.

    hvac raises ``InvalidPath`` for missing entries, which maps to
    ``EntityNotFoundError``. Every other Vault error, and transport failures
    from the underlying HTTP session, surface as ``StoreUnavailableError``.
    Retries and timeouts are the hvac client's concern.
    """

    def __init__(
        self,
        client: hvac.Client,
        mount_point: str = DEFAULT_MOUNT_POINT,
        kv_version: int = 2,
    ) -> None:
        """Initialize the store.

        Args:
            client: Authenticated hvac client
            mount_point: Path the KV engine is mounted at
            kv_version: KV engine version (1 or 2)

        Raises:
            ValueError: If the KV version is not supported
        """
        if kv_version not in SUPPORTED_KV_VERSIONS:
            raise ValueError(
                f"Unsupported KV version: {kv_version}. "
                f"Supported: {', '.join(str(v) for v in SUPPORTED_KV_VERSIONS)}"
            )
        self._client = client
        self._mount_point = mount_point
        self._kv_version = kv_version

    @classmethod
    def from_url(
        cls,
        url: str,
        token: str | None = None,
        mount_point: str = DEFAULT_MOUNT_POINT,
        kv_version: int = 2,
        namespace: str | None = None,
        timeout: int = 30,
    ) -> VaultSecretStore:
        """Create a store with a fresh token-authenticated hvac client."""
        client = hvac.Client(url=url, token=token, namespace=namespace, timeout=timeout)
        return cls(client, mount_point=mount_point, kv_version=kv_version)

    @property
    def mount_point(self) -> str:
        return self._mount_point

    @property
    def _kv(self) -> Any:
        if self._kv_version == 2:
            return self._client.secrets.kv.v2
        return self._client.secrets.kv.v1

    def _call(self, operation: str, path: str, func: Any, **kwargs: Any) -> Any:
        try:
            return func(path=path, mount_point=self._mount_point, **kwargs)
        except InvalidPath as e:
            raise EntityNotFoundError(path) from e
        except (VaultError, OSError) as e:
            raise StoreUnavailableError(operation, path, f"{type(e).__name__}: {e}") from e

    def list(self, path: str) -> list[str]:
        response = self._call("list", path, self._kv.list_secrets)
        keys = (response or {}).get("data", {}).get("keys") or []
        return [str(key) for key in keys]

    def read(self, path: str) -> Document:
        if self._kv_version == 2:
            response = self._call(
                "read", path, self._kv.read_secret_version, raise_on_deleted_version=True
            )
            return dict(response["data"]["data"] or {})
        response = self._call("read", path, self._kv.read_secret)
        return dict(response["data"] or {})

    def write(self, path: str, document: Document) -> None:
        self._call("write", path, self._kv.create_or_update_secret, secret=document)
        logger.debug(f"Wrote {path} to Vault mount {self._mount_point}")

    def delete(self, path: str) -> None:
        delete = (
            self._kv.delete_metadata_and_all_versions
            if self._kv_version == 2
            else self._kv.delete_secret
        )
        try:
            self._call("delete", path, delete)
        except EntityNotFoundError:
            pass
