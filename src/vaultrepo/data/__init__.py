"""Entity conversion and repositories."""

from vaultrepo.data.converter import EntityConverter
from vaultrepo.data.repository import QueryMethod, SecretRepository, query_method

__all__ = ["EntityConverter", "QueryMethod", "SecretRepository", "query_method"]
