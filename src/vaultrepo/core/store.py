"""Secret store protocol and local store implementations.

The repository layer only ever talks to a ``SecretStore``: four path-based
operations with full-document replace semantics and no query support.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from vaultrepo.core.paths import SEPARATOR
from vaultrepo.exceptions import EntityNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

Document = dict[str, Any]


@runtime_checkable
class SecretStore(Protocol):
    """Path-based secret store.

    ``list`` returns keys relative to ``path``; sub-folders are returned with
    a trailing ``/``. Both ``list`` and ``read`` raise ``EntityNotFoundError``
    when nothing exists at ``path``. ``delete`` is idempotent.
    """

    def list(self, path: str) -> list[str]: ...

    def read(self, path: str) -> Document: ...

    def write(self, path: str, document: Document) -> None: ...

    def delete(self, path: str) -> None: ...


def _children(paths: list[str], path: str) -> list[str]:
    """Direct children of ``path`` among a flat list of full paths."""
    prefix = path if path.endswith(SEPARATOR) else path + SEPARATOR
    children: list[str] = []
    seen: set[str] = set()
    for full_path in paths:
        if not full_path.startswith(prefix):
            continue
        rest = full_path[len(prefix) :]
        head, sep, _ = rest.partition(SEPARATOR)
        child = head + sep
        if child and child not in seen:
            seen.add(child)
            children.append(child)
    return children


class InMemorySecretStore:
    """Dict-backed store.

    Documents are deep-copied on the way in and out so callers never share
    state with the store, mirroring a remote round trip.
    """

    def __init__(self, documents: dict[str, Document] | None = None) -> None:
        self._lock = threading.Lock()
        self._documents: dict[str, Document] = copy.deepcopy(documents or {})

    def list(self, path: str) -> list[str]:
        with self._lock:
            children = _children(list(self._documents), path)
        if not children:
            raise EntityNotFoundError(path)
        return children

    def read(self, path: str) -> Document:
        with self._lock:
            if path not in self._documents:
                raise EntityNotFoundError(path)
            return copy.deepcopy(self._documents[path])

    def write(self, path: str, document: Document) -> None:
        with self._lock:
            self._documents[path] = copy.deepcopy(document)

    def delete(self, path: str) -> None:
        with self._lock:
            self._documents.pop(path, None)

    def __len__(self) -> int:
        return len(self._documents)


class JsonFileSecretStore:
    """Store persisted as a single JSON object of ``{path: document}``.

    Meant for local development and the CLI; every operation re-reads the file
    so several processes see each other's writes.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load(self) -> dict[str, Document]:
        if not self._file_path.exists():
            return {}
        try:
            content = self._file_path.read_text(encoding="utf-8")
            return json.loads(content) if content.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError("read", str(self._file_path), str(e)) from e

    def _dump(self, documents: dict[str, Document]) -> None:
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(documents, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self._file_path)
        except OSError as e:
            raise StoreUnavailableError("write", str(self._file_path), str(e)) from e

    def list(self, path: str) -> list[str]:
        children = _children(list(self._load()), path)
        if not children:
            raise EntityNotFoundError(path)
        return children

    def read(self, path: str) -> Document:
        documents = self._load()
        if path not in documents:
            raise EntityNotFoundError(path)
        return documents[path]

    def write(self, path: str, document: Document) -> None:
        with self._lock:
            documents = self._load()
            documents[path] = document
            self._dump(documents)
        logger.debug(f"Wrote {path} to {self._file_path}")

    def delete(self, path: str) -> None:
        with self._lock:
            documents = self._load()
            if documents.pop(path, None) is not None:
                self._dump(documents)
