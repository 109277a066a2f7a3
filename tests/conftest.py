"""Shared test fixtures for VaultRepo."""

import random
import threading
from collections.abc import Callable

import pytest

from vaultrepo.core.store import Document, InMemorySecretStore
from vaultrepo.exceptions import StoreUnavailableError


class RecordingStore(InMemorySecretStore):
    """In-memory store that records reads and misbehaves on request.

    - ``reads`` lists every path read, in order
    - ``shuffle`` returns listings in a random order each time
    - ``phantoms`` are listed under every keyspace but cannot be read
    - ``on_read`` is called before each read
    - ``fail_reads`` makes every read raise ``StoreUnavailableError``
    """

    def __init__(self, documents: dict[str, Document] | None = None) -> None:
        super().__init__(documents)
        self.reads: list[str] = []
        self.lists = 0
        self.shuffle = False
        self.phantoms: list[str] = []
        self.on_read: Callable[[str], None] | None = None
        self.fail_reads = False
        self._random = random.Random(1234)
        self._record_lock = threading.Lock()

    def list(self, path: str) -> list[str]:
        self.lists += 1
        children = [*super().list(path), *self.phantoms]
        if self.shuffle:
            self._random.shuffle(children)
        return children

    def read(self, path: str) -> Document:
        with self._record_lock:
            self.reads.append(path)
        if self.on_read is not None:
            self.on_read(path)
        if self.fail_reads:
            raise StoreUnavailableError("read", path, "connection refused")
        return super().read(path)


@pytest.fixture
def memory_store() -> InMemorySecretStore:
    """Create an empty in-memory secret store."""
    return InMemorySecretStore()


@pytest.fixture
def recording_store() -> RecordingStore:
    """Create an empty store that records reads.

    Tests configure shuffling, phantom keys or failures through its attributes.
    """
    return RecordingStore()
