"""CLI command tests for VaultRepo."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from vaultrepo.cli.context import DEFAULT_STORE_URL, get_store_url, open_store
from vaultrepo.cli.main import app
from vaultrepo.core.store import InMemorySecretStore, JsonFileSecretStore
from vaultrepo.core.vault import VaultSecretStore

runner = CliRunner()


@pytest.fixture
def store_url(tmp_path: Path) -> str:
    """URL of a JSON file store in a temporary directory."""
    return f"file://{tmp_path / 'secrets.json'}"


@pytest.fixture
def seeded_url(store_url: str) -> str:
    """Store URL with a few credentials already written."""
    store = open_store(store_url)
    for identifier, created in [("a1", "2024-01"), ("a2", "2024-03"), ("a3", "2024-02")]:
        store.write(
            f"credentials/{identifier}",
            {"_class": "app.models.Credential", "id": identifier, "created": created},
        )
    store.write("credentials/b1", {"id": "b1", "created": "2023-12"})
    return store_url


def invoke_json(url: str, *args: str):
    return runner.invoke(app, ["-S", url, "--json", *args])


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "VaultRepo v" in result.stdout


class TestStoreResolution:
    """Test store URL resolution."""

    def test_explicit_url_wins(self, monkeypatch) -> None:
        monkeypatch.setenv("VAULTREPO_STORE", "memory://")
        assert get_store_url("file://x.json") == "file://x.json"

    def test_env_var(self, monkeypatch) -> None:
        monkeypatch.setenv("VAULTREPO_STORE", "memory://")
        assert get_store_url(None) == "memory://"

    def test_default(self, monkeypatch) -> None:
        monkeypatch.delenv("VAULTREPO_STORE", raising=False)
        assert get_store_url(None) == DEFAULT_STORE_URL

    def test_open_store_schemes(self, tmp_path: Path) -> None:
        assert isinstance(open_store(f"file://{tmp_path / 's.json'}"), JsonFileSecretStore)
        assert isinstance(open_store("memory://"), InMemorySecretStore)
        vault = open_store("http://localhost:8200/kv", token="s.token", kv_version=1)
        assert isinstance(vault, VaultSecretStore)
        assert vault.mount_point == "kv"

    def test_open_store_unknown_scheme(self) -> None:
        with pytest.raises(ValueError):
            open_store("ftp://somewhere")


class TestSecretCommands:
    """Test secret CRUD commands."""

    def test_put_and_get(self, store_url: str) -> None:
        """Test writing then reading a secret."""
        result = invoke_json(
            store_url, "secret", "put", "credentials", "heisenberg", '{"password": "blue"}'
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["path"] == "credentials/heisenberg"

        result = invoke_json(store_url, "secret", "get", "credentials", "heisenberg")
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert json.loads(result.stdout) == {"password": "blue", "id": "heisenberg"}

    def test_put_requires_object(self, store_url: str) -> None:
        result = invoke_json(store_url, "secret", "put", "credentials", "a1", "[1, 2]")
        assert result.exit_code == 1

    def test_put_invalid_json(self, store_url: str) -> None:
        result = invoke_json(store_url, "secret", "put", "credentials", "a1", "{oops")
        assert result.exit_code == 1

    def test_get_missing(self, store_url: str) -> None:
        result = invoke_json(store_url, "secret", "get", "credentials", "nobody")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "EntityNotFoundError"
        assert data["context"]["path"] == "credentials/nobody"

    def test_invalid_identifier(self, store_url: str) -> None:
        result = invoke_json(store_url, "secret", "get", "credentials", "a/b")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "InvalidIdentifierError"

    def test_keys(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "secret", "keys", "credentials")
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert json.loads(result.stdout) == ["a1", "a2", "a3", "b1"]

    def test_keys_table(self, seeded_url: str) -> None:
        result = runner.invoke(app, ["-S", seeded_url, "secret", "keys", "credentials"])
        assert result.exit_code == 0
        assert "a3" in result.stdout

    def test_keys_missing_keyspace(self, store_url: str) -> None:
        result = invoke_json(store_url, "secret", "keys", "nothing")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_count(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "secret", "count", "credentials")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"keyspace": "credentials", "count": 4}

    def test_delete(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "secret", "delete", "credentials", "a1")
        assert result.exit_code == 0
        result = invoke_json(seeded_url, "secret", "delete", "credentials", "a1")
        assert result.exit_code == 0
        keys = json.loads(invoke_json(seeded_url, "secret", "keys", "credentials").stdout)
        assert keys == ["a2", "a3", "b1"]

    def test_store_from_env(self, seeded_url: str, monkeypatch) -> None:
        monkeypatch.setenv("VAULTREPO_STORE", seeded_url)
        result = runner.invoke(app, ["--json", "secret", "count", "credentials"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["count"] == 4


class TestParseCommand:
    """Test the parse command."""

    def test_parse_json(self) -> None:
        result = runner.invoke(
            app, ["--json", "parse", "findTop2ByIdStartsWithOrderByCreatedDesc", "-F", "created"]
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        data = json.loads(result.stdout)
        assert data["action"] == "find"
        assert data["limit"] == 2
        assert data["clauses"] == [{"property": "id", "operator": "starting_with", "arity": 1}]
        assert data["sort"] == [{"property": "created", "direction": "desc"}]

    def test_parse_rich(self) -> None:
        result = runner.invoke(app, ["parse", "count_by_id_in_or_id_starts_with"])
        assert result.exit_code == 0
        assert "count" in result.stdout
        assert "starting_with" in result.stdout

    def test_parse_unsupported(self) -> None:
        result = runner.invoke(app, ["--json", "parse", "findByAddressCity"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "UnsupportedPredicateError"
        assert data["context"]["property"] == "AddressCity"


class TestQueryCommand:
    """Test the query command."""

    def test_find(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "query", "credentials", "find_by_id_starts_with", "a")
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        data = json.loads(result.stdout)
        assert [row["id"] for row in data] == ["a1", "a2", "a3"]
        assert "_class" not in data[0]
        assert data[0]["created"] == "2024-01"

    def test_count_with_collection_argument(self, seeded_url: str) -> None:
        result = invoke_json(
            seeded_url, "query", "credentials", "count_by_id_in", '["a1", "b1", "zz"]'
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert json.loads(result.stdout) == {"count": 2}

    def test_exists(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "query", "credentials", "exists_by_id", "b1")
        assert json.loads(result.stdout) == {"exists": True}

    def test_runtime_sort_and_limit(self, seeded_url: str) -> None:
        result = invoke_json(
            seeded_url, "query", "credentials", "find_all", "--sort", "created,desc", "--limit", "2"
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert [row["id"] for row in json.loads(result.stdout)] == ["a2", "a3"]

    def test_offset(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "query", "credentials", "find_all", "--offset", "3")
        assert [row["id"] for row in json.loads(result.stdout)] == ["b1"]

    def test_order_by_declared_field(self, seeded_url: str) -> None:
        result = invoke_json(
            seeded_url,
            "query",
            "credentials",
            "find_top1_by_id_starts_with_order_by_created_desc",
            "a",
            "-F",
            "created",
        )
        assert result.exit_code == 0, f"Failed with: {result.stdout}"
        assert [row["id"] for row in json.loads(result.stdout)] == ["a2"]

    def test_delete_query(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "query", "credentials", "delete_by_id_starts_with", "a")
        assert json.loads(result.stdout) == {"delete": 3}
        keys = json.loads(invoke_json(seeded_url, "secret", "keys", "credentials").stdout)
        assert keys == ["b1"]

    def test_wrong_argument_count(self, seeded_url: str) -> None:
        result = invoke_json(seeded_url, "query", "credentials", "find_by_id_between", "a")
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "QueryArgumentError"
