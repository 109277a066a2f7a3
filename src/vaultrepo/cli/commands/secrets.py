"""Secret CRUD commands operating on raw documents."""

import json
from typing import Annotated

import typer

from vaultrepo.cli.context import CLIContext, RawDocumentConverter, raw_metadata
from vaultrepo.cli.output import OutputFormatter
from vaultrepo.core.paths import to_path
from vaultrepo.query.executor import QueryExecutor

# Create secret subcommand group
app = typer.Typer(help="Read, write and delete secrets in a keyspace")


def _executor(cli_ctx: CLIContext, keyspace: str) -> QueryExecutor:
    return QueryExecutor(cli_ctx.get_store(), RawDocumentConverter(), raw_metadata(keyspace))


@app.command("keys")
def secret_keys(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace to list")],
) -> None:
    """List identifiers stored in a keyspace (sorted).

    Examples:

        vaultrepo secret keys credentials
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        identifiers = sorted(_executor(cli_ctx, keyspace).list_identifiers())
        if cli_ctx.json_output:
            formatter.print_data(identifiers)
        else:
            formatter.print_table(
                f"Keyspace: {keyspace}", [{"id": i} for i in identifiers], ["id"]
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("count")
def secret_count(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace to count")],
) -> None:
    """Count entries in a keyspace without reading them."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        count = len(_executor(cli_ctx, keyspace).list_identifiers())
        formatter.print_data({"keyspace": keyspace, "count": count})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("get")
def secret_get(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace")],
    identifier: Annotated[str, typer.Argument(help="Secret identifier")],
) -> None:
    """Print the document stored under keyspace/identifier.

    Examples:

        vaultrepo secret get credentials heisenberg
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        document = cli_ctx.get_store().read(to_path(keyspace, identifier))
        formatter.print_data(document)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("put")
def secret_put(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace")],
    identifier: Annotated[str, typer.Argument(help="Secret identifier")],
    data_json: Annotated[str, typer.Argument(help="Document as a JSON object")],
) -> None:
    """Write a document, replacing anything stored under the same identifier.

    The identifier is added to the document as "id" unless already present.

    Examples:

        vaultrepo secret put credentials heisenberg '{"password": "blue"}'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        document = json.loads(data_json)
        if not isinstance(document, dict):
            raise typer.BadParameter("Document must be a JSON object")
        document.setdefault("id", identifier)
        path = to_path(keyspace, identifier)
        cli_ctx.get_store().write(path, document)
        formatter.print_success("Saved secret", {"path": path})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("delete")
def secret_delete(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace")],
    identifier: Annotated[str, typer.Argument(help="Secret identifier")],
) -> None:
    """Delete a secret. Deleting a missing secret succeeds."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        path = to_path(keyspace, identifier)
        cli_ctx.get_store().delete(path)
        formatter.print_success("Deleted secret", {"path": path})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
