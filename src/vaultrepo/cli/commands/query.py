"""Derived query commands."""

import json
from typing import Annotated, Any

import typer

from vaultrepo.cli.context import CLIContext, RawDocumentConverter, raw_metadata
from vaultrepo.cli.output import OutputFormatter
from vaultrepo.core.types import PageRequest, Sort
from vaultrepo.query.executor import QueryExecutor
from vaultrepo.query.parser import PredicateParser, QueryAction


def _parse_argument(value: str) -> Any:
    """JSON values (lists for In/NotIn) are decoded; anything else stays a string."""
    if value[:1] in ("[", "{", '"'):
        return json.loads(value)
    return value


def parse_command(
    ctx: typer.Context,
    method_name: Annotated[str, typer.Argument(help="Query method name")],
    fields: Annotated[
        list[str] | None,
        typer.Option("--field", "-F", help="Extra sortable property (repeatable)"),
    ] = None,
) -> None:
    """Show how a query method name is parsed.

    Examples:

        vaultrepo parse find_top10_by_id_starts_with
        vaultrepo parse findByIdInOrderByCreatedDesc -F created
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        descriptor = PredicateParser().parse(method_name, raw_metadata("cli", fields))
        formatter.print_descriptor(descriptor)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def query_command(
    ctx: typer.Context,
    keyspace: Annotated[str, typer.Argument(help="Keyspace to query")],
    method_name: Annotated[str, typer.Argument(help="Query method name")],
    arguments: Annotated[
        list[str] | None,
        typer.Argument(help="Query arguments (JSON arrays for In/NotIn)"),
    ] = None,
    offset: Annotated[int, typer.Option("--offset", help="Skip this many results")] = 0,
    limit: Annotated[
        int | None, typer.Option("--limit", "-l", help="Return at most this many results")
    ] = None,
    sort: Annotated[
        str | None,
        typer.Option("--sort", "-s", help="Runtime sort, e.g. 'name,desc;id'"),
    ] = None,
    fields: Annotated[
        list[str] | None,
        typer.Option("--field", "-F", help="Extra property usable in OrderBy (repeatable)"),
    ] = None,
) -> None:
    """Run a derived query against a keyspace.

    Examples:

        vaultrepo query credentials find_by_id_starts_with heis
        vaultrepo query credentials count_by_id_in '["a1", "b1"]'
        vaultrepo query credentials find_all --sort 'created,desc' --limit 5
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        metadata = raw_metadata(keyspace, fields)
        descriptor = PredicateParser().parse(method_name, metadata)
        executor = QueryExecutor(cli_ctx.get_store(), RawDocumentConverter(), metadata)

        page_request = None
        if offset or limit is not None or sort:
            page_request = PageRequest(
                offset=offset, limit=limit, sort=Sort.parse(sort) if sort else None
            )

        args = [_parse_argument(a) for a in arguments or []]
        result = executor.execute(descriptor, args, page_request=page_request)

        if descriptor.action is QueryAction.FIND:
            formatter.print_data([entity.model_dump() for entity in result])
        else:
            formatter.print_data({descriptor.action.value: result})
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
