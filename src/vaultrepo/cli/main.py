"""VaultRepo CLI - Main entry point."""

import logging
import sys
from typing import Annotated

import typer

import vaultrepo
from vaultrepo.cli.context import CLIContext, get_store_url

# Create main Typer app
app = typer.Typer(
    name="vaultrepo",
    help="VaultRepo CLI - Typed repositories over path-based secret stores",
    no_args_is_help=True,
)

@app.callback()
def main_callback(
    ctx: typer.Context,
    store: Annotated[
        str | None,
        typer.Option(
            "--store",
            "-S",
            envvar="VAULTREPO_STORE",
            help="Store URL (file://..., memory://, or http(s)://vault:8200/<mount>)",
        ),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="VAULT_TOKEN", help="Vault token"),
    ] = None,
    kv_version: Annotated[
        int,
        typer.Option("--kv-version", help="Vault KV engine version (1 or 2)"),
    ] = 2,
    namespace: Annotated[
        str | None,
        typer.Option("--namespace", envvar="VAULT_NAMESPACE", help="Vault namespace"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr"),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    cli_ctx = CLIContext(
        store_url=get_store_url(store),
        json_output=json_output,
        token=token,
        kv_version=kv_version,
        namespace=namespace,
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"VaultRepo v{vaultrepo.__version__}")


# Register command groups
from vaultrepo.cli.commands import query, secrets

app.add_typer(secrets.app, name="secret")

# Register query commands as standalone commands (not a group)
app.command(name="query")(query.query_command)
app.command(name="parse")(query.parse_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
