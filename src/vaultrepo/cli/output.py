"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table

from vaultrepo.exceptions import VaultRepoError
from vaultrepo.query.parser import QueryDescriptor

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array.

        Args:
            title: Table title
            data: List of row dictionaries
            columns: Column names to display
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*[str(row.get(col, "")) for col in columns])
            console.print(table)

    def print_descriptor(self, descriptor: QueryDescriptor) -> None:
        """Print a parsed query method."""
        sort = (
            [{"property": o.name, "direction": o.direction.value} for o in descriptor.sort.orders]
            if descriptor.sort
            else []
        )
        clauses = [
            {"property": c.property_name, "operator": c.operator.value, "arity": c.arity}
            for c in descriptor.clauses
        ]
        if self.json_mode:
            output = {
                "method": descriptor.method_name,
                "action": descriptor.action.value,
                "clauses": clauses,
                "combinators": [c.value for c in descriptor.combinators],
                "sort": sort,
                "limit": descriptor.limit,
                "distinct": descriptor.distinct,
            }
            print(json.dumps(output, indent=2))
            return

        console.print(f"\n[bold]Method:[/bold] {descriptor.method_name}")
        console.print(f"Action: {descriptor.action.value}")
        if descriptor.limit is not None:
            console.print(f"Limit: {descriptor.limit}")
        if clauses:
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Join")
            table.add_column("Property")
            table.add_column("Operator")
            table.add_column("Args")
            joins = ["", *(c.value.upper() for c in descriptor.combinators)]
            for join, clause in zip(joins, clauses, strict=True):
                table.add_row(join, clause["property"], clause["operator"], str(clause["arity"]))
            console.print(table)
        if sort:
            orders = ", ".join(f"{o['property']} {o['direction']}" for o in sort)
            console.print(f"Sort: {orders}")

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message.

        Args:
            message: Success message
            details: Optional details to display
        """
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            print(json.dumps(output, default=str, indent=2))
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, VaultRepoError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            if isinstance(error, VaultRepoError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.).

        Args:
            data: Data to print
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            console.print(Pretty(data))
