"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from datagraph.exceptions import DataGraphError

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

    def print_graph(self, entities: list[dict[str, Any]]) -> None:
        """Print every entity with its fields and relationship edges.

        Args:
            entities: Entity descriptions as built by ``describe``
        """
        if self.json_mode:
            print(json.dumps({"entities": entities}, default=str, indent=2))
            return

        for entity in entities:
            console.print(f"\n[bold]Entity:[/bold] {entity['name']}")
            console.print(f"Adapter: {entity['adapter']}")
            if entity["global_keys"]:
                console.print(f"Global keys: {', '.join(entity['global_keys'])}")

            fields_table = Table(show_header=True, header_style="bold cyan")
            fields_table.add_column("Name")
            fields_table.add_column("Type")
            fields_table.add_column("Primary")
            fields_table.add_column("Foreign")
            fields_table.add_column("Nullable")
            for field in entity["fields"]:
                fields_table.add_row(
                    field["name"],
                    field["type"],
                    "✓" if field["primary_key"] else "",
                    "✓" if field["foreign_key"] else "",
                    "✓" if field["allow_null"] else "",
                )
            console.print(f"\n[bold]Fields ({len(entity['fields'])}):[/bold]")
            console.print(fields_table)

            if entity["relationships"]:
                console.print(f"\n[bold]Relationships ({len(entity['relationships'])}):[/bold]")
                rel_table = Table(show_header=True, header_style="bold cyan")
                rel_table.add_column("Name")
                rel_table.add_column("Type")
                rel_table.add_column("Target")
                rel_table.add_column("Foreign Key")
                rel_table.add_column("Internal")
                rel_table.add_column("Accessor")
                for rel in entity["relationships"]:
                    rel_table.add_row(
                        rel["name"],
                        rel["type"],
                        rel["target"],
                        rel["foreign_key"] or "",
                        "✓" if rel["internal"] else "",
                        rel["accessor"] or "",
                    )
                console.print(rel_table)

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
            if isinstance(error, DataGraphError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            # For DataGraphError, include context if available
            if isinstance(error, DataGraphError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)
