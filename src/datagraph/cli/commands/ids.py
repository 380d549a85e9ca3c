"""Global id commands."""

from typing import Annotated

import typer

from datagraph.cli.context import CLIContext
from datagraph.cli.output import OutputFormatter
from datagraph.core.global_id import from_global_id, to_global_id
from datagraph.exceptions import InvalidGlobalIdError

# Create id subcommand group
app = typer.Typer(help="Encode and decode opaque global ids")


@app.command("encode")
def id_encode(
    ctx: typer.Context,
    type_name: Annotated[str, typer.Argument(help="Entity type name (e.g., Task)")],
    raw_id: Annotated[str, typer.Argument(help="Raw primary key value")],
) -> None:
    """Encode an entity type and raw key into a global id."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        global_id = to_global_id(type_name, raw_id)
    except ValueError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    if cli_ctx.json_output:
        formatter.print_success("Encoded", {"type": type_name, "id": raw_id, "global_id": global_id})
    else:
        typer.echo(global_id)


@app.command("decode")
def id_decode(
    ctx: typer.Context,
    global_id: Annotated[str, typer.Argument(help="Global id to decode")],
) -> None:
    """Decode a global id into its entity type and raw key."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        resolved = from_global_id(global_id)
    except InvalidGlobalIdError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    formatter.print_success("Decoded", {"type": resolved.type, "id": resolved.id})
