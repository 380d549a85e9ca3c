"""datagraph CLI - Main entry point."""

from typing import Annotated

import typer

import datagraph
from datagraph.cli.context import CLIContext, configure_logging, get_target

# Create main Typer app
app = typer.Typer(
    name="datagraph",
    help="datagraph CLI - inspect entity graphs and global ids",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    target: Annotated[
        str | None,
        typer.Option(
            "--target",
            "-t",
            envvar="DATAGRAPH_TARGET",
            help="Graph to load as module.path:attribute",
        ),
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
        typer.Option(
            "--verbose",
            "-v",
            help="Log debug output to stderr",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(verbose)

    # Store in Typer context for command access
    ctx.obj = CLIContext(
        target=get_target(target),
        json_output=json_output,
        verbose=verbose,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"datagraph v{datagraph.__version__}")


# Register commands
from datagraph.cli.commands import graph, ids

app.command(name="describe")(graph.describe)
app.add_typer(ids.app, name="id")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
