"""Graph inspection commands."""

import asyncio
from typing import Annotated, Any

import typer

from datagraph import DataGraph
from datagraph.cli.context import CLIContext
from datagraph.cli.output import OutputFormatter


def describe_graph(graph: DataGraph) -> list[dict[str, Any]]:
    """Build a JSON-serializable description of every entity and edge."""
    entities = []
    for name in graph.list_entities():
        fields = graph.get_fields(name)
        entities.append(
            {
                "name": name,
                "adapter": graph.registry.get_model_adapter_name(name),
                "fields": [
                    {
                        "name": field_name,
                        "type": str(spec.type),
                        "primary_key": spec.primary_key,
                        "foreign_key": spec.foreign_key,
                        "allow_null": spec.allow_null,
                    }
                    for field_name, spec in fields.items()
                ],
                "global_keys": graph.get_global_keys(name),
                "relationships": [
                    {
                        "name": edge.name,
                        "type": str(edge.type),
                        "target": edge.target,
                        "foreign_key": edge.foreign_key,
                        "internal": edge.internal,
                        "accessor": edge.accessor_name,
                    }
                    for edge in graph.get_edges(name).values()
                ],
            }
        )
    return entities


def describe(
    ctx: typer.Context,
    target: Annotated[
        str | None,
        typer.Argument(help="Graph to load as module.path:attribute (DataGraph or factory)"),
    ] = None,
) -> None:
    """Initialise a graph and show its entities and relationships."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    async def run() -> list[dict[str, Any]]:
        try:
            graph = await cli_ctx.get_graph(target)
            return describe_graph(graph)
        finally:
            await cli_ctx.close()

    try:
        entities = asyncio.run(run())
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    formatter.print_graph(entities)
