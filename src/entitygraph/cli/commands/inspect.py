"""Metadata inspection commands."""

from typing import Annotated

import typer

from entitygraph.cli.context import CLIContext
from entitygraph.cli.output import OutputFormatter
from entitygraph.cli.parsing import import_module, load_entity_type, module_entity_types
from entitygraph.exceptions import ConfigurationError
from entitygraph.metadata.registry import default_registry


def describe_command(
    ctx: typer.Context,
    target: Annotated[
        str,
        typer.Argument(help="Entity class as module:ClassName"),
    ],
) -> None:
    """Show the columns and children of an entity class.

    Examples:

        entitygraph describe myapp.entities:Person
        entitygraph --json describe myapp.entities:Person
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        entity_type = load_entity_type(target)
        formatter.print_metadata(default_registry.get(entity_type))
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


def check_command(
    ctx: typer.Context,
    module_name: Annotated[
        str,
        typer.Argument(help="Module whose entity classes are validated"),
    ],
) -> None:
    """Validate the declarations of every entity class in a module.

    Exits with code 1 if any class is misconfigured.

    Examples:

        entitygraph check myapp.entities
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        module = import_module(module_name)
    except ValueError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    results = []
    for entity_type in module_entity_types(module):
        try:
            meta = default_registry.get(entity_type)
            results.append(
                {
                    "entity": entity_type.__name__,
                    "status": "ok",
                    "table": meta.table_name,
                    "detail": f"{len(meta.columns)} columns, {len(meta.children)} children",
                }
            )
        except ConfigurationError as e:
            results.append(
                {
                    "entity": entity_type.__name__,
                    "status": "error",
                    "table": None,
                    "detail": e.message,
                }
            )

    formatter.print_table(
        f"Entities in {module_name}", results, ["entity", "status", "table", "detail"]
    )
    if any(r["status"] == "error" for r in results):
        raise typer.Exit(code=1)
