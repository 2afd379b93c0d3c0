"""Database setup commands."""

from typing import Annotated

import typer

from entitygraph.cli.context import CLIContext
from entitygraph.cli.output import OutputFormatter
from entitygraph.cli.parsing import import_module, module_entity_types


def init_command(
    ctx: typer.Context,
    module_name: Annotated[
        str,
        typer.Argument(help="Module whose entity classes get tables"),
    ],
) -> None:
    """Create tables for every entity class in a module.

    Types reachable through children get tables too. Entity classes without
    a declared table are skipped.

    Examples:

        entitygraph init myapp.entities
        entitygraph --database postgresql://localhost/mydb init myapp.entities
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        module = import_module(module_name)
        repo = cli_ctx.get_repository()
        entity_types = [
            t for t in module_entity_types(module) if repo.registry.get(t).table_name
        ]
        tables = repo.create_tables(*entity_types)
        formatter.print_success(
            f"Created {len(tables)} tables",
            {"database": cli_ctx.database_url, "tables": tables},
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
