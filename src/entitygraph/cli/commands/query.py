"""Query execution commands."""

from typing import Annotated

import typer

from entitygraph.cli.context import CLIContext
from entitygraph.cli.output import OutputFormatter
from entitygraph.cli.parsing import load_entity_type, parse_params


def query_command(
    ctx: typer.Context,
    sql: Annotated[
        str,
        typer.Argument(help="SQL statement to execute"),
    ],
    params: Annotated[
        list[str] | None,
        typer.Option("--param", "-p", help="Bind parameter as name=value (repeatable)"),
    ] = None,
    entity: Annotated[
        str | None,
        typer.Option("--entity", "-e", help="Map rows to an entity class (module:ClassName)"),
    ] = None,
) -> None:
    """Run a SQL query and print the rows.

    Examples:

        entitygraph query "SELECT * FROM person WHERE id = :id" --param id=1
        entitygraph query "SELECT * FROM person" --entity myapp.entities:Person
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        bind = parse_params(params)
        entity_type = load_entity_type(entity) if entity else None
        repo = cli_ctx.get_repository()
        result = repo.execute_query(sql, bind, entity_type)
        rows = [r.model_dump() if entity_type else r for r in result]

        if cli_ctx.json_output:
            formatter.print_data(rows)
        elif rows:
            columns = list(rows[0].keys())
            formatter.print_table(f"{len(rows)} rows", rows, columns)
        else:
            typer.echo("Query executed successfully (no results)")
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
