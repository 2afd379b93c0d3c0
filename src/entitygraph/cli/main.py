"""entitygraph CLI - Main entry point."""

from typing import Annotated

import typer

import entitygraph
from entitygraph.cli.context import CLIContext
from entitygraph.config import DATABASE_URL_ENV, get_database_url

# Create main Typer app
app = typer.Typer(
    name="entitygraph",
    help="entitygraph CLI - inspect entity declarations and run queries",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar=DATABASE_URL_ENV,
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    cli_ctx = CLIContext(
        database_url=get_database_url(database),
        echo=echo,
        json_output=json_output,
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"entitygraph v{entitygraph.__version__}")


# Register commands
from entitygraph.cli.commands import admin, inspect, query

app.command(name="describe")(inspect.describe_command)
app.command(name="check")(inspect.check_command)
app.command(name="init")(admin.init_command)
app.command(name="query")(query.query_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
