"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from entitygraph.exceptions import EntityGraphError
from entitygraph.metadata.descriptors import EntityMetadata

console = Console()


def _type_name(value: Any) -> str:
    return getattr(value, "__name__", str(value))


def metadata_to_dict(meta: EntityMetadata) -> dict[str, Any]:
    """JSON-serializable view of entity metadata."""
    return {
        "entity": meta.type_name,
        "table": meta.table_name,
        "cacheable": meta.cacheable,
        "sort": meta.sort_expression,
        "columns": [
            {
                "field": c.field_name,
                "column": c.column_name,
                "type": _type_name(c.field_type),
                "id": c.is_id,
                "insertable": c.insertable,
                "updatable": c.updatable,
                "localized": c.localized,
                "version": c.is_version,
                "redact": c.redact.min_classification if c.redact else None,
            }
            for c in meta.columns
        ],
        "children": [
            {
                "field": c.field_name,
                "target": _type_name(c.target_type),
                "kind": c.kind.value,
                "parent_id_field": c.parent_id_field,
                "child_id_field": c.child_id_field,
                "association": _type_name(c.association_type) if c.association_type else None,
                "insert_before_parent": c.insert_before_parent,
                "read_only": c.read_only,
                "cascade_delete": c.cascade_delete,
                "external": c.external.delegate if c.external else None,
            }
            for c in meta.children
        ],
    }


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

    def print_metadata(self, meta: EntityMetadata) -> None:
        """Print an entity's columns and children."""
        info = metadata_to_dict(meta)
        if self.json_mode:
            print(json.dumps(info, default=str, indent=2))
            return

        console.print(f"\n[bold]Entity:[/bold] {info['entity']}")
        console.print(f"Table: {info['table'] or '(none)'}")
        if info["cacheable"]:
            console.print("Cacheable: yes")
        if info["sort"]:
            console.print(f"Sort: {info['sort']}")

        console.print(f"\n[bold]Columns ({len(meta.columns)}):[/bold]")
        columns_table = Table(show_header=True, header_style="bold cyan")
        for heading in ("Field", "Column", "Type", "Id", "Insert", "Update", "Flags"):
            columns_table.add_column(heading)
        for column in info["columns"]:
            flags = [name for name in ("localized", "version") if column[name]]
            if column["redact"]:
                flags.append(f"redact>={column['redact']}")
            columns_table.add_row(
                column["field"],
                column["column"],
                column["type"],
                "✓" if column["id"] else "",
                "✓" if column["insertable"] else "",
                "✓" if column["updatable"] else "",
                ", ".join(flags),
            )
        console.print(columns_table)

        if info["children"]:
            console.print(f"\n[bold]Children ({len(meta.children)}):[/bold]")
            children_table = Table(show_header=True, header_style="bold cyan")
            for heading in ("Field", "Target", "Kind", "Join", "Options"):
                children_table.add_column(heading)
            for child in info["children"]:
                join = child["parent_id_field"]
                if child["kind"] == "one_to_one" and child["insert_before_parent"]:
                    join = child["child_id_field"]
                if child["association"]:
                    keys = f"{child['parent_id_field']}, {child['child_id_field']}"
                    join = f"{child['association']}({keys})"
                options = [name for name in ("read_only", "cascade_delete") if child[name]]
                if child["external"]:
                    options.append(f"external={child['external']}")
                children_table.add_row(
                    child["field"], child["target"], child["kind"], join or "", ", ".join(options)
                )
            console.print(children_table)

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
            if isinstance(error, EntityGraphError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            if isinstance(error, EntityGraphError) and error.context:
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
            console.print(data)
