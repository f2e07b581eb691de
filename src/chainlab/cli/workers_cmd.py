"""List known optimization workers and the binaries they resolve to."""

import json

import click
from rich.console import Console
from rich.table import Table

from ..capability_registry import all_worker_classes
from ..config import EngineConfig
from .utils import handle_generic_error


@click.command("workers")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output worker information in JSON format",
)
def workers(output_json: bool) -> None:
    """Show every worker, its formats, run order and resolved binary versions."""
    try:
        engine_config = EngineConfig()
        rows = []
        for cls in all_worker_classes():
            tools = cls.tools(engine_config)
            rows.append(
                {
                    "name": cls.NAME,
                    "formats": sorted(cls.FORMATS),
                    "run_order": cls.RUN_ORDER,
                    "options": dict(cls.OPTIONS),
                    "allow_consecutive": sorted(cls.ALLOW_CONSECUTIVE),
                    "available": all(info.available for info in tools.values()),
                    "binaries": {
                        key: {"name": info.name, "version": info.version}
                        for key, info in tools.items()
                    },
                }
            )

        if output_json:
            click.echo(json.dumps(rows, indent=2))
            return

        table = Table(title="🧰 Workers", show_header=True, header_style="bold magenta")
        table.add_column("Worker", style="cyan", no_wrap=True)
        table.add_column("Formats")
        table.add_column("Run order", justify="right")
        table.add_column("Status", justify="center")
        table.add_column("Binary", style="dim")

        for row in rows:
            binaries = ", ".join(
                f"{binary['name']} {binary['version'] or ''}".strip()
                for binary in row["binaries"].values()
            )
            status = "[green]✅ Available[/green]" if row["available"] else "[red]❌ Missing[/red]"
            table.add_row(
                row["name"], ", ".join(row["formats"]), str(row["run_order"]), status, binaries
            )

        Console().print(table)

    except Exception as e:
        handle_generic_error("Workers", e)
