from __future__ import annotations

import typer
from rich.table import Table

from ih_common.errors import IHError
from ih_ui.cli.commands.infra import fail
from ih_ui.wiring.dependencies import UIContext


def create_ledger_app(ctx: UIContext) -> typer.Typer:
    """Build the ledger Typer app."""
    app = typer.Typer(help="Inspect the resource ledger.", no_args_is_help=True)

    @app.command("list")
    def list_tags() -> None:
        """List tags that were allocated and not yet destroyed."""
        try:
            tags = ctx.harness_service().ledger_tags()
        except IHError as exc:
            fail(ctx, exc)
        if not tags:
            ctx.console.print("No allocated resources.")
            return
        table = Table(title="Allocated resources", show_header=True, header_style="bold magenta")
        table.add_column("Tag", style="cyan")
        for tag in tags:
            table.add_row(tag)
        ctx.console.print(table)

    return app
