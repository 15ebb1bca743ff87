"""Provision, destroy, inspect and collect logs from harness infrastructure."""

from __future__ import annotations

from typing import Iterable, NoReturn, Optional

import typer
from rich.markup import escape
from rich.table import Table

from ih_common.errors import IHError
from ih_provisioner.api import Node, RunContext, bind_signals
from ih_ui.wiring.dependencies import UIContext


def fail(ctx: UIContext, exc: IHError) -> NoReturn:
    """Print a typed error and exit non-zero."""
    ctx.err_console.print(f"[red]{exc.error_type}: {escape(str(exc))}[/red]")
    raise typer.Exit(1)


def nodes_table(nodes: Iterable[Node], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Private")
    table.add_column("User")
    table.add_column("Port", justify="right")
    for node in nodes:
        table.add_row(node.name, node.address, node.private_address or "-", node.user, str(node.port))
    return table


def register_infra_commands(app: typer.Typer, ctx: UIContext) -> None:
    """Attach the infrastructure lifecycle commands to app."""

    @app.command("provision")
    def provision(
        tag: Optional[str] = typer.Option(
            None, "--tag", help="Resource tag (default: <cluster_name>-<random>)."
        ),
        timeout: Optional[float] = typer.Option(
            None, "--timeout", min=1, help="Overall deadline in seconds for all attempts."
        ),
    ) -> None:
        """Create infrastructure and record it in the state file."""
        try:
            service = ctx.harness_service()
            root = RunContext.background()
            run_ctx = root.child(timeout) if timeout else root.child()
            with run_ctx, bind_signals(run_ctx):
                result = service.provision(run_ctx, tag=tag)
        except IHError as exc:
            fail(ctx, exc)
        ctx.console.print(nodes_table(result.nodes, f"Provisioned {result.state.tag}"))
        ctx.console.print(f"State saved to [bold]{service.state_file}[/bold]")

    @app.command("destroy")
    def destroy() -> None:
        """Destroy the infrastructure recorded in the state file."""
        try:
            service = ctx.harness_service()
            with RunContext.background().child() as run_ctx, bind_signals(run_ctx):
                state = service.destroy(run_ctx)
        except IHError as exc:
            fail(ctx, exc)
        ctx.console.print(f"[green]Destroyed {state.tag}[/green]")

    @app.command("status")
    def status() -> None:
        """Display the current state only."""
        try:
            service = ctx.harness_service()
            summary = service.status()
        except IHError as exc:
            fail(ctx, exc)
        if summary is None:
            ctx.console.print(f"No infrastructure recorded in {service.state_file}")
            return
        ctx.console.print(nodes_table(summary.nodes, f"{summary.tag} ({summary.provisioner})"))
        ctx.console.print(f"State dir: {summary.state_dir}")
        if summary.installer_addr:
            ctx.console.print(f"Installer: {summary.installer_addr}")
        ledger_note = "registered" if summary.allocated else "not in ledger"
        ctx.console.print(f"Ledger: {ledger_note}")

    @app.command("report")
    def report() -> None:
        """Collect logs from the provisioned nodes into the report directory."""
        try:
            service = ctx.harness_service()
            target = service.report()
        except IHError as exc:
            fail(ctx, exc)
        ctx.console.print(f"Logs collected into [bold]{target}[/bold]")
