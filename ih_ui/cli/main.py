"""
Command-line interface for infra-harness.

Provisions test infrastructure (Terraform or Vagrant), tracks it in a state
file and a resource ledger, and destroys it again.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from ih_provisioner.api import ProvisionerKind
from ih_ui.cli.commands.infra import register_infra_commands
from ih_ui.cli.commands.ledger import create_ledger_app
from ih_ui.wiring import UIContext, configure_logging

ctx_store = UIContext()

app = typer.Typer(help="Provision and tear down test infrastructure.", no_args_is_help=True)


@app.callback()
def entry(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file to use (default: $IH_CONFIG or config.yaml).",
    ),
    state_file: Optional[Path] = typer.Option(
        None,
        "--state-file",
        help="State file to use (default: <config>.state).",
    ),
    state_dir: Optional[Path] = typer.Option(
        None,
        "--state-dir",
        help="Directory to store provisioner state in.",
    ),
    provisioner: Optional[ProvisionerKind] = typer.Option(
        None,
        "--provisioner",
        help="Provision nodes using this provisioner.",
    ),
    destroy_on_failure: Optional[bool] = typer.Option(
        None,
        "--destroy-on-failure/--keep-on-failure",
        help="Override policy.destroy_on_failure.",
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose mode."),
) -> None:
    """Global options shared by every command."""
    configure_logging(debug=debug, force=True)
    ctx_store.reset()
    ctx_store.config_path = config
    ctx_store.state_file = state_file
    ctx_store.overrides = {
        "state_dir": str(state_dir) if state_dir else None,
        "provisioner": provisioner.value if provisioner else None,
        "policy.destroy_on_failure": destroy_on_failure,
    }


register_infra_commands(app, ctx_store)
app.add_typer(create_ledger_app(ctx_store), name="ledger")


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
