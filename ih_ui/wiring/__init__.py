"""Wiring helpers for the command-line front end."""

from ih_ui.wiring.dependencies import UIContext, configure_logging

__all__ = ["UIContext", "configure_logging"]
