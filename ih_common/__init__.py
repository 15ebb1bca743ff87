"""Shared helpers for infra-harness."""

from ih_common.api import IHError, configure_logging

__all__ = ["configure_logging", "IHError"]
