"""Public API surface for ih_common."""

from ih_common.errors import (
    AggregateError,
    ConfigurationError,
    IHError,
    StatePersistenceError,
    aggregate_errors,
)
from ih_common.logging import configure_logging, phase_logger

__all__ = [
    "AggregateError",
    "ConfigurationError",
    "IHError",
    "StatePersistenceError",
    "aggregate_errors",
    "configure_logging",
    "phase_logger",
]
