"""Shared error taxonomy for infra-harness."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional


def _normalize_context_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize_context_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def normalize_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-friendly copy of an error context mapping."""
    return {key: _normalize_context_value(val) for key, val in context.items()}


class IHError(Exception):
    """Base error type for typed failure handling."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.context = normalize_context(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self), "context": self.context}


class ConfigurationError(IHError):
    """Failure due to invalid configuration."""


class StatePersistenceError(IHError):
    """Failure reading or writing persisted harness state."""


class AggregateError(IHError):
    """Several independent failures reported as one."""

    def __init__(
        self,
        errors: Iterable[BaseException],
        *,
        message: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.errors: list[BaseException] = list(errors)
        text = message or "; ".join(
            f"{type(err).__name__}: {err}" for err in self.errors
        )
        super().__init__(text, context=context)
        if self.errors:
            self.__cause__ = self.errors[0]

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [
            err.to_dict() if isinstance(err, IHError) else {
                "type": type(err).__name__,
                "message": str(err),
            }
            for err in self.errors
        ]
        return payload


def aggregate_errors(
    *errors: Optional[BaseException],
    error_cls: type[AggregateError] = AggregateError,
    message: str | None = None,
) -> BaseException | None:
    """Collapse optional errors into None, the single error, or an aggregate."""
    present = [err for err in errors if err is not None]
    if not present:
        return None
    if len(present) == 1 and message is None:
        return present[0]
    return error_cls(present, message=message)


def error_to_payload(error: IHError) -> dict[str, Any]:
    """Convert an IHError to a report/state payload."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }
