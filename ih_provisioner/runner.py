"""Bounded-retry creation of infrastructure through a provisioner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ih_common.errors import aggregate_errors
from ih_common.logging import phase_logger
from ih_provisioner.context import ContextDeadlineExceeded, RunContext
from ih_provisioner.ledger import ResourceLedger
from ih_provisioner.models.types import (
    DEFAULT_ATTEMPT_THRESHOLDS,
    FINAL_TEARDOWN_TIMEOUT,
    AttemptTimeoutError,
    Node,
    OuterInterruptedError,
    ProvisioningAggregateError,
    ProvisioningError,
)
from ih_provisioner.providers.base import Provisioner

provision_logger = phase_logger(__name__, "provision")

DestroyOperation = Callable[[RunContext], None]


@dataclass
class ProvisioningOutcome:
    """Nodes of a successful creation plus the operation that destroys them."""

    tag: str
    nodes: List[Node]
    destroy: DestroyOperation


class ProvisionRunner:
    """Create infrastructure with a fixed, descending attempt budget.

    Provisioning tools occasionally hang or pick up inconsistent state from
    the remote control plane; killing the attempt and starting a new one
    recovers more reliably than waiting. Only the thresholds listed are
    tried, and an ended outer context is never retried.
    """

    def __init__(
        self,
        provisioner: Provisioner,
        ledger: ResourceLedger,
        *,
        thresholds: Sequence[float] = DEFAULT_ATTEMPT_THRESHOLDS,
        finalization_timeout: float = FINAL_TEARDOWN_TIMEOUT,
    ) -> None:
        if not thresholds:
            raise ValueError("at least one attempt threshold is required")
        self.provisioner = provisioner
        self.ledger = ledger
        self.thresholds = tuple(thresholds)
        self.finalization_timeout = finalization_timeout

    def _finalization_context(self) -> RunContext:
        return RunContext.with_timeout(RunContext.background(), self.finalization_timeout)

    def _destroy_quietly(self, ctx: RunContext) -> Optional[BaseException]:
        try:
            self.provisioner.destroy(ctx)
        except Exception as exc:
            provision_logger.error("Cleanup destroy failed: %s", exc)
            return exc
        return None

    def create(self, ctx: RunContext, tag: str) -> ProvisioningOutcome:
        """Create nodes, register tag in the ledger and return the outcome."""
        last_error: Optional[BaseException] = None
        total = len(self.thresholds)
        for attempt, threshold in enumerate(self.thresholds, start=1):
            provision_logger.info(
                "Provisioning %s: attempt %d/%d (threshold %.0fs)",
                tag,
                attempt,
                total,
                threshold,
            )
            with ctx.child(timeout=threshold) as attempt_ctx:
                error: Optional[BaseException] = None
                try:
                    self.provisioner.create(attempt_ctx)
                except Exception as exc:
                    error = exc
                attempt_err = attempt_ctx.err()

            outer_err = ctx.err()
            if outer_err is not None:
                self._abort_interrupted(tag, outer_err, error)

            if error is None:
                return self._register(tag)

            if isinstance(attempt_err, ContextDeadlineExceeded):
                last_error = AttemptTimeoutError(
                    f"Provisioning attempt {attempt} exceeded {threshold:.0f}s",
                    context={"tag": tag, "attempt": attempt, "threshold": threshold},
                    cause=error,
                )
            else:
                last_error = error
            provision_logger.warning("Provisioning attempt %d for %s failed: %s", attempt, tag, last_error)

        provision_logger.error("Provisioning %s failed after %d attempt(s)", tag, total)
        destroy_err = self._destroy_quietly(ctx)
        raise ProvisioningAggregateError(
            [err for err in (last_error, destroy_err) if err is not None],
            context={"tag": tag, "attempts": total},
        )

    def _abort_interrupted(
        self,
        tag: str,
        outer_err: BaseException,
        attempt_error: Optional[BaseException],
    ) -> None:
        provision_logger.warning(
            "Provisioning %s interrupted by outer context (%s); cleaning up", tag, outer_err
        )
        interrupted = ProvisioningError(
            f"provisioning interrupted on apply due to outer context={outer_err}, result={attempt_error}",
            context={"tag": tag},
            cause=outer_err,
        )
        with self._finalization_context() as teardown_ctx:
            destroy_err = self._destroy_quietly(teardown_ctx)
        raise OuterInterruptedError(
            [err for err in (interrupted, destroy_err) if err is not None],
            context={"tag": tag},
        )

    def _register(self, tag: str) -> ProvisioningOutcome:
        try:
            self.ledger.allocate(tag)
        except ProvisioningError as exc:
            provision_logger.error("Registering %s failed: %s; destroying new resources", tag, exc)
            with self._finalization_context() as teardown_ctx:
                destroy_err = self._destroy_quietly(teardown_ctx)
            combined = aggregate_errors(exc, destroy_err, error_cls=ProvisioningAggregateError)
            if combined is exc:
                raise
            raise combined from exc
        nodes = self.provisioner.node_pool()
        provision_logger.info("Provisioned %s: %d node(s)", tag, len(nodes))
        return ProvisioningOutcome(tag=tag, nodes=nodes, destroy=self.provisioner.destroy)
