"""Teardown closures that apply the destroy/log-collection policy."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ih_common.logging import phase_logger
from ih_provisioner.context import RunContext
from ih_provisioner.ledger import ResourceLedger
from ih_provisioner.logs import LogCollector
from ih_provisioner.models.types import (
    FINAL_TEARDOWN_TIMEOUT,
    DestroyError,
    LogCollectionError,
    Node,
    ProvisionerPolicy,
    ProvisioningError,
)
from ih_provisioner.policy import TEST_STATUS, TeardownDecision, decide_teardown

teardown_logger = phase_logger(__name__, "teardown")

POSTMORTEM_LABEL = "postmortem"


@dataclass
class TeardownReport:
    """Outcome of one teardown invocation."""

    tag: str
    decision: Optional[TeardownDecision] = None
    logs_collected: bool = False
    destroyed: bool = False
    deregistered: bool = False
    error: Optional[BaseException] = None
    log_error: Optional[BaseException] = None
    notes: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


DestroyFn = Callable[[], TeardownReport]


class LifecycleCoordinator:
    """Build the destroy closure handed back to the test driver."""

    def __init__(
        self,
        policy: ProvisionerPolicy,
        ledger: ResourceLedger,
        log_collector: Optional[LogCollector] = None,
        *,
        finalization_timeout: float = FINAL_TEARDOWN_TIMEOUT,
    ) -> None:
        self.policy = policy
        self.ledger = ledger
        self.log_collector = log_collector
        self.finalization_timeout = finalization_timeout

    def wrap_destroy(
        self,
        ctx: RunContext,
        tag: str,
        nodes: Sequence[Node],
        destroy: Callable[[RunContext], None],
        test_failed: Callable[[], bool],
    ) -> DestroyFn:
        """Return a closure that tears down tag exactly once.

        ``test_failed`` is read when the closure runs, so the driver can
        decide the test outcome after provisioning returned. Calling the
        closure again returns the first report without side effects.
        """
        lock = threading.Lock()
        reports: list[TeardownReport] = []

        def _destroy() -> TeardownReport:
            with lock:
                if reports:
                    return reports[0]
                report = self._supervised(ctx, tag, list(nodes), destroy, test_failed)
                reports.append(report)
                return report

        return _destroy

    def _supervised(
        self,
        ctx: RunContext,
        tag: str,
        nodes: List[Node],
        destroy: Callable[[RunContext], None],
        test_failed: Callable[[], bool],
    ) -> TeardownReport:
        report = TeardownReport(tag=tag)
        try:
            self._teardown(report, ctx, nodes, destroy, test_failed)
        except Exception as exc:
            teardown_logger.exception("Teardown of %s crashed: %s", tag, exc)
            report.error = ProvisioningError(
                f"teardown of {tag} crashed: {exc}",
                context={"tag": tag},
                cause=exc,
            )
        return report

    def _teardown(
        self,
        report: TeardownReport,
        ctx: RunContext,
        nodes: List[Node],
        destroy: Callable[[RunContext], None],
        test_failed: Callable[[], bool],
    ) -> None:
        tag = report.tag
        failed = bool(test_failed())
        decision = decide_teardown(failed, ctx.err(), self.policy)
        report.decision = decision

        if decision.abort_error is not None:
            teardown_logger.warning(
                "Skipped destroy of %s: %s (%s)", tag, decision.abort_error, decision.reason
            )
            report.error = decision.abort_error
            return

        if decision.fresh_context:
            teardown_logger.info(
                "Run context of %s ended; tearing down under a fresh %.0fs context",
                tag,
                self.finalization_timeout,
            )
            with RunContext.with_timeout(RunContext.background(), self.finalization_timeout) as fresh:
                self._finish(report, fresh, nodes, destroy, decision)
            return

        teardown_logger.info("Test for %s finished: %s", tag, TEST_STATUS[failed])
        self._finish(report, ctx, nodes, destroy, decision)

    def _finish(
        self,
        report: TeardownReport,
        ctx: RunContext,
        nodes: List[Node],
        destroy: Callable[[RunContext], None],
        decision: TeardownDecision,
    ) -> None:
        tag = report.tag
        if decision.collect_logs and self.log_collector is not None:
            self._collect_logs(self.log_collector, report, nodes)

        if not decision.destroy:
            teardown_logger.info("Not destroying %s per policy", tag)
            report.notes.append(decision.reason)
            return

        try:
            destroy(ctx)
        except Exception as exc:
            teardown_logger.error("Destroying %s failed: %s", tag, exc)
            report.error = DestroyError(
                f"failed to destroy resources for {tag}",
                context={"tag": tag},
                cause=exc,
            )
            return
        report.destroyed = True

        try:
            self.ledger.deallocate(tag)
        except ProvisioningError as exc:
            teardown_logger.error("Deregistering %s failed: %s", tag, exc)
            report.error = exc
            return
        report.deregistered = True
        teardown_logger.info("Destroyed %s", tag)

    def _collect_logs(self, collector: LogCollector, report: TeardownReport, nodes: List[Node]) -> None:
        try:
            collector.collect(f"{report.tag}-{POSTMORTEM_LABEL}", nodes)
        except Exception as exc:
            err = exc
            if not isinstance(exc, LogCollectionError):
                err = LogCollectionError(
                    f"log collection for {report.tag} failed: {exc}",
                    context={"tag": report.tag},
                    cause=exc,
                )
            teardown_logger.error("Collecting logs for %s failed: %s", report.tag, err)
            report.log_error = err
            return
        report.logs_collected = True
