"""Teardown decision table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ih_provisioner.models.types import ProvisionerPolicy

TEST_STATUS = {True: "failed", False: "ok"}


@dataclass(frozen=True)
class TeardownDecision:
    """What teardown should do for one allocation."""

    destroy: bool
    collect_logs: bool
    fresh_context: bool = False
    abort_error: Optional[BaseException] = None
    reason: str = ""


def decide_teardown(
    test_failed: bool,
    ctx_err: Optional[BaseException],
    policy: ProvisionerPolicy,
) -> TeardownDecision:
    """Decide whether to collect logs and destroy resources.

    An ended run context (timeout or interrupt) leaves resources in place
    unless ``destroy_on_failure`` is set; in that case teardown switches to a
    fresh finalization context and skips log collection, since nodes are
    unlikely to be reachable. An ended context counts as a failed test.
    """
    if ctx_err is not None and not policy.destroy_on_failure:
        return TeardownDecision(
            destroy=False,
            collect_logs=False,
            abort_error=ctx_err,
            reason="run context ended; keeping resources per policy",
        )

    fresh_context = ctx_err is not None
    failed = test_failed or fresh_context
    collect_logs = not fresh_context and (failed or policy.always_collect_logs)

    if failed:
        destroy = policy.destroy_on_failure
    else:
        destroy = policy.destroy_on_success
    if not destroy:
        return TeardownDecision(
            destroy=False,
            collect_logs=collect_logs,
            fresh_context=fresh_context,
            reason="not destroying per policy",
        )
    return TeardownDecision(
        destroy=True,
        collect_logs=collect_logs,
        fresh_context=fresh_context,
        reason="destroying per policy",
    )
