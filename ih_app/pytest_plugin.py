"""pytest integration: provision infrastructure per test, tear it down by policy.

Enable through the ``infra_harness`` entry point (installed automatically) and
request the ``provisioned_nodes`` fixture. The teardown decision reads the
test outcome after the test body ran, so failed tests keep their nodes when
``destroy_on_failure`` is off. A test interrupted with Ctrl-C, or one that
outlives ``--ih-timeout``, ends its run context and is torn down as such.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional

import pytest

from ih_app.models.config import HarnessConfig
from ih_app.services.config_service import ConfigService
from ih_common.config.env import parse_float_env
from ih_common.errors import IHError, error_to_payload
from ih_common.logging import configure_logging
from ih_provisioner.context import RunContext
from ih_provisioner.engine.service import ProvisioningService
from ih_provisioner.ledger import ResourceLedger
from ih_provisioner.logs import SshLogCollector
from ih_provisioner.models.types import Node, ProvisioningRequest

logger = logging.getLogger(__name__)

REPORT_PHASES = ("setup", "call")
RUN_CONTEXT_KEY = pytest.StashKey[RunContext]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("infra-harness")
    group.addoption(
        "--ih-config",
        action="store",
        default=None,
        help="Harness configuration file (default: $IH_CONFIG or config.yaml)",
    )
    group.addoption(
        "--ih-destroy-on-failure",
        action="store_true",
        default=None,
        help="Destroy infrastructure of failed tests too",
    )
    group.addoption(
        "--ih-timeout",
        action="store",
        type=float,
        default=parse_float_env(os.environ.get("IH_TEST_TIMEOUT")),
        help="Deadline in seconds for provisioning plus the test body (default: $IH_TEST_TIMEOUT)",
    )


def pytest_configure(config: pytest.Config) -> None:
    # Only sessions that opt in get the harness log format.
    if config.getoption("ih_config") or os.environ.get("IH_CONFIG"):
        configure_logging()


@pytest.hookimpl(wrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    report = yield
    setattr(item, f"ih_rep_{report.when}", report)
    return report


@pytest.hookimpl(wrapper=True)
def pytest_runtest_call(item: pytest.Item):
    try:
        return (yield)
    except KeyboardInterrupt as exc:
        ctx = item.stash.get(RUN_CONTEXT_KEY, None)
        if ctx is not None:
            ctx.cancel(exc)
        raise


def item_failed(item: pytest.Item) -> bool:
    """True once the setup or call phase of item has failed."""
    for phase in REPORT_PHASES:
        report = getattr(item, f"ih_rep_{phase}", None)
        if report is not None and report.failed:
            return True
    return False


def _run_context(timeout: Optional[float]) -> RunContext:
    root = RunContext.background()
    if timeout:
        return RunContext.with_timeout(root, timeout)
    return root.child()


@pytest.fixture(scope="session")
def ih_config(pytestconfig: pytest.Config) -> HarnessConfig:
    raw_path = pytestconfig.getoption("ih_config")
    overrides = {"policy.destroy_on_failure": pytestconfig.getoption("ih_destroy_on_failure")}
    config, _ = ConfigService().load(Path(raw_path) if raw_path else None, overrides=overrides)
    return config


@pytest.fixture(scope="session")
def ih_ledger(ih_config: HarnessConfig) -> ResourceLedger:
    return ResourceLedger(ih_config.policy.resource_list_file)


@pytest.fixture(scope="session")
def ih_provisioning_service(ih_config: HarnessConfig, ih_ledger: ResourceLedger) -> ProvisioningService:
    collector = SshLogCollector(
        ih_config.report_dir,
        remote_paths=ih_config.log_paths,
        timeout=ih_config.finalization_timeout,
    )
    return ProvisioningService(
        ih_config.policy,
        ih_ledger,
        collector,
        thresholds=ih_config.attempt_thresholds,
        finalization_timeout=ih_config.finalization_timeout,
    )


@pytest.fixture
def ih_run_context(request: pytest.FixtureRequest, pytestconfig: pytest.Config) -> Iterator[RunContext]:
    with _run_context(pytestconfig.getoption("ih_timeout")) as ctx:
        request.node.stash[RUN_CONTEXT_KEY] = ctx
        yield ctx


@pytest.fixture
def provisioned_nodes(
    request: pytest.FixtureRequest,
    ih_config: HarnessConfig,
    ih_provisioning_service: ProvisioningService,
    ih_run_context: RunContext,
) -> Iterator[List[Node]]:
    if ih_config.provisioner is None:
        pytest.skip("no provisioner configured")
    tag = ih_config.new_tag()
    provision_request = ProvisioningRequest(
        kind=ih_config.provisioner,
        tag=tag,
        state_dir=ih_config.state_dir / tag,
        backend=ih_config.backend_config(tag),
    )
    result = ih_provisioning_service.provision(
        ih_run_context,
        provision_request,
        lambda: item_failed(request.node),
    )
    yield result.nodes
    report = result.destroy()
    if report.error is not None:
        logger.error("Teardown of %s reported: %s", tag, report.error)
        if isinstance(report.error, IHError):
            request.node.user_properties.append(("ih_teardown_error", error_to_payload(report.error)))
