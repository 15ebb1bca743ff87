"""Collect diagnostic logs from provisioned nodes."""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from ih_provisioner.context import RunContext
from ih_provisioner.models.types import LogCollectionError, Node, ToolError
from ih_provisioner.providers.process import run_tool

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_PATHS = ("/var/log",)
DEFAULT_COLLECT_TIMEOUT = 5 * 60.0
SSH_OPTIONS = (
    "-o", "BatchMode=yes",
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "ConnectTimeout=10",
)


class LogCollector(Protocol):
    """Gathers diagnostics from nodes before they are destroyed."""

    def collect(self, label: str, nodes: Sequence[Node]) -> None:
        ...


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", value) or "node"


class SshLogCollector:
    """Stream a tarball of remote log directories from every node over ssh."""

    def __init__(
        self,
        report_dir: Path,
        *,
        remote_paths: Iterable[str] = DEFAULT_REMOTE_PATHS,
        timeout: float = DEFAULT_COLLECT_TIMEOUT,
        ssh_bin: str = "ssh",
    ) -> None:
        self.report_dir = Path(report_dir)
        self.remote_paths = tuple(remote_paths)
        self.timeout = timeout
        self.ssh_bin = ssh_bin

    def _command(self, node: Node, archive: Path) -> list[str]:
        cmd = [self.ssh_bin, *SSH_OPTIONS, "-p", str(node.port)]
        if node.identity_file:
            cmd += ["-i", node.identity_file]
        paths = " ".join(self.remote_paths)
        remote = f"sudo tar czf - --ignore-failed-read {paths} 2>/dev/null"
        ssh_cmd = [*cmd, node.ssh_target(), remote]
        # Redirect on the local side keeps binary data out of captured text.
        return ["sh", "-c", f"{shlex.join(ssh_cmd)} > {shlex.quote(str(archive))}"]

    def collect(self, label: str, nodes: Sequence[Node]) -> None:
        target = self.report_dir / _safe_name(label)
        target.mkdir(parents=True, exist_ok=True)
        failures: list[BaseException] = []
        with RunContext.with_timeout(RunContext.background(), self.timeout) as ctx:
            for node in nodes:
                archive = target / f"{_safe_name(node.name)}.tar.gz"
                logger.debug("Collecting logs from %s into %s", node.name, archive)
                try:
                    run_tool(ctx, self._command(node, archive), log_file=target / "collect.log")
                except ToolError as exc:
                    logger.error("Collecting logs from %s failed: %s", node.name, exc)
                    failures.append(exc)
        if failures:
            raise LogCollectionError(
                f"Failed to collect logs from {len(failures)} of {len(nodes)} node(s)",
                context={"label": label, "errors": [str(err) for err in failures]},
                cause=failures[0],
            )