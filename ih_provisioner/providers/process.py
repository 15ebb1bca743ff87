"""Run provisioning tools as subprocesses bounded by a RunContext."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from ih_provisioner.context import RunContext
from ih_provisioner.models.types import ToolError, ToolInterruptedError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
DEFAULT_GRACE_SECONDS = 30.0
OUTPUT_TAIL_LINES = 40


@dataclass
class ToolResult:
    """Completed tool invocation."""

    cmd: list[str]
    returncode: int
    output: str
    stderr: str = ""


def _tail(output: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    return "\n".join(output.strip().splitlines()[-lines:])


def _append_log(log_file: Optional[Path], cmd: Sequence[str], output: str) -> None:
    if log_file is None:
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with log_file.open("a", encoding="utf-8") as handle:
        handle.write(f"$ {' '.join(cmd)}\n")
        handle.write(output)
        if output and not output.endswith("\n"):
            handle.write("\n")


def _stop_process(proc: subprocess.Popen[str], grace_seconds: float) -> str:
    """Terminate proc, kill it after the grace period, return leftover output."""
    try:
        proc.terminate()
    except ProcessLookupError:
        pass
    try:
        out, _ = proc.communicate(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.warning("Process %s ignored SIGTERM; killing", proc.pid)
        proc.kill()
        out, _ = proc.communicate()
    return out or ""


def run_tool(
    ctx: RunContext,
    cmd: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    log_file: Optional[Path] = None,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
    check: bool = True,
    merge_stderr: bool = True,
) -> ToolResult:
    """Run cmd until it exits or ctx ends.

    Tools generally cannot be interrupted mid-operation, so on cancellation
    the process gets SIGTERM and up to ``grace_seconds`` to exit before it is
    killed; a ToolInterruptedError is then raised chained to the context
    error.
    """
    args = [str(part) for part in cmd]
    if ctx.done():
        raise ToolInterruptedError(
            f"Not starting {args[0]}: {ctx.err()}",
            context={"cmd": args},
            cause=ctx.err(),
        )
    merged_env = os.environ.copy()
    merged_env.update(env or {})
    logger.debug("Running %s (cwd=%s)", " ".join(args), cwd)
    try:
        proc = subprocess.Popen(
            args,
            cwd=cwd,
            env=merged_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except FileNotFoundError as exc:
        raise ToolError(f"Command not found: {args[0]}", context={"cmd": args}, cause=exc) from exc
    except OSError as exc:
        raise ToolError(f"Could not run {' '.join(args)}: {exc}", context={"cmd": args}, cause=exc) from exc

    while True:
        try:
            output, err_output = proc.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            reason = ctx.err()
            if reason is None:
                continue
            logger.warning("Stopping %s: %s", args[0], reason)
            output = _stop_process(proc, grace_seconds)
            _append_log(log_file, args, output)
            raise ToolInterruptedError(
                f"{args[0]} interrupted: {reason}",
                context={"cmd": args, "output": _tail(output)},
                cause=reason,
            ) from reason

    output = output or ""
    err_output = err_output or ""
    _append_log(log_file, args, output + err_output)
    if check and proc.returncode != 0:
        raise ToolError(
            f"Command failed (exit {proc.returncode}): {' '.join(args)}\n{_tail(err_output or output)}",
            context={"cmd": args, "returncode": proc.returncode},
        )
    return ToolResult(cmd=args, returncode=proc.returncode, output=output, stderr=err_output)
