"""Command helpers wrapping the external CLIs the cluster flows drive."""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from plumbum import local
from plumbum.commands.processes import CommandNotFound, ProcessExecutionError

from talos_hcloud._cluster_errors import CommandError, MissingToolError, ResourceError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandContext:
    """Execution options for :func:`run_command`."""

    env: dict[str, str] | None = None
    stdin: str | None = None
    timeout: int | None = None


def run_command(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> str:
    """Execute an external command and return its standard output.

    Examples
    --------
    >>> run_command('printf', 'hello')
    'hello'
    """

    ctx = context or CommandContext()
    logger.debug("running %s %s", command, " ".join(args))
    try:
        bound = local[command][list(args)]
    except CommandNotFound as exc:
        msg = f"'{command}' is not installed. Please install it before running."
        raise MissingToolError(msg) from exc
    env = {**os.environ, **ctx.env} if ctx.env else None
    try:
        if ctx.stdin is None:
            _, stdout, _ = bound.run(env=env, timeout=ctx.timeout)
        else:
            _, stdout, _ = (bound << ctx.stdin).run(env=env, timeout=ctx.timeout)
    except ProcessExecutionError as exc:
        detail = (exc.stderr or "").strip() or f"exit status {exc.retcode}"
        msg = f"Command {command!r} failed: {detail}"
        raise CommandError(msg) from exc
    return stdout


def command_succeeds(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> bool:
    """Return whether *command* exits with status ``0``.

    Used for the describe-style existence checks where a failure simply means
    "absent".
    """

    try:
        run_command(command, *args, context=context)
    except CommandError:
        return False
    return True


def run_json(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> Any:
    """Run *command* and decode its standard output as JSON.

    Examples
    --------
    >>> run_json('printf', '{"ip": "203.0.113.10"}')['ip']
    '203.0.113.10'
    """

    stdout = run_command(command, *args, context=context)
    if not stdout.strip():
        return None
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as exc:
        msg = f"{command} returned invalid JSON for {' '.join(args[:3])!r}: {exc}"
        raise ResourceError(msg) from exc


def collect_missing(tools: Iterable[str]) -> list[str]:
    """Return the subset of *tools* that are not discoverable on ``PATH``.

    Examples
    --------
    >>> collect_missing([])
    []
    """

    return [tool for tool in tools if shutil.which(tool) is None]


def ensure_tools(tools: Iterable[str]) -> None:
    """Raise :class:`MissingToolError` naming the first absent tool."""

    missing = collect_missing(tools)
    if missing:
        msg = f"'{missing[0]}' is not installed. Please install it before running."
        raise MissingToolError(msg)


__all__ = [
    "CommandContext",
    "collect_missing",
    "command_succeeds",
    "ensure_tools",
    "run_command",
    "run_json",
]
