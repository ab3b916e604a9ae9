"""Shared helpers for resolving CLI and environment inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    default: str | Path | None = None
    required: bool = False
    as_path: bool = False


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Resolve input from parameter, environment variable, or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution(env_key="CLUSTER_NAME", default="c"), env={})
    'c'
    >>> resolve_input(None, InputResolution(env_key="WORK_DIR", as_path=True), env={"WORK_DIR": "/tmp"})
    PosixPath('/tmp')
    """

    if param_value is not None:
        return param_value

    env_value = (env if env is not None else os.environ).get(resolution.env_key)
    if env_value is not None and env_value != "":
        return Path(env_value) if resolution.as_path else env_value

    if resolution.required:
        msg = f"{resolution.env_key} is required"
        raise SystemExit(msg)

    return resolution.default


def to_int(value: str | int | None, *, name: str, minimum: int = 0) -> int:
    """Convert *value* to an ``int`` no smaller than *minimum*.

    Examples
    --------
    >>> to_int("2", name="HCLOUD_WORKER_COUNT")
    2
    """

    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be an integer, got: {value!r}"
        raise SystemExit(msg) from exc
    if number < minimum:
        msg = f"{name} must be at least {minimum}, got: {number}"
        raise SystemExit(msg)
    return number


def to_optional_seconds(value: str | float | None, *, name: str) -> float | None:
    """Convert *value* to a positive number of seconds, or ``None`` for unbounded.

    Examples
    --------
    >>> to_optional_seconds("90", name="DNS_TIMEOUT")
    90.0
    >>> to_optional_seconds(None, name="DNS_TIMEOUT") is None
    True
    """

    if value is None or value == "":
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be a number of seconds, got: {value!r}"
        raise SystemExit(msg) from exc
    if seconds <= 0:
        return None
    return seconds


def to_bool(value: str | bool | None, *, default: bool = False) -> bool:
    """Interpret CLI or environment flag values.

    Examples
    --------
    >>> to_bool("YES")
    True
    >>> to_bool(None, default=True)
    True
    """

    if isinstance(value, bool):
        return value
    if value is None:
        return default
    normalised = value.strip().lower()
    if normalised in _TRUTHY:
        return True
    if normalised in _FALSY:
        return False
    return default
