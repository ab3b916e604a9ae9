"""Kubernetes helpers built on ``kubectl``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from talos_hcloud import _commands
from talos_hcloud._cluster_errors import (
    ClusterConnectivityError,
    CommandError,
    ResourceError,
)
from talos_hcloud._polling import wait_until


class Kubectl:
    """Thin wrapper around ``kubectl`` bound to an optional kubeconfig."""

    def __init__(self, kubeconfig: Path | None = None) -> None:
        self.kubeconfig = kubeconfig

    def run(self, *args: str, stdin: str | None = None) -> str:
        prefix = [f"--kubeconfig={self.kubeconfig}"] if self.kubeconfig else []
        context = _commands.CommandContext(stdin=stdin) if stdin is not None else None
        return _commands.run_command("kubectl", *prefix, *args, context=context)

    def run_json(self, *args: str) -> dict[str, Any]:
        stdout = self.run(*args, "-o", "json")
        if not stdout.strip():
            return {}
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as exc:
            msg = f"kubectl {' '.join(args)} returned invalid JSON: {exc}"
            raise ResourceError(msg) from exc
        if not isinstance(payload, dict):
            msg = f"kubectl {' '.join(args)} returned a non-object payload"
            raise ResourceError(msg)
        return payload

    def apply(self, manifest: str, namespace: str | None = None) -> str:
        args = ["apply", "-f", "-"]
        if namespace:
            args.extend(["-n", namespace])
        return self.run(*args, stdin=manifest)

    def ensure_reachable(self) -> None:
        """Raise :class:`ClusterConnectivityError` unless ``cluster-info`` works."""

        try:
            self.run("cluster-info")
        except CommandError as exc:
            msg = "Could not connect to a Kubernetes cluster. Is your KUBECONFIG set correctly?"
            raise ClusterConnectivityError(msg) from exc

    def list_nodes(self) -> list[dict[str, Any]]:
        return list(self.run_json("get", "nodes").get("items", []))

    def wait_available(self, deployment: str, namespace: str, timeout: str = "300s") -> None:
        self.run(
            "wait",
            "--for=condition=Available",
            f"deployment/{deployment}",
            "-n",
            namespace,
            f"--timeout={timeout}",
        )


def node_is_ready(node: dict[str, Any]) -> bool:
    """Return whether *node* has a provider ID and a ``Ready=True`` condition.

    Examples
    --------
    >>> node_is_ready({"spec": {"providerID": "hcloud://1"},
    ...                "status": {"conditions": [{"type": "Ready", "status": "True"}]}})
    True
    >>> node_is_ready({"spec": {}, "status": {"conditions": [{"type": "Ready", "status": "True"}]}})
    False
    """

    if not (node.get("spec") or {}).get("providerID"):
        return False
    return any(
        condition.get("type") == "Ready" and condition.get("status") == "True"
        for condition in (node.get("status") or {}).get("conditions") or []
    )


def count_ready_nodes(nodes: list[dict[str, Any]]) -> int:
    return sum(1 for node in nodes if node_is_ready(node))


def _ready_count_or_zero(kubectl: Kubectl) -> int:
    # The API server flaps while control plane components start.
    try:
        return count_ready_nodes(kubectl.list_nodes())
    except (CommandError, ResourceError):
        return 0


def wait_for_ready_nodes(
    kubectl: Kubectl,
    expected: int,
    *,
    interval: float,
    timeout: float | None = None,
) -> int:
    """Poll until exactly *expected* nodes are Ready; a partial match keeps waiting."""

    seen = {"count": 0}

    def _check() -> bool:
        seen["count"] = _ready_count_or_zero(kubectl)
        return seen["count"] == expected

    def _progress(_: object) -> None:
        print(
            f"\rWaiting for all nodes to become Ready... [{seen['count']}/{expected}]",
            end="",
            flush=True,
        )

    wait_until(
        _check,
        description=f"{expected} Ready nodes",
        interval=interval,
        timeout=timeout,
        on_pending=_progress,
    )
    print()
    print(f"All {expected} nodes are now Ready!")
    return seen["count"]


__all__ = [
    "Kubectl",
    "count_ready_nodes",
    "node_is_ready",
    "wait_for_ready_nodes",
]
